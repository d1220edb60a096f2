"""In-memory store: nothing survives the process.

Used by `store: memory` in .release-agent.yml and throughout the tests. A
MemoryStore rather than None lets the auth and filter code always read and
write without conditional checks.
"""

from __future__ import annotations

from release_agent_store.base import BaseStore


class MemoryStore(BaseStore):
    """Dict-backed store. Optionally seeded with initial values."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)
