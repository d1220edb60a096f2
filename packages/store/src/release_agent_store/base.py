"""Abstract persisted-state interface.

The client keeps a handful of small string values between runs: the current
auth token, the auth verification cache, and the last-selected issue filters.
Any backend (in-memory, SQLite, a keyring) implements this interface. The CLI
depends on BaseStore, not on a concrete backend, so backends are swappable
without touching the auth or filter code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseStore(ABC):
    """Synchronous string key-value store.

    Reads and writes happen on the event-loop thread between awaits, so
    implementations need no locking. No cross-process consistency is
    provided: two CLI processes sharing a file see last-writer-wins.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete key. Removing an absent key is not an error."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional. Subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """
