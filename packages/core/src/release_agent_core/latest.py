"""Latest-wins async result cache.

Every fetch for a key takes a new sequence number. When the fetch returns,
its result is stored only if no newer fetch for the same key was started in
the meantime; otherwise it is dropped and the caller gets STALE back. Nothing
is cancelled on the network side, the late answer is simply ignored.

Keys are whatever identifies a query: a fixed slot name for search-as-you-type,
or a tuple of filter values for per-filter result sets.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Hashable

STALE: Any = object()


class LatestWins:
    def __init__(self) -> None:
        self._seq: dict[Hashable, int] = {}
        self._values: dict[Hashable, Any] = {}

    def issue(self, key: Hashable) -> int:
        """Start a new request for key and return its token."""
        token = self._seq.get(key, 0) + 1
        self._seq[key] = token
        return token

    def is_current(self, key: Hashable, token: int) -> bool:
        return self._seq.get(key) == token

    async def fetch(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Await factory() and cache its result under key unless superseded.

        Returns the result, or STALE when a newer fetch for key was issued
        while this one was in flight. Exceptions from a current fetch
        propagate; exceptions from a superseded fetch are swallowed as STALE.
        """
        token = self.issue(key)
        try:
            result = await factory()
        except Exception:
            if not self.is_current(key, token):
                return STALE
            raise
        if not self.is_current(key, token):
            return STALE
        self._values[key] = result
        return result

    def peek(self, key: Hashable, default: Any = None) -> Any:
        return self._values.get(key, default)

    def invalidate(self, key: Hashable | None = None) -> None:
        """Drop cached values (all of them when key is None). Pending fetches become stale."""
        if key is None:
            for k in list(self._seq):
                self.issue(k)
            self._values.clear()
            return
        self.issue(key)
        self._values.pop(key, None)
