"""Auth token storage and the verification cache.

At most one token is live at a time, stored under AUTH_TOKEN_KEY. Older
clients wrote the token under LEGACY_TOKEN_KEY; it is still read so those
users stay signed in, and is removed the next time a token is written.

The cache records the identity the backend returned for a token so a fresh
process can show the user as signed in before re-verification finishes. An
entry only counts while its token matches the stored token and it is younger
than AUTH_CACHE_TTL.
"""

from __future__ import annotations

import json
import logging
import time

from release_agent_store.base import BaseStore
from release_agent_store.models import AuthCacheEntry, AuthUser

logger = logging.getLogger(__name__)

AUTH_TOKEN_KEY = "release-agent.auth-token"
LEGACY_TOKEN_KEY = "release-agent.github-token"
AUTH_CACHE_KEY = "release-agent.auth-cache"

AUTH_CACHE_TTL = 5 * 60  # seconds


def get_stored_auth_token(store: BaseStore) -> str | None:
    """Return the current token (primary key first, then legacy), trimmed, or None."""
    token = store.get(AUTH_TOKEN_KEY)
    if token is None:
        token = store.get(LEGACY_TOKEN_KEY)
    if not token or not token.strip():
        return None
    return token.strip()


def set_stored_auth_token(store: BaseStore, token: str) -> None:
    store.set(AUTH_TOKEN_KEY, token.strip())
    store.remove(LEGACY_TOKEN_KEY)


def clear_stored_auth_token(store: BaseStore) -> None:
    store.remove(AUTH_TOKEN_KEY)
    store.remove(LEGACY_TOKEN_KEY)


def read_auth_cache(store: BaseStore, token: str, now: float | None = None) -> AuthCacheEntry | None:
    """Return the cache entry for token if it is still fresh, else None.

    An entry exactly AUTH_CACHE_TTL old is expired.
    """
    raw = store.get(AUTH_CACHE_KEY)
    if not raw:
        return None
    try:
        data = json.loads(raw)
        entry = AuthCacheEntry(
            token=str(data["token"]),
            user=AuthUser.from_dict(data["user"]),
            checked_at=float(data["checkedAt"]),
        )
    except (json.JSONDecodeError, KeyError, TypeError, ValueError):
        logger.warning("Ignoring unreadable auth cache entry.")
        return None

    if entry.token != token:
        return None
    now = time.time() if now is None else now
    if now - entry.checked_at >= AUTH_CACHE_TTL:
        return None
    return entry


def write_auth_cache(store: BaseStore, token: str, user: AuthUser, now: float | None = None) -> AuthCacheEntry:
    entry = AuthCacheEntry(token=token, user=user, checked_at=time.time() if now is None else now)
    store.set(
        AUTH_CACHE_KEY,
        json.dumps({"token": entry.token, "user": user.to_dict(), "checkedAt": entry.checked_at}),
    )
    return entry


def clear_auth_cache(store: BaseStore) -> None:
    store.remove(AUTH_CACHE_KEY)
