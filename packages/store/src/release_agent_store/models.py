"""Persisted auth data models.

Decoupled from release_agent_core so the store layer can be used on its own
and the core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import dataclass

SOURCE_COMMUNITY_MD = "community-md"
SOURCE_EXTRA_ALLOWLIST = "extra-allowlist"
SOURCE_ACCESS_CONTROL_DISABLED = "access-control-disabled"


@dataclass(frozen=True)
class AuthUser:
    """Identity returned by a successful `/auth/me` verification."""

    login: str
    source: str  # "community-md" | "extra-allowlist" | "access-control-disabled"

    @classmethod
    def from_dict(cls, d: dict) -> AuthUser:
        return cls(login=str(d.get("login", "")), source=str(d.get("source", "")))

    def to_dict(self) -> dict:
        return {"login": self.login, "source": self.source}


@dataclass(frozen=True)
class AuthCacheEntry:
    """A verified token/identity pair and when it was verified."""

    token: str
    user: AuthUser
    checked_at: float  # epoch seconds
