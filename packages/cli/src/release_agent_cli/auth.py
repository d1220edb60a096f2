"""Auth session manager: resolve, verify and cache the backend bearer token.

Boot order (runs once per process, stops at the first definite outcome):
  1. An OAuth callback URL whose fragment carries `token=` (or `error=`) is
     consumed: the token is stored, the fragment is stripped from the location
     so replaying the same URL does nothing. A callback `error=` stays in
     `error` even when a stored token still verifies.
  2. No token: unauthenticated, unless the no-token probe is enabled and the
     backend reports access control disabled. The default makes no network
     call just to learn that there is no token.
  3. Token with a fresh cache entry: authenticated *provisionally* from cache.
  4. Verify against `/auth/me`. Success confirms (and re-caches) the identity;
     failure wipes token and cache and drops to unauthenticated.

A missing base URL short-circuits everything: unauthenticated, with a
configuration error, and no network calls at all.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, ClassVar, Union
from urllib.parse import parse_qs, urlsplit, urlunsplit

import httpx

from release_agent_core.api.client import ApiError, error_message
from release_agent_core.api.release_agent import ReleaseAgentApi, github_start_url
from release_agent_core.config import MISSING_BASE_URL_MESSAGE, ConfigurationError, get_api_base_url
from release_agent_store.base import BaseStore
from release_agent_store.models import SOURCE_ACCESS_CONTROL_DISABLED, AuthUser
from release_agent_store.tokens import (
    clear_auth_cache,
    clear_stored_auth_token,
    get_stored_auth_token,
    read_auth_cache,
    set_stored_auth_token,
    write_auth_cache,
)

logger = logging.getLogger(__name__)

_VERIFY_ERRORS = (ApiError, httpx.HTTPError, ValueError)


# --------------------------------------------------------------------------- #
# State                                                                        #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class Checking:
    status: ClassVar[str] = "checking"


@dataclass(frozen=True)
class Authenticated:
    """A known identity. `provisional` is True while it only comes from cache."""

    user: AuthUser
    provisional: bool = False
    status: ClassVar[str] = "authenticated"


@dataclass(frozen=True)
class Unauthenticated:
    status: ClassVar[str] = "unauthenticated"


AuthState = Union[Checking, Authenticated, Unauthenticated]


# --------------------------------------------------------------------------- #
# Location                                                                     #
# --------------------------------------------------------------------------- #


class Location:
    """The URL the client was opened with, e.g. an OAuth callback URL.

    replace() rewrites it in place, like history.replaceState in a browser.
    """

    def __init__(self, url: str = "/"):
        self.url = url

    @property
    def fragment(self) -> str:
        return urlsplit(self.url).fragment

    @property
    def path_and_query(self) -> str:
        parts = urlsplit(self.url)
        path = parts.path or "/"
        return f"{path}?{parts.query}" if parts.query else path

    def without_fragment(self) -> str:
        return urlunsplit(urlsplit(self.url)._replace(fragment=""))

    def replace(self, url: str) -> None:
        self.url = url


def parse_auth_fragment(fragment: str) -> tuple[str | None, str | None]:
    """Return (token, error) from a `token=...` / `error=...` fragment."""
    values = parse_qs(fragment.lstrip("#"), keep_blank_values=False)
    token = (values.get("token") or [None])[0]
    error = (values.get("error") or [None])[0]
    token = token.strip() if token else None
    return token or None, error or None


# --------------------------------------------------------------------------- #
# Manager                                                                      #
# --------------------------------------------------------------------------- #


class AuthManager:
    def __init__(
        self,
        store: BaseStore,
        config: dict,
        location: Location | None = None,
        api_factory: Callable[[str], ReleaseAgentApi] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._config = config
        self.location = location or Location()
        self._api_factory = api_factory or (
            lambda base_url: ReleaseAgentApi(base_url, timeout=config.get("request_timeout", 30.0))
        )
        self._clock = clock
        self._listeners: list[Callable[[AuthState], None]] = []
        self.state: AuthState = Checking()
        self.error: str | None = None

    @property
    def status(self) -> str:
        return self.state.status

    @property
    def user(self) -> AuthUser | None:
        return self.state.user if isinstance(self.state, Authenticated) else None

    @property
    def token(self) -> str | None:
        return get_stored_auth_token(self._store)

    def subscribe(self, listener: Callable[[AuthState], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def _set_state(self, state: AuthState) -> None:
        self.state = state
        for listener in list(self._listeners):
            listener(state)

    def _base_url(self) -> str | None:
        return get_api_base_url(self._config)

    async def verify(self, token: str) -> AuthUser:
        base_url = self._base_url()
        if not base_url:
            raise ConfigurationError(MISSING_BASE_URL_MESSAGE)
        async with self._api_factory(base_url) as api:
            return AuthUser.from_dict(await api.get_me(token))

    def _consume_fragment(self) -> str | None:
        """Store a callback token and strip the fragment. Returns the callback error."""
        fragment = self.location.fragment
        if not fragment:
            return None
        token, error = parse_auth_fragment(fragment)
        if not token and not error:
            return None
        if token:
            set_stored_auth_token(self._store, token)
        self.location.replace(self.location.without_fragment())
        return error

    async def _probe_access_control(self, base_url: str) -> AuthUser | None:
        try:
            async with self._api_factory(base_url) as api:
                user = AuthUser.from_dict(await api.get_me())
        except _VERIFY_ERRORS as e:
            logger.debug("Access-control probe failed: %s", e)
            return None
        return user if user.source == SOURCE_ACCESS_CONTROL_DISABLED else None

    async def boot(self) -> AuthState:
        base_url = self._base_url()
        if not base_url:
            self.error = MISSING_BASE_URL_MESSAGE
            self._set_state(Unauthenticated())
            return self.state

        fragment_error = self._consume_fragment()
        if fragment_error:
            self.error = fragment_error

        token = get_stored_auth_token(self._store)
        if not token:
            if self._config.get("probe_access_control_disabled"):
                user = await self._probe_access_control(base_url)
                if user is not None:
                    self.error = fragment_error
                    self._set_state(Authenticated(user))
                    return self.state
            self._set_state(Unauthenticated())
            return self.state

        cached = read_auth_cache(self._store, token, now=self._clock())
        if cached is not None:
            self._set_state(Authenticated(cached.user, provisional=True))

        try:
            user = await self.verify(token)
        except _VERIFY_ERRORS as e:
            logger.info("Stored token failed verification: %s", e)
            clear_stored_auth_token(self._store)
            clear_auth_cache(self._store)
            self.error = error_message(e, "Authentication failed")
            self._set_state(Unauthenticated())
            return self.state

        write_auth_cache(self._store, token, user, now=self._clock())
        self.error = fragment_error
        self._set_state(Authenticated(user))
        return self.state

    async def sign_in(self, token: str) -> AuthUser:
        """Verify and store a token. On failure nothing changes and the error propagates."""
        trimmed = token.strip()
        if not trimmed:
            raise ValueError("Token is required")
        user = await self.verify(trimmed)
        set_stored_auth_token(self._store, trimmed)
        write_auth_cache(self._store, trimmed, user, now=self._clock())
        self.error = None
        self._set_state(Authenticated(user))
        return user

    def sign_out(self) -> None:
        clear_stored_auth_token(self._store)
        clear_auth_cache(self._store)
        self.error = None
        self._set_state(Unauthenticated())

    def github_sign_in_url(self) -> str:
        """Backend URL that starts GitHub OAuth and returns to the current location."""
        base_url = self._base_url()
        if not base_url:
            raise ConfigurationError(MISSING_BASE_URL_MESSAGE)
        return github_start_url(base_url, self.location.path_and_query)
