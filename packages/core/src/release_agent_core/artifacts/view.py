"""Read-side controller shared by every artifact page.

An ArtifactView owns one session-scoped document. refresh() fetches it; a
failed refresh records the error but keeps the last document that loaded, so
a flaky network never blanks a page that was already showing data.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable

import httpx

from release_agent_core.api.client import ApiError, error_message

if TYPE_CHECKING:
    from release_agent_core.api.release_agent import ReleaseAgentApi

logger = logging.getLogger(__name__)

BACKEND_ERRORS = (ApiError, httpx.HTTPError)


class ArtifactView:
    def __init__(self, fetch: Callable[[], Awaitable[dict]]):
        self._fetch = fetch
        self.data: dict | None = None
        self.error: str | None = None
        self.is_loading = False

    async def refresh(self) -> bool:
        """Fetch the artifact. Returns False (and sets `error`) on failure."""
        self.is_loading = True
        self.error = None
        try:
            self.data = await self._fetch()
            return True
        except BACKEND_ERRORS as e:
            self.error = error_message(e, "Failed to load")
            logger.debug("Artifact fetch failed: %s", self.error)
            return False
        finally:
            self.is_loading = False

    def items(self) -> list[dict]:
        return list((self.data or {}).get("items") or [])


def changes_view(api: ReleaseAgentApi, session_id: str) -> ArtifactView:
    return ArtifactView(lambda: api.get_changes_artifact(session_id))


def hotspots_view(api: ReleaseAgentApi, session_id: str) -> ArtifactView:
    return ArtifactView(lambda: api.get_hotspots_artifact(session_id))
