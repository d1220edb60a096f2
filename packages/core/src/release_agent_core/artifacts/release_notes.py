"""Release notes editing.

Text edits stay local until saved. Every save/exclude/include/add goes to the
backend as one ordered batch of operations, and the artifact the backend
sends back replaces local state wholesale; there is no merge. A failed save
sets `error` but leaves the typed text in place so the user can retry.

Regenerating a single item is fire-and-forget on the backend. The editor
then polls the artifact until that item is no longer `regenerating`, giving
up silently after `timeout` seconds. An item that timed out stays in
`regenerating`. The polled artifact is applied only once the item settles,
with unsaved text on other items laid back over it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from release_agent_core.api.client import error_message
from release_agent_core.artifacts.view import BACKEND_ERRORS, ArtifactView

if TYPE_CHECKING:
    from release_agent_core.api.release_agent import ReleaseAgentApi

logger = logging.getLogger(__name__)

STATUS_READY = "ready"
STATUS_REGENERATING = "regenerating"

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_TIMEOUT = 60.0


def _find_item(sections: list[dict] | None, item_id: str) -> dict | None:
    for section in sections or []:
        for item in section.get("items", []):
            if item.get("id") == item_id:
                return item
    return None


def _with_texts(data: dict, texts: dict[str, str]) -> dict:
    """Copy of an artifact with the given item texts swapped in."""
    if not texts:
        return data
    sections = [
        {
            **section,
            "items": [
                {**item, "text": texts[item["id"]]} if item.get("id") in texts else item
                for item in section.get("items", [])
            ],
        }
        for section in data.get("sections") or []
    ]
    return {**data, "sections": sections}


def render_markdown(sections: list[dict] | None, area: str | None = None) -> str:
    """Markdown preview: one `## area` block per section with visible items."""
    blocks = []
    for section in sections or []:
        if area is not None and section.get("area") != area:
            continue
        lines = [f"- {item.get('text', '')}" for item in section.get("items", []) if not item.get("excluded")]
        if not lines:
            continue
        blocks.append(f"## {section.get('area', '')}\n\n" + "\n".join(lines))
    return "\n\n".join(blocks)


class ReleaseNotesEditor(ArtifactView):
    def __init__(
        self,
        api: ReleaseAgentApi,
        session_id: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        super().__init__(lambda: api.get_release_notes_artifact(session_id))
        self._api = api
        self.session_id = session_id
        self._poll_interval = poll_interval
        self._timeout = timeout
        self.regenerating: set[str] = set()
        self._polls: dict[str, asyncio.Task] = {}
        self._unsaved: dict[str, str] = {}

    @property
    def sections(self) -> list[dict] | None:
        return None if self.data is None else self.data.get("sections")

    def get_item(self, item_id: str) -> dict | None:
        return _find_item(self.sections, item_id)

    def areas(self) -> list[str]:
        return [s.get("area", "") for s in self.sections or []]

    def visible_count(self, area: str | None = None) -> int:
        return sum(
            1
            for s in self.sections or []
            if area is None or s.get("area") == area
            for item in s.get("items", [])
            if not item.get("excluded")
        )

    def markdown(self, area: str | None = None) -> str:
        return render_markdown(self.sections, area)

    async def refresh(self) -> bool:
        loaded = await super().refresh()
        if loaded:
            self._unsaved.clear()
        return loaded

    # ------------------------------------------------------------------ #
    # Local edits                                                          #
    # ------------------------------------------------------------------ #

    def update_local_text(self, item_id: str, text: str) -> None:
        """Echo a text edit locally. Nothing is sent until save_text()."""
        if self.data is None:
            return
        self._unsaved[item_id] = text
        self.data = _with_texts(self.data, {item_id: text})

    # ------------------------------------------------------------------ #
    # Persisted edits                                                      #
    # ------------------------------------------------------------------ #

    async def patch(self, operations: list[dict]) -> bool:
        """Send operations as one batch; the response replaces local state."""
        self.error = None
        try:
            self.data = await self._api.patch_release_notes_artifact(self.session_id, operations)
            self._unsaved.clear()
            return True
        except BACKEND_ERRORS as e:
            self.error = error_message(e, "Failed to save")
            return False

    async def save_text(self, item_id: str) -> bool:
        item = self.get_item(item_id)
        if item is None:
            self.error = f"Unknown release note item: {item_id}"
            return False
        return await self.patch([{"op": "updateText", "itemId": item_id, "text": item.get("text", "")}])

    async def exclude(self, item_id: str) -> bool:
        return await self.patch([{"op": "exclude", "itemId": item_id}])

    async def include(self, item_id: str) -> bool:
        return await self.patch([{"op": "include", "itemId": item_id}])

    async def add_item(self, area: str, text: str) -> bool:
        area, text = area.strip(), text.strip()
        if not area or not text:
            self.error = "Area and text are required"
            return False
        return await self.patch([{"op": "addItem", "area": area, "text": text}])

    # ------------------------------------------------------------------ #
    # Single-item regeneration                                             #
    # ------------------------------------------------------------------ #

    def is_regenerating(self, item_id: str) -> bool:
        item = self.get_item(item_id)
        return item_id in self.regenerating or (item is not None and item.get("status") == STATUS_REGENERATING)

    async def regenerate_item(self, item_id: str) -> bool:
        """Trigger regeneration and start polling for it in the background."""
        self.error = None
        self.regenerating.add(item_id)
        try:
            await self._api.regenerate_release_note_item(self.session_id, item_id)
        except BACKEND_ERRORS as e:
            self.error = error_message(e, "Failed to regenerate")
            self.regenerating.discard(item_id)
            return False

        previous = self._polls.pop(item_id, None)
        if previous is not None:
            previous.cancel()
        self._polls[item_id] = asyncio.get_running_loop().create_task(self._watch_regeneration(item_id))
        return True

    async def _watch_regeneration(self, item_id: str) -> None:
        try:
            await asyncio.wait_for(self._poll_until_settled(item_id), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.info("Stopped waiting for release note item %s after %ss.", item_id, self._timeout)
        finally:
            if self._polls.get(item_id) is asyncio.current_task():
                del self._polls[item_id]

    async def _poll_until_settled(self, item_id: str) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                artifact = await self._api.get_release_notes_artifact(self.session_id)
            except BACKEND_ERRORS as e:
                logger.debug("Regeneration poll for %s failed: %s", item_id, e)
                continue
            item = _find_item(artifact.get("sections"), item_id)
            if item is not None and item.get("status") != STATUS_REGENERATING:
                self._unsaved.pop(item_id, None)
                self.data = _with_texts(artifact, self._unsaved)
                self.regenerating.discard(item_id)
                return

    async def wait_regenerations(self) -> None:
        """Wait until every outstanding regeneration poll has finished or timed out."""
        while self._polls:
            await asyncio.gather(*list(self._polls.values()), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding regeneration polls."""
        tasks = list(self._polls.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._polls.clear()
