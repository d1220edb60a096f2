"""Session/job synchronization store.

Holds the list of release sessions with their jobs and keeps it roughly in
step with the backend:

  refresh()     : full reload: sessions, then every session's jobs, swapped in
                  as one new tuple so readers never see a partial list.
  poll_once()   : re-fetch jobs only for sessions in `generating`; terminal
                  sessions are never re-polled automatically.
  start_polling : run poll_once() every poll_interval seconds in a task owned
                  by the store; stop_polling() (or leaving `async with`)
                  cancels it.

The store is an explicit object passed to whoever needs it, not a module
global, so tests construct their own with a fake API.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, NamedTuple

import httpx

from release_agent_core.api.client import ApiError, error_message
from release_agent_core.models import JOB_RUNNING, SESSION_GENERATING, Job, Session, SessionStats

if TYPE_CHECKING:
    from release_agent_core.api.release_agent import ReleaseAgentApi

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_SESSION_OPTIONS = {"normalizeBy": "commit"}


class RunningJob(NamedTuple):
    session: Session
    job: Job


Listener = Callable[["SessionStore"], None]


class SessionStore:
    def __init__(
        self,
        api: ReleaseAgentApi | None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], float] = time.time,
    ):
        self._api = api
        self._poll_interval = poll_interval
        self._clock = clock
        self._sessions: tuple[Session, ...] = ()
        self._listeners: list[Listener] = []
        self._poll_task: asyncio.Task | None = None
        self.is_loading = False
        self.error: str | None = None

    # ------------------------------------------------------------------ #
    # State access                                                         #
    # ------------------------------------------------------------------ #

    @property
    def sessions(self) -> tuple[Session, ...]:
        return self._sessions

    def get(self, session_id: str) -> Session | None:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener after every state change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def running_jobs(self) -> list[RunningJob]:
        """Every (session, job) pair whose job is currently running."""
        return [
            RunningJob(session, job) for session in self._sessions for job in session.jobs if job.status == JOB_RUNNING
        ]

    # ------------------------------------------------------------------ #
    # Backend round trips                                                  #
    # ------------------------------------------------------------------ #

    async def _load_jobs(self, session_id: str) -> list[dict]:
        return (await self._api.list_jobs(session_id)).get("items", [])

    async def refresh(self) -> None:
        """Reload every session and its jobs.

        Overlapping calls are allowed; whichever finishes last wins.
        Failures are recorded in `error` and keep the previous list.
        """
        if self._api is None:
            return

        self.is_loading = True
        self.error = None
        self._emit()
        try:
            items = (await self._api.list_sessions()).get("items", [])
            jobs = await asyncio.gather(*(self._load_jobs(s["id"]) for s in items))
            self._sessions = tuple(Session.from_api(s, j) for s, j in zip(items, jobs))
        except (ApiError, httpx.HTTPError) as e:
            self.error = error_message(e, "Failed to load")
        finally:
            self.is_loading = False
            self._emit()

    async def create_session(
        self,
        name: str,
        repo_full_name: str,
        base_ref: str,
        head_ref: str,
        options: dict | None = None,
    ) -> Session:
        """Create a session and put it at the front of the list.

        Without a backend a local placeholder is created instead, so the
        CLI stays usable offline. The placeholder is never sent anywhere.
        """
        if self._api is None:
            now = self._clock()
            session = Session(
                id=f"session-{int(now * 1000)}",
                repo_full_name=repo_full_name,
                name=name,
                status=SESSION_GENERATING,
                base_ref=base_ref,
                head_ref=head_ref,
                created_at=_to_datetime(now),
                updated_at=_to_datetime(now),
                jobs=(),
                stats=SessionStats(),
            )
        else:
            created = await self._api.create_session(
                {
                    "name": name,
                    "repoFullName": repo_full_name,
                    "baseRef": base_ref,
                    "headRef": head_ref,
                    "options": options if options is not None else dict(DEFAULT_SESSION_OPTIONS),
                }
            )
            session = Session.from_api(created, await self._load_jobs(created["id"]))

        self._sessions = (session, *self._sessions)
        self._emit()
        return session

    async def delete_session(self, session_id: str) -> None:
        """Delete on the backend, then locally. On failure the entry is kept and the error propagates."""
        if self._api is not None:
            await self._api.delete_session(session_id)
        self._sessions = tuple(s for s in self._sessions if s.id != session_id)
        self._emit()

    async def poll_once(self) -> None:
        """One best-effort poll tick over the sessions still generating."""
        if self._api is None:
            return
        targets = [s.id for s in self._sessions if s.status == SESSION_GENERATING]
        if not targets:
            return

        try:
            results = await asyncio.gather(*(self._load_jobs(sid) for sid in targets))
        except Exception as e:
            # Polling is best-effort: never surfaced, never stops the next tick.
            logger.debug("Session poll tick failed (%s): %s", type(e).__name__, e)
            return

        jobs_by_session = dict(zip(targets, results))
        self._sessions = tuple(
            replace(s, jobs=tuple(Job.from_api(j) for j in jobs_by_session[s.id])) if s.id in jobs_by_session else s
            for s in self._sessions
        )
        self._emit()

    # ------------------------------------------------------------------ #
    # Poll task lifetime                                                   #
    # ------------------------------------------------------------------ #

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def start_polling(self) -> None:
        if self._api is None or self.is_polling:
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            await self.poll_once()

    async def __aenter__(self) -> SessionStore:
        await self.refresh()
        self.start_polling()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop_polling()


def _to_datetime(epoch_seconds: float) -> datetime:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
