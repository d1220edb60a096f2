"""Session and job models mapped from backend JSON.

Artifacts are deliberately not modelled: they stay plain dicts exactly as
the backend returned them, so replacing one with a PATCH response is a
literal replacement.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

SESSION_DRAFT = "draft"
SESSION_GENERATING = "generating"
SESSION_READY = "ready"
SESSION_EXPORTED = "exported"

JOB_PENDING = "pending"
JOB_RUNNING = "running"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"

JOB_TYPES = (
    "parse-changes",
    "generate-notes",
    "analyze-hotspots",
    "generate-testplan",
    "generate-testchecklists",
)


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; None for missing or unparseable values."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass(frozen=True)
class Job:
    id: str
    type: str
    status: str  # "pending" | "running" | "completed" | "failed"
    progress: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None

    @classmethod
    def from_api(cls, d: dict) -> Job:
        return cls(
            id=d.get("id", ""),
            type=d.get("type", ""),
            status=d.get("status", JOB_PENDING),
            progress=int(d.get("progress") or 0),
            started_at=parse_datetime(d.get("startedAt")),
            completed_at=parse_datetime(d.get("completedAt")),
            error=d.get("error") or None,
        )


@dataclass(frozen=True)
class SessionStats:
    change_count: int = 0
    release_notes_count: int = 0
    hotspots_count: int = 0
    test_cases_count: int = 0

    @classmethod
    def from_api(cls, d: dict | None) -> SessionStats:
        d = d or {}
        return cls(
            change_count=d.get("changeCount", 0),
            release_notes_count=d.get("releaseNotesCount", 0),
            hotspots_count=d.get("hotspotsCount", 0),
            test_cases_count=d.get("testCasesCount", 0),
        )


@dataclass(frozen=True)
class Session:
    """A release session and its jobs.

    Frozen: the store swaps whole Session objects rather than mutating them,
    so a listener holding an old reference never sees a half-applied update.
    """

    id: str
    repo_full_name: str
    name: str
    status: str  # "draft" | "generating" | "ready" | "exported"
    base_ref: str
    head_ref: str
    created_at: datetime | None
    updated_at: datetime | None
    jobs: tuple[Job, ...] = ()
    stats: SessionStats = field(default_factory=SessionStats)

    @classmethod
    def from_api(cls, d: dict, jobs: list[dict]) -> Session:
        return cls(
            id=d.get("id", ""),
            repo_full_name=d.get("repoFullName", ""),
            name=d.get("name", ""),
            status=d.get("status", SESSION_DRAFT),
            base_ref=d.get("baseRef", ""),
            head_ref=d.get("headRef", ""),
            created_at=parse_datetime(d.get("createdAt")),
            updated_at=parse_datetime(d.get("updatedAt")),
            jobs=tuple(Job.from_api(j) for j in jobs),
            stats=SessionStats.from_api(d.get("stats")),
        )
