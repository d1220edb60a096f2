"""Tag, branch and commit lookup for picking a session's base/head refs."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from itertools import islice

from github import Github, GithubException

from release_agent_core.latest import STALE, LatestWins
from release_agent_core.utils.debounce import Debouncer

logger = logging.getLogger(__name__)

MIN_COMMIT_QUERY = 4
SEARCH_DELAY = 0.3


@dataclass(frozen=True)
class GitRef:
    type: str  # "tag" | "branch" | "commit"
    name: str
    sha: str
    display_name: str


def get_repo(repo_name: str, token: str | None = None):
    return Github(token).get_repo(repo_name)


def list_tags(repo, limit: int = 30) -> list[GitRef]:
    return [GitRef("tag", t.name, t.commit.sha, t.name) for t in islice(repo.get_tags(), limit)]


def list_branches(repo, limit: int = 30) -> list[GitRef]:
    return [GitRef("branch", b.name, b.commit.sha, b.name) for b in islice(repo.get_branches(), limit)]


def search_commits(repo, query: str, limit: int = 10) -> list[GitRef]:
    """Commits reachable from `query` (a SHA prefix or ref). Short queries return []."""
    if not query or len(query) < MIN_COMMIT_QUERY:
        return []
    try:
        commits = list(islice(repo.get_commits(sha=query), limit))
    except GithubException as e:
        logger.debug("Commit lookup for %r failed: %s", query, e)
        return []
    refs = []
    for c in commits:
        first_line = (c.commit.message or "").split("\n", 1)[0][:50]
        refs.append(GitRef("commit", c.sha, c.sha, f"{c.sha[:7]} - {first_line}"))
    return refs


class RefSearch:
    """Combined ref picker: cached tags/branches plus debounced commit search.

    PyGithub is blocking, so every call runs in a worker thread.
    """

    def __init__(self, repo_name: str, token: str | None = None, delay: float = SEARCH_DELAY, repo=None):
        self.repo_name = repo_name
        self._token = token
        self._repo = repo
        self._latest = LatestWins()
        self._debouncer = Debouncer(delay, self._search_commits)
        self.tags: list[GitRef] = []
        self.branches: list[GitRef] = []
        self.commits: list[GitRef] = []
        self.query = ""

    async def _get_repo(self):
        if self._repo is None:
            self._repo = await asyncio.to_thread(get_repo, self.repo_name, self._token)
        return self._repo

    async def load(self) -> None:
        """Fetch tags and branches. Failures leave the lists empty."""
        try:
            repo = await self._get_repo()
            self.tags, self.branches = await asyncio.gather(
                asyncio.to_thread(list_tags, repo),
                asyncio.to_thread(list_branches, repo),
            )
        except GithubException as e:
            logger.warning("Could not load refs for %s: %s", self.repo_name, e)
            self.tags, self.branches = [], []

    def set_query(self, text: str) -> None:
        self.query = text
        if len(text) < MIN_COMMIT_QUERY:
            self._debouncer.cancel()
            self._latest.invalidate("commits")
            self.commits = []
            return
        self._debouncer.call(text)

    async def search(self, text: str) -> list[GitRef]:
        """Search immediately, bypassing the debounce window."""
        self.query = text
        await self._search_commits(text)
        return self.matches()

    async def _search_commits(self, text: str) -> None:
        if len(text) < MIN_COMMIT_QUERY:
            self.commits = []
            return
        repo = await self._get_repo()
        result = await self._latest.fetch("commits", lambda: asyncio.to_thread(search_commits, repo, text))
        if result is not STALE:
            self.commits = result

    def matches(self) -> list[GitRef]:
        """Tags and branches containing the query (case-insensitive), then commits."""
        needle = self.query.lower()
        named = [r for r in (*self.tags, *self.branches) if needle in r.name.lower()]
        return [*named, *self.commits]

    async def settle(self) -> None:
        await self._debouncer.flush()

    async def aclose(self) -> None:
        await self._debouncer.aclose()
