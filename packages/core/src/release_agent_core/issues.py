"""Issue clustering views: detail, filter cascade, recent list, semantic search."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from release_agent_core.api.client import ApiError, error_message
from release_agent_core.artifacts.view import BACKEND_ERRORS
from release_agent_core.latest import STALE, LatestWins
from release_agent_core.utils.debounce import Debouncer

if TYPE_CHECKING:
    from release_agent_core.api.release_agent import ReleaseAgentApi

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Issue not found in indexed database. Run sync to ingest this issue."

DETAIL_MIN_SIMILARITY = 0.84
DETAIL_LIMIT = 20
RECENT_PAGE_SIZE = 30
SEARCH_MIN_SIMILARITY = 0.80
SEARCH_LIMIT = 20


class FilterPrefs(Protocol):
    def get_version(self) -> tuple[bool, str | None]: ...

    def set_version(self, version: str | None) -> None: ...

    def get_product(self) -> str | None: ...

    def set_product(self, product: str | None) -> None: ...


# --------------------------------------------------------------------------- #
# Issue detail                                                                 #
# --------------------------------------------------------------------------- #


class IssueDetailView:
    """Detail for one issue. A 404 means "not indexed yet", not a failure."""

    def __init__(self, api: ReleaseAgentApi, repo: str, issue_number: int):
        self._api = api
        self.repo = repo
        self.issue_number = issue_number
        self.detail: dict | None = None
        self.error: str | None = None
        self.not_found = False
        self.is_loading = False

    async def load(self) -> None:
        self.is_loading = True
        self.error = None
        self.not_found = False
        try:
            self.detail = await self._api.get_issue_detail(
                self.repo,
                self.issue_number,
                min_similarity=DETAIL_MIN_SIMILARITY,
                limit=DETAIL_LIMIT,
            )
        except ApiError as e:
            if e.status == 404:
                self.not_found = True
                self.detail = None
            else:
                self.error = error_message(e, "Failed to load issue details")
        except BACKEND_ERRORS as e:
            self.error = error_message(e, "Failed to load issue details")
        finally:
            self.is_loading = False

    @property
    def message(self) -> str | None:
        """The single line to show the user, if any."""
        return NOT_FOUND_MESSAGE if self.not_found else self.error


# --------------------------------------------------------------------------- #
# Version → product → clusters cascade                                         #
# --------------------------------------------------------------------------- #


class IssueBrowser:
    """Version and product selection plus the cluster/top-issue lists they drive.

    Result sets are cached per (kind, version, product) in a LatestWins, so
    switching back to a filter shows its last result immediately and a slow
    answer for an old request never overwrites a newer one.
    """

    def __init__(
        self,
        api: ReleaseAgentApi,
        repo: str,
        prefs: FilterPrefs | None = None,
        cluster_limit: int | None = None,
    ):
        self._api = api
        self.repo = repo
        self._prefs = prefs
        self.cluster_limit = cluster_limit
        self._results = LatestWins()
        self.versions: list[dict] = []
        self.products: list[dict] = []
        self.version: str | None = None
        self.product: str | None = None
        self.error: str | None = None

    def _key(self, kind: str) -> tuple:
        return (kind, self.version, self.product)

    async def load_versions(self) -> None:
        res = await self._api.list_issue_versions(self.repo)
        self.versions = res.get("versions") or []
        offered = [v.get("targetVersion") for v in self.versions]

        found, remembered = self._prefs.get_version() if self._prefs else (False, None)
        if found and remembered in offered:
            self.version = remembered
        elif res.get("defaultTargetVersion") is not None:
            self.version = res["defaultTargetVersion"]
        else:
            self.version = offered[0] if offered else None

    async def load_products(self) -> None:
        res = await self._api.list_issue_products(self.repo, self.version)
        self.products = res.get("products") or []
        offered = [p.get("productLabel") for p in self.products]

        remembered = self._prefs.get_product() if self._prefs else None
        if remembered in offered:
            self.product = remembered
        else:
            self.product = offered[0] if offered else None

    async def load(self) -> None:
        """Run the whole cascade: versions, products, then clusters."""
        self.error = None
        try:
            await self.load_versions()
            await self.load_products()
        except BACKEND_ERRORS as e:
            self.error = error_message(e, "Failed to load")
            return
        await self.load_clusters()

    async def select_version(self, version: str | None) -> None:
        self.version = version
        if self._prefs:
            self._prefs.set_version(version)
        self.error = None
        try:
            await self.load_products()
        except BACKEND_ERRORS as e:
            self.error = error_message(e, "Failed to load products")
            return
        await self.load_clusters()

    async def select_product(self, product: str | None) -> None:
        self.product = product
        if self._prefs:
            self._prefs.set_product(product)
        await self.load_clusters()

    async def _load(self, kind: str, factory) -> Any:
        self.error = None
        try:
            return await self._results.fetch(self._key(kind), factory)
        except BACKEND_ERRORS as e:
            self.error = error_message(e, "Failed to load")
            return None

    async def load_clusters(self, limit: int | None = None) -> Any:
        """Fetch clusters for the current filters. Returns STALE when superseded."""
        if not self.product:
            return None
        product = self.product
        limit = self.cluster_limit if limit is None else limit
        return await self._load("clusters", lambda: self._api.list_issue_clusters(self.repo, product, limit))

    async def load_top_issues(self, limit: int | None = None) -> Any:
        version, product = self.version, self.product
        return await self._load(
            "top",
            lambda: self._api.get_top_issues_by_reactions(self.repo, version, product, limit),
        )

    @property
    def clusters(self) -> list[dict]:
        return (self._results.peek(self._key("clusters")) or {}).get("clusters") or []

    @property
    def top_issues(self) -> list[dict]:
        return (self._results.peek(self._key("top")) or {}).get("issues") or []


# --------------------------------------------------------------------------- #
# Recent issues                                                                #
# --------------------------------------------------------------------------- #


@dataclass
class IssuePage:
    issues: list[dict] = field(default_factory=list)
    page: int = 0
    has_more: bool = False


async def load_recent_issues(
    api: ReleaseAgentApi,
    repo: str,
    page: int = 0,
    page_size: int = RECENT_PAGE_SIZE,
    **filters: Any,
) -> IssuePage:
    """One page of issues, asking for one extra row to learn whether more exist."""
    res = await api.search_issues(repo, limit=page_size + 1, offset=page * page_size, **filters)
    rows = res.get("issues") or []
    return IssuePage(issues=rows[:page_size], page=page, has_more=len(rows) > page_size)


# --------------------------------------------------------------------------- #
# Semantic search                                                              #
# --------------------------------------------------------------------------- #

_SEARCH_SLOT = "semantic-search"


class SemanticSearch:
    """Search-as-you-type over the semantic search endpoint.

    set_query() waits for `delay` seconds of quiet before searching and ignores
    queries shorter than `min_length`. Only the newest query's answer is kept.
    """

    def __init__(
        self,
        api: ReleaseAgentApi,
        repo: str,
        *,
        min_length: int = 3,
        delay: float = 0.3,
        product_label: str | None = None,
        min_similarity: float = SEARCH_MIN_SIMILARITY,
        limit: int = SEARCH_LIMIT,
    ):
        self._api = api
        self.repo = repo
        self.min_length = min_length
        self.product_label = product_label
        self.min_similarity = min_similarity
        self.limit = limit
        self._latest = LatestWins()
        self._debouncer = Debouncer(delay, self.search)
        self.results: list[dict] = []
        self.info: dict | None = None
        self.error: str | None = None

    def set_query(self, text: str) -> None:
        query = text.strip()
        if len(query) < self.min_length:
            self._debouncer.cancel()
            self._latest.invalidate(_SEARCH_SLOT)
            self.results = []
            self.info = None
            return
        self._debouncer.call(query)

    async def search(self, query: str | None = None, issue_number: int | None = None) -> list[dict]:
        """Search immediately by free text or by an existing issue's embedding."""
        self.error = None
        try:
            res = await self._latest.fetch(
                _SEARCH_SLOT,
                lambda: self._api.semantic_search(
                    self.repo,
                    issue_number=issue_number,
                    query=query,
                    product_label=self.product_label,
                    min_similarity=self.min_similarity,
                    limit=self.limit,
                ),
            )
        except BACKEND_ERRORS as e:
            self.error = error_message(e, "Search failed")
            return self.results
        if res is STALE:
            return self.results
        self.results = res.get("results") or []
        self.info = {"mode": res.get("mode"), "issueNumber": res.get("issueNumber"), "query": res.get("query")}
        return self.results

    async def settle(self) -> None:
        """Wait for any search the debouncer already started."""
        await self._debouncer.flush()

    async def aclose(self) -> None:
        await self._debouncer.aclose()
