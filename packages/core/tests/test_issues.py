"""Tests for the issue detail, browser, recent list and semantic search views."""

import asyncio

import httpx
import pytest

from release_agent_core.issues import (
    NOT_FOUND_MESSAGE,
    IssueBrowser,
    IssueDetailView,
    SemanticSearch,
    load_recent_issues,
)
from release_agent_core.latest import STALE


class MemoryPrefs:
    def __init__(self, version=None, has_version=False, product=None):
        self.version = version
        self.has_version = has_version
        self.product = product

    def get_version(self):
        return self.has_version, self.version

    def set_version(self, version):
        self.version, self.has_version = version, True

    def get_product(self):
        return self.product

    def set_product(self, product):
        self.product = product


# ---------------------------------------------------------------------------
# Issue detail
# ---------------------------------------------------------------------------


class TestIssueDetailView:
    @pytest.mark.asyncio
    async def test_requests_detail_with_fixed_similarity(self, backend):
        backend.on("GET", "/issues/1234/detail", {"issue": {"issueNumber": 1234}, "similarIssues": []})
        async with backend.api() as api:
            view = IssueDetailView(api, "microsoft/PowerToys", 1234)
            await view.load()

        params = backend.last().url.params
        assert params["minSimilarity"] == "0.84"
        assert params["limit"] == "20"
        assert view.detail["issue"]["issueNumber"] == 1234
        assert view.message is None

    @pytest.mark.asyncio
    async def test_404_is_not_found_not_an_error(self, backend):
        backend.on("GET", "/issues/99/detail", {"message": "Issue not found"}, status=404)
        async with backend.api() as api:
            view = IssueDetailView(api, "o/r", 99)
            await view.load()

        assert view.not_found is True
        assert view.detail is None
        assert view.error is None
        assert view.message == NOT_FOUND_MESSAGE

    @pytest.mark.asyncio
    async def test_other_failures_are_errors(self, backend):
        backend.on("GET", "/issues/7/detail", {"message": "Embedding service down"}, status=503)
        async with backend.api() as api:
            view = IssueDetailView(api, "o/r", 7)
            await view.load()

        assert view.not_found is False
        assert view.error == "Embedding service down"
        assert view.message == "Embedding service down"


# ---------------------------------------------------------------------------
# Browser cascade
# ---------------------------------------------------------------------------


def _clusters_for_product(request):
    return httpx.Response(200, json={"clusters": [{"clusterId": request.url.params["productLabel"]}]})


def _browser_backend(backend):
    backend.on(
        "GET",
        "/issues/versions",
        {
            "versions": [{"targetVersion": "0.91", "issueCount": 10}, {"targetVersion": "0.90", "issueCount": 20}],
            "defaultTargetVersion": "0.90",
        },
    )
    backend.on(
        "GET",
        "/issues/products",
        {
            "products": [
                {"productLabel": "Product-Awake", "issueCount": 4},
                {"productLabel": "Product-Peek", "issueCount": 2},
            ]
        },
    )
    backend.on("GET", "/issues/clusters", _clusters_for_product)


class TestIssueBrowser:
    @pytest.mark.asyncio
    async def test_defaults_without_prefs(self, backend):
        _browser_backend(backend)
        async with backend.api() as api:
            browser = IssueBrowser(api, "o/r")
            await browser.load()

        assert browser.version == "0.90"
        assert browser.product == "Product-Awake"
        assert browser.clusters == [{"clusterId": "Product-Awake"}]

    @pytest.mark.asyncio
    async def test_remembered_filters_are_restored_when_offered(self, backend):
        _browser_backend(backend)
        prefs = MemoryPrefs(version="0.91", has_version=True, product="Product-Peek")
        async with backend.api() as api:
            browser = IssueBrowser(api, "o/r", prefs)
            await browser.load()

        assert browser.version == "0.91"
        assert browser.product == "Product-Peek"

    @pytest.mark.asyncio
    async def test_stale_remembered_filters_fall_back(self, backend):
        _browser_backend(backend)
        prefs = MemoryPrefs(version="0.42", has_version=True, product="Product-Gone")
        async with backend.api() as api:
            browser = IssueBrowser(api, "o/r", prefs)
            await browser.load()

        assert browser.version == "0.90"
        assert browser.product == "Product-Awake"

    @pytest.mark.asyncio
    async def test_selection_is_persisted(self, backend):
        _browser_backend(backend)
        prefs = MemoryPrefs()
        async with backend.api() as api:
            browser = IssueBrowser(api, "o/r", prefs)
            await browser.load()
            await browser.select_version(None)
            await browser.select_product("Product-Peek")

        assert prefs.get_version() == (True, None)
        assert prefs.get_product() == "Product-Peek"
        products_requests = [r for r in backend.requests if r.url.path == "/issues/products"]
        assert products_requests[-1].url.params["targetVersion"] == "__null__"
        assert browser.clusters == [{"clusterId": "Product-Peek"}]

    @pytest.mark.asyncio
    async def test_cluster_limit_is_sent(self, backend):
        _browser_backend(backend)
        async with backend.api() as api:
            browser = IssueBrowser(api, "o/r", cluster_limit=5)
            await browser.load()

        assert backend.last().url.params["limit"] == "5"

    @pytest.mark.asyncio
    async def test_failure_sets_error(self, backend):
        backend.on("GET", "/issues/versions", {"message": "Not indexed"}, status=400)
        async with backend.api() as api:
            browser = IssueBrowser(api, "o/r")
            await browser.load()

        assert browser.error == "Not indexed"
        assert browser.clusters == []

    @pytest.mark.asyncio
    async def test_slow_answer_for_same_filter_does_not_overwrite(self):
        futures = []

        class SlowApi:
            async def list_issue_clusters(self, repo, product_label, limit=None):
                future = asyncio.get_running_loop().create_future()
                futures.append(future)
                return await future

        browser = IssueBrowser(SlowApi(), "o/r")
        browser.version = "0.90"
        browser.product = "Product-Awake"
        first = asyncio.ensure_future(browser.load_clusters())
        await asyncio.sleep(0)
        second = asyncio.ensure_future(browser.load_clusters())
        await asyncio.sleep(0)

        futures[1].set_result({"clusters": [{"clusterId": "new"}]})
        assert (await second)["clusters"] == [{"clusterId": "new"}]
        futures[0].set_result({"clusters": [{"clusterId": "old"}]})

        assert await first is STALE
        assert browser.clusters == [{"clusterId": "new"}]

    @pytest.mark.asyncio
    async def test_results_are_cached_per_filter(self, backend):
        _browser_backend(backend)
        async with backend.api() as api:
            browser = IssueBrowser(api, "o/r")
            await browser.load()
            await browser.select_product("Product-Peek")
            browser.product = "Product-Awake"

        assert browser.clusters == [{"clusterId": "Product-Awake"}]


# ---------------------------------------------------------------------------
# Recent issues
# ---------------------------------------------------------------------------


class TestRecentIssues:
    @pytest.mark.asyncio
    async def test_asks_for_one_extra_row(self, backend):
        rows = [{"issueNumber": n} for n in range(31)]
        backend.on("GET", "/issues/search", {"issues": rows})
        async with backend.api() as api:
            page = await load_recent_issues(api, "o/r", page=2, state="open")

        params = backend.last().url.params
        assert params["limit"] == "31"
        assert params["offset"] == "60"
        assert params["state"] == "open"
        assert len(page.issues) == 30
        assert page.has_more is True
        assert page.page == 2

    @pytest.mark.asyncio
    async def test_last_page(self, backend):
        backend.on("GET", "/issues/search", {"issues": [{"issueNumber": 1}]})
        async with backend.api() as api:
            page = await load_recent_issues(api, "o/r")
        assert page.has_more is False
        assert page.issues == [{"issueNumber": 1}]


# ---------------------------------------------------------------------------
# Semantic search
# ---------------------------------------------------------------------------


class TestSemanticSearch:
    @pytest.mark.asyncio
    async def test_search_by_text(self, backend):
        backend.on(
            "GET",
            "/issues/semantic-search",
            {"mode": "query", "query": "dark mode", "results": [{"issueNumber": 5, "similarity": 0.9}]},
        )
        async with backend.api() as api:
            search = SemanticSearch(api, "o/r")
            results = await search.search("dark mode")

        params = backend.last().url.params
        assert params["q"] == "dark mode"
        assert params["minSimilarity"] == "0.8"
        assert params["limit"] == "20"
        assert results == [{"issueNumber": 5, "similarity": 0.9}]
        assert search.info["mode"] == "query"

    @pytest.mark.asyncio
    async def test_search_by_issue_number(self, backend):
        backend.on("GET", "/issues/semantic-search", {"mode": "issue", "issueNumber": 42, "results": []})
        async with backend.api() as api:
            search = SemanticSearch(api, "o/r")
            await search.search(issue_number=42)

        params = backend.last().url.params
        assert params["issueNumber"] == "42"
        assert "q" not in params

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_results(self, backend):
        backend.on("GET", "/issues/semantic-search", {"mode": "query", "results": [{"issueNumber": 1}]})
        async with backend.api() as api:
            search = SemanticSearch(api, "o/r")
            await search.search("first")
            backend.on("GET", "/issues/semantic-search", {"message": "Rate limited"}, status=429)
            await search.search("second")

        assert search.error == "Rate limited"
        assert search.results == [{"issueNumber": 1}]

    @pytest.mark.asyncio
    async def test_typing_is_debounced_and_short_queries_ignored(self):
        queries = []

        class RecordingApi:
            async def semantic_search(self, repo, **kwargs):
                queries.append(kwargs["query"])
                return {"mode": "query", "results": [{"q": kwargs["query"]}]}

        search = SemanticSearch(RecordingApi(), "o/r", delay=0.02)
        search.set_query("da")
        search.set_query("dar")
        search.set_query("dark")
        search.set_query("dark mode")
        await asyncio.sleep(0.06)
        await search.settle()

        assert queries == ["dark mode"]
        assert search.results == [{"q": "dark mode"}]

        search.set_query("x")
        assert search.results == []
        await search.aclose()

    @pytest.mark.asyncio
    async def test_out_of_order_answers_keep_newest(self):
        pending = {}

        class SlowApi:
            async def semantic_search(self, repo, **kwargs):
                pending[kwargs["query"]] = asyncio.get_running_loop().create_future()
                return await pending[kwargs["query"]]

        search = SemanticSearch(SlowApi(), "o/r")
        old = asyncio.ensure_future(search.search("old query"))
        await asyncio.sleep(0)
        new = asyncio.ensure_future(search.search("new query"))
        await asyncio.sleep(0)

        pending["new query"].set_result({"results": [{"issueNumber": 2}]})
        await new
        pending["old query"].set_result({"results": [{"issueNumber": 1}]})
        await old

        assert search.results == [{"issueNumber": 2}]
