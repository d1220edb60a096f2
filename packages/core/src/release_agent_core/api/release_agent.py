"""Typed surface of the release-agent backend.

One coroutine per endpoint. Pure request shaping: nothing here inspects a
response beyond handing it back to the caller.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote, urlencode

import httpx

from release_agent_core.api.client import join_url, request_json

# target_version sentinel meaning "not specified". None means unversioned.
ALL = "__all__"
_NULL_VERSION = "__null__"


def _seg(value: str | int) -> str:
    return quote(str(value), safe="")


def github_start_url(base_url: str, return_to: str) -> str:
    """Backend URL that kicks off GitHub OAuth and later redirects to return_to."""
    return f"{join_url(base_url, '/auth/github/start')}?{urlencode({'returnTo': return_to})}"


def _version_param(target_version: str | None) -> str:
    return _NULL_VERSION if target_version is None else target_version


class ReleaseAgentApi:
    """Async client for the release-agent HTTP API.

    The optional transport exists so tests can swap in httpx.MockTransport.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self._token = token
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> ReleaseAgentApi:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", None) or {}
        if self._token and "authorization" not in headers:
            headers["authorization"] = f"Bearer {self._token}"
        return await request_json(self._client, self.base_url, path, headers=headers, **kwargs)

    # ------------------------------------------------------------------ #
    # Sessions and jobs                                                    #
    # ------------------------------------------------------------------ #

    async def list_sessions(self) -> dict:
        return await self._request("/sessions")

    async def create_session(self, body: dict) -> dict:
        return await self._request("/sessions", method="POST", body=body)

    async def get_session(self, session_id: str) -> dict:
        return await self._request(f"/sessions/{_seg(session_id)}")

    async def delete_session(self, session_id: str) -> None:
        await self._request(f"/sessions/{_seg(session_id)}", method="DELETE")

    async def list_jobs(self, session_id: str) -> dict:
        return await self._request(f"/sessions/{_seg(session_id)}/jobs")

    # ------------------------------------------------------------------ #
    # Artifacts                                                            #
    # ------------------------------------------------------------------ #

    async def get_changes_artifact(self, session_id: str) -> dict:
        return await self._request(f"/sessions/{_seg(session_id)}/artifacts/changes")

    async def get_release_notes_artifact(self, session_id: str) -> dict:
        return await self._request(f"/sessions/{_seg(session_id)}/artifacts/release-notes")

    async def patch_release_notes_artifact(self, session_id: str, operations: list[dict]) -> dict:
        return await self._request(
            f"/sessions/{_seg(session_id)}/artifacts/release-notes",
            method="PATCH",
            body={"operations": operations},
        )

    async def regenerate_release_note_item(self, session_id: str, item_id: str) -> dict:
        return await self._request(
            f"/sessions/{_seg(session_id)}/artifacts/release-notes/items/{_seg(item_id)}/regenerate",
            method="POST",
        )

    async def get_hotspots_artifact(self, session_id: str) -> dict:
        return await self._request(f"/sessions/{_seg(session_id)}/artifacts/hotspots")

    async def get_test_plan_artifact(self, session_id: str) -> dict:
        return await self._request(f"/sessions/{_seg(session_id)}/artifacts/test-plan")

    async def patch_test_plan_artifact(self, session_id: str, operations: list[dict]) -> dict:
        return await self._request(
            f"/sessions/{_seg(session_id)}/artifacts/test-plan",
            method="PATCH",
            body={"operations": operations},
        )

    async def queue_test_plan_checklists(self, session_id: str, body: dict | None = None) -> dict:
        return await self._request(
            f"/sessions/{_seg(session_id)}/artifacts/test-plan/checklists/queue",
            method="POST",
            body=body or {},
        )

    async def create_export(self, session_id: str, targets: list[str], github: dict | None = None) -> dict:
        body: dict = {"targets": targets}
        if github is not None:
            body["github"] = github
        return await self._request(f"/sessions/{_seg(session_id)}/exports", method="POST", body=body)

    # ------------------------------------------------------------------ #
    # Issue clustering                                                     #
    # ------------------------------------------------------------------ #

    async def list_issue_versions(self, repo: str) -> dict:
        return await self._request("/issues/versions", params={"repo": repo})

    async def list_issue_products(self, repo: str, target_version: str | None = ALL) -> dict:
        params = {"repo": repo}
        if target_version != ALL:
            params["targetVersion"] = _version_param(target_version)
        return await self._request("/issues/products", params=params)

    async def list_issue_clusters(self, repo: str, product_label: str, limit: int | None = None) -> dict:
        return await self._request(
            "/issues/clusters",
            params={"repo": repo, "productLabel": product_label, "limit": limit},
        )

    async def get_issue_cluster(self, repo: str, cluster_id: str) -> dict:
        return await self._request(f"/issues/clusters/{_seg(cluster_id)}", params={"repo": repo})

    async def search_issues(
        self,
        repo: str,
        *,
        target_version: str | None = ALL,
        product_labels: list[str] | None = None,
        state: str | None = None,
        cluster_id: str | None = None,
        q: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> dict:
        params = {
            "repo": repo,
            "targetVersion": ALL if target_version == ALL else _version_param(target_version),
            "productLabels": ",".join(product_labels) if product_labels else None,
            "state": state or None,
            "clusterId": cluster_id or None,
            "q": q or None,
            "limit": limit,
            "offset": offset,
        }
        return await self._request("/issues/search", params=params)

    async def get_issue_sync_status(self, repo: str) -> dict:
        return await self._request("/issues/sync-status", params={"repo": repo})

    async def get_issue_stats(self, repo: str) -> dict:
        return await self._request("/issues/stats", params={"repo": repo})

    async def get_issue_dashboard(
        self,
        repo: str,
        *,
        semantic_limit: int | None = None,
        issues_per_semantic: int | None = None,
        min_similarity: float | None = None,
    ) -> dict:
        params = {
            "repo": repo,
            "semanticLimit": semantic_limit,
            "issuesPerSemantic": issues_per_semantic,
            "minSimilarity": min_similarity,
        }
        return await self._request("/issues/dashboard", params=params)

    async def get_top_issues_by_reactions(
        self,
        repo: str,
        target_version: str | None = ALL,
        product_label: str | None = None,
        limit: int | None = None,
    ) -> dict:
        params: dict = {"repo": repo}
        if target_version != ALL:
            params["targetVersion"] = _version_param(target_version)
        params["productLabel"] = product_label or None
        params["limit"] = limit
        return await self._request("/issues/top-by-reactions", params=params)

    async def enqueue_issue_sync(self, repo_full_name: str, full_sync: bool | None = None) -> dict:
        body: dict = {"repoFullName": repo_full_name}
        if full_sync is not None:
            body["fullSync"] = full_sync
        return await self._request("/issues/sync", method="POST", body=body)

    async def reset_and_queue_issue_sync(self, repo_full_name: str, mode: str, queue_full_sync: bool) -> dict:
        return await self._request(
            "/issues/sync-reset",
            method="POST",
            body={"repoFullName": repo_full_name, "mode": mode, "queueFullSync": queue_full_sync},
        )

    async def enqueue_issue_recluster(
        self,
        repo_full_name: str,
        target_version: str | None,
        product_label: str,
        threshold: float,
        top_k: int,
    ) -> dict:
        body = {
            "repoFullName": repo_full_name,
            "targetVersion": target_version,
            "productLabel": product_label,
            "threshold": threshold,
            "topK": top_k,
        }
        return await self._request("/issues/recluster", method="POST", body=body)

    async def find_similar_issues(
        self,
        repo: str,
        issue_number: int,
        *,
        product_label: str | None = None,
        min_similarity: float | None = None,
        limit: int | None = None,
    ) -> dict:
        params = {
            "repo": repo,
            "productLabel": product_label or None,
            "minSimilarity": min_similarity,
            "limit": limit,
        }
        return await self._request(f"/issues/{int(issue_number)}/similar", params=params)

    async def get_issue_detail(
        self,
        repo: str,
        issue_number: int,
        *,
        min_similarity: float | None = None,
        limit: int | None = None,
    ) -> dict:
        params = {"repo": repo, "minSimilarity": min_similarity, "limit": limit}
        return await self._request(f"/issues/{int(issue_number)}/detail", params=params)

    async def semantic_search(
        self,
        repo: str,
        *,
        issue_number: int | None = None,
        query: str | None = None,
        product_label: str | None = None,
        min_similarity: float | None = None,
        limit: int | None = None,
    ) -> dict:
        params = {
            "repo": repo,
            "issueNumber": issue_number,
            "q": query or None,
            "productLabel": product_label or None,
            "minSimilarity": min_similarity,
            "limit": limit,
        }
        return await self._request("/issues/semantic-search", params=params)

    # ------------------------------------------------------------------ #
    # Auth                                                                 #
    # ------------------------------------------------------------------ #

    async def get_me(self, token: str | None = None) -> dict:
        """Identity check. Sends a bearer credential only when token is given."""
        headers = {"authorization": f"Bearer {token}"} if token else None
        return await request_json(self._client, self.base_url, "/auth/me", headers=headers)

    def github_start_url(self, return_to: str) -> str:
        return github_start_url(self.base_url, return_to)
