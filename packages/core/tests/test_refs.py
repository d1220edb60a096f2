"""Tests for GitHub ref lookup."""

import asyncio
from unittest.mock import MagicMock

import pytest
from github import GithubException

from release_agent_core.gh.refs import GitRef, RefSearch, list_branches, list_tags, search_commits


def _named(name, sha):
    obj = MagicMock()
    obj.name = name
    obj.commit.sha = sha
    return obj


def _commit(sha, message):
    obj = MagicMock()
    obj.sha = sha
    obj.commit.message = message
    return obj


def _repo(tags=(), branches=(), commits=()):
    repo = MagicMock()
    repo.get_tags.return_value = list(tags)
    repo.get_branches.return_value = list(branches)
    repo.get_commits.return_value = list(commits)
    return repo


class TestListing:
    def test_tags(self):
        repo = _repo(tags=[_named("v0.90.0", "a" * 40), _named("v0.89.0", "b" * 40)])
        assert list_tags(repo) == [
            GitRef("tag", "v0.90.0", "a" * 40, "v0.90.0"),
            GitRef("tag", "v0.89.0", "b" * 40, "v0.89.0"),
        ]

    def test_branches_respect_limit(self):
        repo = _repo(branches=[_named(f"b{i}", str(i) * 40) for i in range(5)])
        assert [b.name for b in list_branches(repo, limit=2)] == ["b0", "b1"]


class TestSearchCommits:
    def test_short_query_makes_no_call(self):
        repo = _repo()
        assert search_commits(repo, "abc") == []
        repo.get_commits.assert_not_called()

    def test_display_name_is_short_sha_and_first_line(self):
        sha = "0123456789abcdef0123456789abcdef01234567"
        message = "Fix the tray icon flicker that happens when the display configuration changes\n\nDetails"
        repo = _repo(commits=[_commit(sha, message)])

        refs = search_commits(repo, "0123")

        repo.get_commits.assert_called_once_with(sha="0123")
        assert refs == [GitRef("commit", sha, sha, "0123456 - " + message.split("\n")[0][:50])]

    def test_unknown_ref_returns_empty(self):
        repo = _repo()
        repo.get_commits.side_effect = GithubException(422, {"message": "No commit found"}, None)
        assert search_commits(repo, "deadbeef") == []


class TestRefSearch:
    @pytest.mark.asyncio
    async def test_load_and_filter_case_insensitively(self):
        repo = _repo(
            tags=[_named("v0.90.0", "a" * 40), _named("v0.89.0", "b" * 40)],
            branches=[_named("main", "c" * 40), _named("release/V0.90", "d" * 40)],
        )
        search = RefSearch("microsoft/PowerToys", repo=repo)
        await search.load()

        search.set_query("v0.90")

        assert [r.name for r in search.matches()] == ["v0.90.0", "release/V0.90"]
        await search.aclose()

    @pytest.mark.asyncio
    async def test_load_failure_leaves_lists_empty(self):
        repo = _repo()
        repo.get_tags.side_effect = GithubException(404, {"message": "Not Found"}, None)
        search = RefSearch("o/missing", repo=repo)

        await search.load()

        assert search.tags == []
        assert search.branches == []

    @pytest.mark.asyncio
    async def test_commit_search_is_debounced(self):
        sha = "f" * 40
        repo = _repo(commits=[_commit(sha, "Bump version")])
        search = RefSearch("o/r", repo=repo, delay=0.02)

        search.set_query("ffff")
        search.set_query("fffff")
        await asyncio.sleep(0.06)
        await search.settle()

        repo.get_commits.assert_called_once_with(sha="fffff")
        assert search.matches() == [GitRef("commit", sha, sha, "fffffff - Bump version")]
        await search.aclose()

    @pytest.mark.asyncio
    async def test_short_query_clears_commits(self):
        sha = "f" * 40
        repo = _repo(commits=[_commit(sha, "Bump version")])
        search = RefSearch("o/r", repo=repo)

        await search.search("ffff")
        assert search.commits

        search.set_query("ff")

        assert search.commits == []
        await search.aclose()
