"""Tests for release-agent-store implementations."""

from __future__ import annotations

import json

from release_agent_store.memory import MemoryStore
from release_agent_store.models import AuthUser
from release_agent_store.prefs import ISSUE_VERSION_KEY, IssueFilterPrefs
from release_agent_store.sqlite import SQLiteStore
from release_agent_store.tokens import (
    AUTH_CACHE_KEY,
    AUTH_CACHE_TTL,
    AUTH_TOKEN_KEY,
    LEGACY_TOKEN_KEY,
    clear_auth_cache,
    clear_stored_auth_token,
    get_stored_auth_token,
    read_auth_cache,
    set_stored_auth_token,
    write_auth_cache,
)

NOW = 1_700_000_000.0
USER = AuthUser(login="octocat", source="community-md")


# ---------------------------------------------------------------------------
# MemoryStore
# ---------------------------------------------------------------------------


class TestMemoryStore:
    def test_get_missing_returns_none(self):
        assert MemoryStore().get("nope") is None

    def test_set_and_get(self):
        store = MemoryStore()
        store.set("k", "v")
        assert store.get("k") == "v"

    def test_remove_missing_does_not_raise(self):
        store = MemoryStore()
        store.remove("nope")  # must not raise

    def test_seeded_values(self):
        store = MemoryStore({"a": "1"})
        assert store.get("a") == "1"
        assert store.get("b") is None


# ---------------------------------------------------------------------------
# SQLiteStore
# ---------------------------------------------------------------------------


class TestSQLiteStore:
    def test_set_and_get(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "state.db"))
        store.set("k", "v")
        assert store.get("k") == "v"
        store.close()

    def test_set_overwrites(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "state.db"))
        store.set("k", "one")
        store.set("k", "two")
        assert store.get("k") == "two"
        store.close()

    def test_remove(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "state.db"))
        store.set("k", "v")
        store.remove("k")
        assert store.get("k") is None
        store.remove("k")  # second remove is a no-op
        store.close()

    def test_persists_across_connections(self, tmp_path):
        """Data written by one SQLiteStore instance must be readable by another."""
        db = str(tmp_path / "state.db")
        store1 = SQLiteStore(db_path=db)
        store1.set(AUTH_TOKEN_KEY, "tok")
        store1.close()

        store2 = SQLiteStore(db_path=db)
        assert store2.get(AUTH_TOKEN_KEY) == "tok"
        store2.close()


# ---------------------------------------------------------------------------
# Token storage
# ---------------------------------------------------------------------------


class TestTokenStorage:
    def test_none_when_neither_key_set(self):
        assert get_stored_auth_token(MemoryStore()) is None

    def test_legacy_value_trimmed_when_only_legacy_set(self):
        store = MemoryStore({LEGACY_TOKEN_KEY: "  legacy-tok \n"})
        assert get_stored_auth_token(store) == "legacy-tok"

    def test_primary_wins_over_legacy(self):
        store = MemoryStore({AUTH_TOKEN_KEY: "new", LEGACY_TOKEN_KEY: "old"})
        assert get_stored_auth_token(store) == "new"

    def test_blank_token_is_none(self):
        assert get_stored_auth_token(MemoryStore({AUTH_TOKEN_KEY: "   "})) is None

    def test_set_removes_legacy_key(self):
        store = MemoryStore({LEGACY_TOKEN_KEY: "old"})
        set_stored_auth_token(store, " fresh ")
        assert store.get(AUTH_TOKEN_KEY) == "fresh"
        assert store.get(LEGACY_TOKEN_KEY) is None

    def test_clear_removes_both(self):
        store = MemoryStore({AUTH_TOKEN_KEY: "a", LEGACY_TOKEN_KEY: "b"})
        clear_stored_auth_token(store)
        assert get_stored_auth_token(store) is None


# ---------------------------------------------------------------------------
# Auth cache
# ---------------------------------------------------------------------------


class TestAuthCache:
    def test_fresh_entry_returned(self):
        store = MemoryStore()
        write_auth_cache(store, "tok", USER, now=NOW - (4 * 60 + 59))
        entry = read_auth_cache(store, "tok", now=NOW)
        assert entry is not None
        assert entry.user == USER

    def test_stale_entry_is_absent(self):
        store = MemoryStore()
        write_auth_cache(store, "tok", USER, now=NOW - (5 * 60 + 1))
        assert read_auth_cache(store, "tok", now=NOW) is None

    def test_exactly_ttl_is_expired(self):
        store = MemoryStore()
        write_auth_cache(store, "tok", USER, now=NOW - AUTH_CACHE_TTL)
        assert read_auth_cache(store, "tok", now=NOW) is None

    def test_entry_for_other_token_never_returned(self):
        store = MemoryStore()
        write_auth_cache(store, "old-token", USER, now=NOW)
        clear_stored_auth_token(store)
        set_stored_auth_token(store, "new-token")
        assert read_auth_cache(store, "new-token", now=NOW) is None

    def test_corrupt_entry_is_absent(self):
        store = MemoryStore({AUTH_CACHE_KEY: "{not json"})
        assert read_auth_cache(store, "tok", now=NOW) is None

    def test_missing_fields_are_absent(self):
        store = MemoryStore({AUTH_CACHE_KEY: json.dumps({"token": "tok"})})
        assert read_auth_cache(store, "tok", now=NOW) is None

    def test_clear(self):
        store = MemoryStore()
        write_auth_cache(store, "tok", USER, now=NOW)
        clear_auth_cache(store)
        assert read_auth_cache(store, "tok", now=NOW) is None

    def test_written_format(self):
        store = MemoryStore()
        write_auth_cache(store, "tok", USER, now=NOW)
        data = json.loads(store.get(AUTH_CACHE_KEY))
        assert data == {"token": "tok", "user": {"login": "octocat", "source": "community-md"}, "checkedAt": NOW}


# ---------------------------------------------------------------------------
# Issue filter prefs
# ---------------------------------------------------------------------------


class TestIssueFilterPrefs:
    def test_nothing_remembered(self):
        prefs = IssueFilterPrefs(MemoryStore())
        assert prefs.get_version() == (False, None)
        assert prefs.get_product() is None

    def test_unversioned_roundtrips_as_none(self):
        store = MemoryStore()
        prefs = IssueFilterPrefs(store)
        prefs.set_version(None)
        assert store.get(ISSUE_VERSION_KEY) == "__null__"
        assert prefs.get_version() == (True, None)

    def test_version_and_product(self):
        prefs = IssueFilterPrefs(MemoryStore())
        prefs.set_version("0.90")
        prefs.set_product("Product-FancyZones")
        assert prefs.get_version() == (True, "0.90")
        assert prefs.get_product() == "Product-FancyZones"

    def test_clearing_product(self):
        prefs = IssueFilterPrefs(MemoryStore())
        prefs.set_product("Product-FancyZones")
        prefs.set_product(None)
        assert prefs.get_product() is None
