"""Last-selected issue filters, remembered between runs."""

from __future__ import annotations

from release_agent_store.base import BaseStore

ISSUE_VERSION_KEY = "release-agent.issues.version"
ISSUE_PRODUCT_KEY = "release-agent.issues.product"

# "Unversioned" is a real selection, distinct from "nothing remembered".
_UNVERSIONED = "__null__"


class IssueFilterPrefs:
    """Read/write the issue version and product filters.

    get_version() returns a (found, value) pair because None is a legitimate
    remembered version (unversioned issues).
    """

    def __init__(self, store: BaseStore):
        self._store = store

    def get_version(self) -> tuple[bool, str | None]:
        raw = self._store.get(ISSUE_VERSION_KEY)
        if raw is None:
            return False, None
        return True, (None if raw == _UNVERSIONED else raw)

    def set_version(self, version: str | None) -> None:
        self._store.set(ISSUE_VERSION_KEY, _UNVERSIONED if version is None else version)

    def get_product(self) -> str | None:
        return self._store.get(ISSUE_PRODUCT_KEY) or None

    def set_product(self, product: str | None) -> None:
        if product:
            self._store.set(ISSUE_PRODUCT_KEY, product)
        else:
            self._store.remove(ISSUE_PRODUCT_KEY)
