"""Shared test fixtures for pagestore tests."""

from __future__ import annotations

from typing import Any

import pytest

from pagestore.config import PageStoreConfig
from pagestore.keys import create_page_id
from pagestore.operations import PageStorageOperations
from pagestore.pages import PageManager
from pagestore.storage import SqliteTable
from pagestore.types import Page

TENANT = "root"
LOCALE = "en-US"


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary SQLite database path."""
    return str(tmp_path / "test.db")


@pytest.fixture
def config():
    return PageStoreConfig()


@pytest.fixture
def table(tmp_db, config):
    """Create a SqliteTable with a temporary database."""
    t = SqliteTable(tmp_db, config=config)
    yield t
    t.close()


@pytest.fixture
def ops(table, config):
    return PageStorageOperations(table, config=config)


@pytest.fixture
def manager(ops):
    return PageManager(ops, tenant=TENANT, locale=LOCALE)


@pytest.fixture
def make_page():
    """Factory for page revisions with sensible defaults."""

    def _make(pid: str = "p1", version: int = 1, **overrides: Any) -> Page:
        data: dict[str, Any] = {
            "id": create_page_id(pid, version),
            "pid": pid,
            "version": version,
            "tenant": TENANT,
            "locale": LOCALE,
            "title": f"Page {pid} v{version}",
            "path": f"/{pid}",
        }
        data.update(overrides)
        return Page(**data)

    return _make
