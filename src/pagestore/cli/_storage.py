"""CLI helpers for backend-aware table and manager construction."""

from __future__ import annotations

import os

from pagestore.config import PageStoreConfig
from pagestore.operations import PageStorageOperations
from pagestore.pages import PageManager
from pagestore.storage import TableProtocol, open_table


def resolve_storage_binding() -> tuple[str | None, str | None]:
    """Return (db_path, storage_uri) from CLI state."""
    from pagestore.cli import state

    if state.storage_uri:
        return None, state.storage_uri
    return state.db, None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


def _config_from_env() -> PageStoreConfig:
    """Build storage config from CLI environment defaults."""
    defaults = PageStoreConfig()
    return PageStoreConfig(
        dynamodb_region=os.getenv("PAGESTORE_DYNAMODB_REGION"),
        dynamodb_endpoint_url=os.getenv("PAGESTORE_DYNAMODB_ENDPOINT_URL"),
        max_batch_items=_env_int("PAGESTORE_MAX_BATCH_ITEMS", defaults.max_batch_items),
        default_list_limit=_env_int("PAGESTORE_DEFAULT_LIST_LIMIT", defaults.default_list_limit),
    )


def open_table_from_state() -> TableProtocol:
    """Open the table using global CLI storage selection."""
    db_path, storage_uri = resolve_storage_binding()
    return open_table(db_path, storage_uri=storage_uri, config=_config_from_env())


def open_manager() -> tuple[TableProtocol, PageManager]:
    """Open table + page manager for the CLI's tenant and locale."""
    from pagestore.cli import state

    config = _config_from_env()
    table = open_table_from_state()
    ops = PageStorageOperations(table, config=config)
    tenant = state.tenant or config.default_tenant
    locale = state.locale or config.default_locale
    return table, PageManager(ops, tenant=tenant, locale=locale)
