"""Configuration for the page storage layer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class PageStoreConfig:
    """Configuration for page storage operations and table bindings."""

    table_name: str = "page-builder"
    index_name: str = "GSI1"
    max_batch_items: int = 25
    default_list_limit: int = 50
    default_tenant: str = "root"
    default_locale: str = "en-US"
    dynamodb_region: str | None = None
    dynamodb_endpoint_url: str | None = None
    request_timeout_s: float = 10.0
    unprocessed_retry_attempts: int = 3
    unprocessed_backoff_s: float = 0.05
