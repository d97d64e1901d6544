"""Response envelope shared by API callers and the CLI's JSON output."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from pagestore.errors import PageStoreError
from pagestore.query import ListResponse


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, ListResponse):
        return {"items": [_plain(i) for i in value.items], "meta": value.meta.as_dict()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


def ok(data: Any) -> dict[str, Any]:
    """``{"data": ..., "error": None}``; pages and list responses become plain dicts."""
    return {"data": _plain(data), "error": None}


def error(exc: PageStoreError) -> dict[str, Any]:
    return {"data": None, "error": exc.to_dict()}
