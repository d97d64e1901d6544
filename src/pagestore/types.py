"""Page model and lifecycle status values."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

MAX_VERSION = 9999


class PageStatus(str, Enum):
    DRAFT = "draft"
    REVIEW_REQUESTED = "review-requested"
    CHANGES_REQUESTED = "changes-requested"
    PUBLISHED = "published"
    UNPUBLISHED = "unpublished"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Page(BaseModel):
    """A single revision of a page.

    ``id`` is always the composite ``pid#NNNN`` form. Attributes that are not
    declared here (editor-specific payloads, plugin fields) are kept as extras
    and round-trip through storage unchanged.
    """

    model_config = ConfigDict(extra="allow", use_enum_values=True)

    id: str
    pid: str
    version: int = Field(ge=1, le=MAX_VERSION)
    tenant: str
    locale: str
    title: str = "Untitled"
    path: str
    status: PageStatus = PageStatus.DRAFT
    tags: list[str] = Field(default_factory=list)
    snippet: str | None = None
    category: str | None = None
    editor: str = "page-builder"
    content: dict[str, Any] | None = None
    settings: dict[str, Any] = Field(default_factory=dict)
    locked: bool = False
    created_on: str = Field(default_factory=now_iso)
    saved_on: str = Field(default_factory=now_iso)
    published_on: str | None = None
    created_by: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _check_id(self) -> Page:
        from pagestore.keys import create_page_id

        expected = create_page_id(self.pid, self.version)
        if self.id != expected:
            raise ValueError(f"Page id '{self.id}' does not match pid/version ('{expected}')")
        return self

    def to_record(self) -> dict[str, Any]:
        """Plain JSON-compatible dict of every attribute, extras included."""
        return self.model_dump(mode="json")

    def with_changes(self, **changes: Any) -> Page:
        """Return a validated copy with ``changes`` applied."""
        data = self.to_record()
        data.update(changes)
        return Page.model_validate(data)
