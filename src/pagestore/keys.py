"""Key schema for the single-table page layout.

Each page is stored as up to four denormalized records:

- revision   PK ``T#{tenant}#L#{locale}#PB#{pid}``   SK ``REV#{version:04d}``
- latest     PK ``T#{tenant}#L#{locale}#PB#L``        SK ``{pid}``
- published  PK ``T#{tenant}#L#{locale}#PB#P``        SK ``{pid}``
- path       GSI1_PK ``T#{tenant}#L#{locale}#PB#PATH``  GSI1_SK ``{path}``

The path record is not a separate item: it is the published record seen
through the secondary index.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pagestore.types import Page

REVISION_TYPE = "pb.page"
LATEST_TYPE = "pb.page.l"
PUBLISHED_TYPE = "pb.page.p"

VERSION_WIDTH = 4


@dataclass(frozen=True)
class Keys:
    """A partition/sort key pair."""

    PK: str
    SK: str

    def as_dict(self) -> dict[str, str]:
        return {"PK": self.PK, "SK": self.SK}


@dataclass(frozen=True)
class PageKeys:
    """All key pairs derived from one page revision."""

    revision: Keys
    latest: Keys
    published: Keys
    path: Keys


def _base(tenant: str, locale: str) -> str:
    return f"T#{tenant}#L#{locale}#PB"


def create_page_id(pid: str, version: int) -> str:
    return f"{pid}#{version:0{VERSION_WIDTH}d}"


def parse_page_id(page_id: str) -> tuple[str, int | None]:
    """Split ``pid#NNNN`` into ``(pid, version)``; a bare pid has no version."""
    if "#" not in page_id:
        return page_id, None
    pid, _, version = page_id.rpartition("#")
    if not pid or not version.isdigit():
        raise ValueError(f"Malformed page id '{page_id}'")
    return pid, int(version)


def revision_partition_key(tenant: str, locale: str, pid: str) -> str:
    return f"{_base(tenant, locale)}#{pid}"


def revision_sort_key(version: int) -> str:
    return f"REV#{version:0{VERSION_WIDTH}d}"


def latest_partition_key(tenant: str, locale: str) -> str:
    return f"{_base(tenant, locale)}#L"


def published_partition_key(tenant: str, locale: str) -> str:
    return f"{_base(tenant, locale)}#P"


def path_partition_key(tenant: str, locale: str) -> str:
    return f"{_base(tenant, locale)}#PATH"


def revision_keys(tenant: str, locale: str, pid: str, version: int) -> Keys:
    return Keys(revision_partition_key(tenant, locale, pid), revision_sort_key(version))


def latest_keys(tenant: str, locale: str, pid: str) -> Keys:
    return Keys(latest_partition_key(tenant, locale), pid)


def published_keys(tenant: str, locale: str, pid: str) -> Keys:
    return Keys(published_partition_key(tenant, locale), pid)


def path_keys(tenant: str, locale: str, path: str) -> Keys:
    return Keys(path_partition_key(tenant, locale), path)


def keys_for(page: Page) -> PageKeys:
    """Derive every key pair for ``page``."""
    return PageKeys(
        revision=revision_keys(page.tenant, page.locale, page.pid, page.version),
        latest=latest_keys(page.tenant, page.locale, page.pid),
        published=published_keys(page.tenant, page.locale, page.pid),
        path=path_keys(page.tenant, page.locale, page.path),
    )
