"""Batch submission of put/delete mutations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence, Union

from pagestore.errors import BatchWriteError, StorageBackendError
from pagestore.keys import Keys

if TYPE_CHECKING:
    from pagestore.storage import TableProtocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PutItem:
    """Upsert of a full record; ``item`` must carry ``PK`` and ``SK``."""

    item: dict[str, Any]

    @property
    def keys(self) -> Keys:
        return Keys(self.item["PK"], self.item["SK"])


@dataclass(frozen=True)
class DeleteItem:
    """Removal of the record at ``keys``; deleting a missing record is a no-op."""

    keys: Keys


Mutation = Union[PutItem, DeleteItem]


def chunked(items: Sequence[Mutation], size: int) -> list[list[Mutation]]:
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def batch_write_all(
    table: TableProtocol,
    items: Sequence[Mutation],
    *,
    chunk_size: int | None = None,
) -> int:
    """Submit ``items`` in chunks no larger than the table's per-call cap.

    Chunks are applied in order. A failing chunk aborts the whole submission
    with :class:`BatchWriteError`; chunks that were already applied stay
    applied. Returns the number of mutations written.
    """
    if not items:
        return 0
    size = chunk_size or table.max_batch_items
    chunks = chunked(items, size)
    applied = 0
    for index, chunk in enumerate(chunks):
        logger.debug(
            "Submitting batch chunk %d/%d (%d mutations)", index + 1, len(chunks), len(chunk)
        )
        try:
            table.batch_write(chunk)
        except StorageBackendError as e:
            raise BatchWriteError(e.detail, applied=applied, total=len(items)) from e
        applied += len(chunk)
    return applied
