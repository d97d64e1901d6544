"""Table bindings for the single-table page layout."""

from __future__ import annotations

import json
import os
import sqlite3
import threading
from dataclasses import dataclass
from typing import Any, Protocol, Sequence, runtime_checkable
from urllib.parse import urlparse

from pagestore.batch import DeleteItem, Mutation, PutItem
from pagestore.config import PageStoreConfig
from pagestore.errors import StorageBackendError
from pagestore.keys import Keys

DEFAULT_DB_PATH = "pages.db"


@dataclass(frozen=True)
class StorageTarget:
    """Resolved storage target from db_path and URI forms."""

    backend: str
    uri: str
    db_path: str | None = None
    table_name: str | None = None


def parse_storage_target(
    db_path: str | None = None,
    storage_uri: str | None = None,
) -> StorageTarget:
    """Resolve backend target from ``db_path`` or a ``sqlite://`` / ``dynamodb://`` URI."""
    if storage_uri is None and db_path is None:
        db_path = DEFAULT_DB_PATH

    if storage_uri is None and db_path is not None:
        return StorageTarget(backend="sqlite", uri=f"sqlite:///{db_path}", db_path=db_path)

    assert storage_uri is not None
    parsed = urlparse(storage_uri)

    if parsed.scheme == "sqlite":
        sqlite_path = parsed.path
        if parsed.netloc:
            sqlite_path = f"{parsed.netloc}{sqlite_path}"
        elif sqlite_path.startswith("//"):
            # sqlite:////abs/path -> /abs/path
            sqlite_path = sqlite_path[1:]
        elif sqlite_path.startswith("/") and sqlite_path != "/:memory:":
            # sqlite:///rel/path -> rel/path
            sqlite_path = sqlite_path[1:]
        if sqlite_path == "/:memory:":
            sqlite_path = ":memory:"
        if not sqlite_path:
            raise StorageBackendError("parse_storage_uri", f"Invalid sqlite URI: {storage_uri}")
        if db_path is not None and os.path.abspath(db_path) != os.path.abspath(sqlite_path):
            raise StorageBackendError(
                "parse_storage_uri",
                f"Conflicting db_path '{db_path}' and storage_uri '{storage_uri}'",
            )
        return StorageTarget(backend="sqlite", uri=storage_uri, db_path=sqlite_path)

    if parsed.scheme == "dynamodb":
        table_name = parsed.netloc or parsed.path.strip("/")
        if not table_name:
            raise StorageBackendError("parse_storage_uri", f"Invalid dynamodb URI: {storage_uri}")
        if db_path is not None:
            raise StorageBackendError(
                "parse_storage_uri",
                "db_path cannot be provided for dynamodb storage targets",
            )
        return StorageTarget(backend="dynamodb", uri=storage_uri, table_name=table_name)

    raise StorageBackendError(
        "parse_storage_uri",
        f"Unsupported storage URI scheme '{parsed.scheme}' for '{storage_uri}'",
    )


@runtime_checkable
class TableProtocol(Protocol):
    """Partition/sort-keyed table with one secondary index.

    ``batch_write`` is atomic per call only and rejects more than
    ``max_batch_items`` mutations.
    """

    max_batch_items: int
    index_name: str

    def initialize(self) -> None: ...

    def close(self) -> None: ...

    def get_item(self, keys: Keys) -> dict[str, Any] | None: ...

    def query(
        self,
        partition_key: str,
        *,
        index: str | None = None,
        eq: str | None = None,
        lt: str | None = None,
        lte: str | None = None,
        gt: str | None = None,
        gte: str | None = None,
        reverse: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    def batch_write(self, items: Sequence[Mutation]) -> None: ...

    def storage_info(self) -> dict[str, Any]: ...


def check_batch(items: Sequence[Mutation], max_items: int) -> None:
    """Reject batches the store would refuse: oversized or with repeated keys."""
    if len(items) > max_items:
        raise StorageBackendError(
            "batch_write",
            f"Batch of {len(items)} items exceeds the limit of {max_items}",
        )
    seen: set[Keys] = set()
    for item in items:
        if item.keys in seen:
            raise StorageBackendError(
                "batch_write",
                f"Batch contains duplicate keys {item.keys.PK!r}/{item.keys.SK!r}",
            )
        seen.add(item.keys)


class SqliteTable:
    """SQLite-backed table with the same access patterns as the managed store.

    One connection is shared across threads and every statement runs under
    ``_lock``.
    """

    def __init__(self, db_path: str, *, config: PageStoreConfig | None = None) -> None:
        self._config = config or PageStoreConfig()
        self.db_path = db_path
        self.index_name = self._config.index_name
        self.max_batch_items = self._config.max_batch_items
        try:
            self._lock = threading.RLock()
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error as e:
            raise StorageBackendError("open_table", str(e)) from e
        self.initialize()

    def initialize(self) -> None:
        with self._lock:
            self._conn.executescript("""
                CREATE TABLE IF NOT EXISTS items (
                    pk        TEXT NOT NULL,
                    sk        TEXT NOT NULL,
                    gsi1_pk   TEXT,
                    gsi1_sk   TEXT,
                    item_json TEXT NOT NULL,
                    PRIMARY KEY (pk, sk)
                );

                CREATE INDEX IF NOT EXISTS idx_items_gsi1
                    ON items(gsi1_pk, gsi1_sk);
            """)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def storage_info(self) -> dict[str, Any]:
        with self._lock:
            count = self._conn.execute("SELECT COUNT(*) FROM items").fetchone()[0]
        return {
            "backend": "sqlite",
            "db_path": self.db_path,
            "index_name": self.index_name,
            "max_batch_items": self.max_batch_items,
            "item_count": count,
        }

    def get_item(self, keys: Keys) -> dict[str, Any] | None:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT item_json FROM items WHERE pk = ? AND sk = ?",
                    (keys.PK, keys.SK),
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageBackendError("get_item", str(e)) from e
        if row is None:
            return None
        return json.loads(row[0])

    def query(
        self,
        partition_key: str,
        *,
        index: str | None = None,
        eq: str | None = None,
        lt: str | None = None,
        lte: str | None = None,
        gt: str | None = None,
        gte: str | None = None,
        reverse: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        if index is None:
            pk_col, sk_col = "pk", "sk"
        elif index == self.index_name:
            pk_col, sk_col = "gsi1_pk", "gsi1_sk"
        else:
            raise StorageBackendError("query", f"Unknown index '{index}'")

        conditions = [f"{pk_col} = ?"]
        params: list[Any] = [partition_key]
        for op, value in (("=", eq), ("<", lt), ("<=", lte), (">", gt), (">=", gte)):
            if value is not None:
                conditions.append(f"{sk_col} {op} ?")
                params.append(value)

        direction = "DESC" if reverse else "ASC"
        sql = (
            f"SELECT item_json FROM items WHERE {' AND '.join(conditions)} "
            f"ORDER BY {sk_col} {direction}, pk {direction}, sk {direction}"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        try:
            with self._lock:
                rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageBackendError("query", str(e)) from e
        return [json.loads(r[0]) for r in rows]

    def batch_write(self, items: Sequence[Mutation]) -> None:
        check_batch(items, self.max_batch_items)
        try:
            with self._lock, self._conn:
                for item in items:
                    if isinstance(item, PutItem):
                        record = item.item
                        self._conn.execute(
                            "INSERT OR REPLACE INTO items "
                            "(pk, sk, gsi1_pk, gsi1_sk, item_json) VALUES (?, ?, ?, ?, ?)",
                            (
                                record["PK"],
                                record["SK"],
                                record.get("GSI1_PK"),
                                record.get("GSI1_SK"),
                                json.dumps(record, sort_keys=True),
                            ),
                        )
                    elif isinstance(item, DeleteItem):
                        self._conn.execute(
                            "DELETE FROM items WHERE pk = ? AND sk = ?",
                            (item.keys.PK, item.keys.SK),
                        )
                    else:
                        raise StorageBackendError(
                            "batch_write", f"Unsupported mutation {type(item).__name__}"
                        )
        except sqlite3.Error as e:
            raise StorageBackendError("batch_write", str(e)) from e


def open_table(
    db_path: str | None = None,
    *,
    storage_uri: str | None = None,
    config: PageStoreConfig | None = None,
) -> TableProtocol:
    """Open a table binding from a db_path or storage URI."""
    target = parse_storage_target(db_path=db_path, storage_uri=storage_uri)
    cfg = config or PageStoreConfig()
    if target.backend == "sqlite":
        assert target.db_path is not None
        return SqliteTable(target.db_path, config=cfg)
    if target.backend == "dynamodb":
        from pagestore.storage_dynamodb import DynamoDBTable

        assert target.table_name is not None
        return DynamoDBTable(table_name=target.table_name, config=cfg)
    raise StorageBackendError("open_table", f"Unsupported backend '{target.backend}'")


__all__ = [
    "SqliteTable",
    "StorageTarget",
    "TableProtocol",
    "check_batch",
    "open_table",
    "parse_storage_target",
]
