"""pagestore info: show table status and page counts."""

from __future__ import annotations

import os
from typing import Any

import typer

from pagestore.cli import _exitcodes as ec
from pagestore.cli._output import print_envelope, print_error
from pagestore.cli._storage import open_manager, resolve_storage_binding
from pagestore.storage import parse_storage_target


def info_cmd(
    stats: bool = typer.Option(False, "--stats", help="Show page counts for the tenant/locale"),
) -> None:
    """Show table status and high-level metadata."""
    from pagestore.cli import state

    json_mode = state.json_output
    db_path, storage_uri = resolve_storage_binding()
    sqlite_path_to_check: str | None = None
    if storage_uri is not None:
        try:
            target = parse_storage_target(storage_uri=storage_uri)
        except Exception as e:
            print_error(f"Invalid storage URI: {e}")
            raise typer.Exit(ec.DATABASE_ERROR)
        if target.backend == "sqlite":
            sqlite_path_to_check = target.db_path
    else:
        sqlite_path_to_check = db_path

    if (
        sqlite_path_to_check
        and sqlite_path_to_check != ":memory:"
        and not os.path.exists(sqlite_path_to_check)
    ):
        print_error(f"Database not found: {sqlite_path_to_check}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        table, manager = open_manager()
    except Exception as e:
        print_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        storage = table.storage_info()
        data: dict[str, Any] = {"tenant": manager.tenant, "locale": manager.locale, **storage}
        if storage.get("backend") == "sqlite" and os.path.exists(str(storage.get("db_path"))):
            data["file_size_bytes"] = os.path.getsize(str(storage["db_path"]))

        if stats:
            data["latest_pages"] = manager.list().meta.total_count
            data["published_pages"] = manager.list(published=True).meta.total_count
            data["tags"] = len(manager.list_tags())
    except Exception as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        table.close()

    if json_mode:
        print_envelope(data)
        return

    backend = str(data.get("backend", "unknown"))
    print(f"Backend: {backend}")
    if backend == "sqlite":
        print(f"Database: {data.get('db_path')}")
        if "file_size_bytes" in data:
            print(f"File size: {int(data['file_size_bytes']):,} bytes")
        print(f"Items: {data.get('item_count')}")
    elif backend == "dynamodb":
        print(f"Table: {data.get('table_name')}")
        print(f"Region: {data.get('region') or '(default)'}")
    print(f"Tenant: {manager.tenant}")
    print(f"Locale: {manager.locale}")
    if stats:
        print(f"\nLatest pages: {data['latest_pages']}")
        print(f"Published pages: {data['published_pages']}")
        print(f"Tags: {data['tags']}")
