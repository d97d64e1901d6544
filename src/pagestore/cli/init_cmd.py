"""pagestore init: create the page table and its path index."""

from __future__ import annotations

import typer

from pagestore.cli import _exitcodes as ec
from pagestore.cli._output import print_envelope, print_error, print_object
from pagestore.cli._storage import _config_from_env, resolve_storage_binding
from pagestore.storage import open_table, parse_storage_target


def init_cmd(
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview initialization only"),
) -> None:
    """Initialize the selected storage backend."""
    from pagestore.cli import state

    json_mode = state.json_output
    db_path, storage_uri = resolve_storage_binding()

    try:
        target = parse_storage_target(db_path=db_path, storage_uri=storage_uri)
    except Exception as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)

    if dry_run:
        data = {
            "backend": target.backend,
            "uri": target.uri,
            "db_path": target.db_path,
            "table_name": target.table_name,
            "status": "dry_run",
        }
        if json_mode:
            print_envelope(data)
        else:
            print_object(data)
        return

    try:
        table = open_table(db_path, storage_uri=storage_uri, config=_config_from_env())
        try:
            table.initialize()
            info = table.storage_info()
        finally:
            table.close()
    except Exception as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)

    data = {**info, "status": "initialized"}
    if json_mode:
        print_envelope(data)
    else:
        print(f"Initialized: {target.uri}")
