"""pagestore CLI: operator console for inspecting and managing page tables."""

from __future__ import annotations

import logging
from typing import Optional

import typer

from pagestore.cli import info, init_cmd, pages

app = typer.Typer(
    name="pagestore",
    help="pagestore CLI: operator console for page-builder page tables.",
    no_args_is_help=True,
)


class _State:
    """Global CLI state shared across subcommands."""

    db: str = "pages.db"
    storage_uri: str | None = None
    tenant: str | None = None
    locale: str | None = None
    json_output: bool = False


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        try:
            from importlib.metadata import version

            v = version("pagestore")
        except Exception:
            v = "unknown"
        print(f"pagestore {v}")
        raise typer.Exit()



def _source_name(ctx: typer.Context, param: str) -> str | None:
    # typer may vendor its own click, so compare ParameterSource by name.
    source = ctx.get_parameter_source(param)
    return source.name if source is not None else None

@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(
        None,
        "--db",
        envvar="PAGESTORE_DB",
        help="SQLite database file path (default: pages.db)",
    ),
    storage_uri: Optional[str] = typer.Option(
        None,
        "--storage-uri",
        envvar="PAGESTORE_STORAGE_URI",
        help="Backend storage URI (e.g. sqlite:///pages.db or dynamodb://table)",
    ),
    tenant: Optional[str] = typer.Option(
        None, "--tenant", envvar="PAGESTORE_TENANT", help="Tenant id (default: root)"
    ),
    locale: Optional[str] = typer.Option(
        None, "--locale", envvar="PAGESTORE_LOCALE", help="Locale code (default: en-US)"
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    log_level: str = typer.Option(
        "WARNING", "--log-level", envvar="PAGESTORE_LOG_LEVEL", help="Logging level"
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all pagestore commands."""
    from pagestore.storage import parse_storage_target

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level '{log_level}'", param_hint="--log-level")
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    db_source = _source_name(ctx, "db")
    uri_source = _source_name(ctx, "storage_uri")

    resolved_db = db or "pages.db"
    resolved_uri = storage_uri
    # Explicit --db overrides PAGESTORE_STORAGE_URI unless --storage-uri is also explicit.
    if db_source == "COMMANDLINE" and uri_source == "ENVIRONMENT":
        resolved_uri = None

    db_for_validation: str | None = None
    if db_source == "COMMANDLINE":
        db_for_validation = resolved_db
    if resolved_uri:
        try:
            parse_storage_target(db_path=db_for_validation, storage_uri=resolved_uri)
        except Exception as e:
            raise typer.BadParameter(str(e))

    state.db = resolved_db
    state.storage_uri = resolved_uri
    state.tenant = tenant
    state.locale = locale
    state.json_output = json_output
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


app.add_typer(pages.app, name="pages", help="Create, publish, query and delete pages")

app.command(name="info")(info.info_cmd)
app.command(name="init")(init_cmd.init_cmd)


def main() -> None:
    """Entry point for the pagestore CLI."""
    app()
