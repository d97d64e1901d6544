"""Shared fixtures for CLI tests."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Callable

import pytest
from typer.testing import CliRunner

from pagestore.cli import app

if TYPE_CHECKING:
    from click.testing import Result


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_db(tmp_path):
    """Create a temp DB path for the CLI."""
    return str(tmp_path / "cli_test.db")


@pytest.fixture
def invoke(runner, cli_db) -> Callable[..., "Result"]:
    """Invoke the CLI against the temp DB, with ``--db`` injected before the subcommand."""

    def _invoke(args: list[str], db_path: str | None = cli_db) -> "Result":
        if db_path:
            args = ["--db", db_path] + args
        return runner.invoke(app, args, catch_exceptions=False)

    return _invoke


@pytest.fixture
def invoke_json(invoke) -> Callable[..., Any]:
    """Invoke with ``--json`` and return (result, parsed envelope)."""

    def _invoke(args: list[str]) -> tuple["Result", dict[str, Any]]:
        result = invoke(["--json"] + args)
        return result, json.loads(result.stdout)

    return _invoke


@pytest.fixture
def seeded_db(invoke_json, cli_db):
    """Create a DB with one published page and one draft page."""
    _, home = invoke_json(["pages", "create", "--title", "Home", "--path", "/home", "--tag", "main"])
    _, about = invoke_json(["pages", "create", "--title", "About", "--path", "/about"])
    invoke_json(["pages", "publish", home["data"]["id"]])
    return {"db": cli_db, "home": home["data"], "about": about["data"]}
