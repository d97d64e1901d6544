"""Output formatting helpers for the CLI."""

from __future__ import annotations

import json
import sys
from typing import Any

from pagestore.errors import PageStoreError
from pagestore.responses import error, ok


def print_table(headers: list[str], rows: list[list[Any]]) -> None:
    """Print rows as aligned text columns."""
    if not rows:
        return

    widths = [len(h) for h in headers]
    str_rows = [["" if v is None else str(v) for v in row] for row in rows]
    for row in str_rows:
        for i, val in enumerate(row):
            if i < len(widths):
                widths[i] = max(widths[i], len(val))

    print("  ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
    print("  ".join("-" * w for w in widths))
    for row in str_rows:
        print(
            "  ".join(val.ljust(widths[i]) if i < len(widths) else val for i, val in enumerate(row))
        )


def print_object(data: dict[str, Any]) -> None:
    """Print a single object as key-value pairs."""
    for k, v in data.items():
        print(f"{k}: {v}")


def print_envelope(data: Any) -> None:
    """Print a successful result wrapped in the response envelope."""
    print(json.dumps(ok(data), indent=2, default=str))


def print_error(msg: str) -> None:
    """Print an error message to stderr."""
    print(f"Error: {msg}", file=sys.stderr)


def print_page_error(exc: PageStoreError, *, json_mode: bool = False) -> None:
    """Report a pagestore error as an envelope (JSON) or a one-line message."""
    if json_mode:
        print(json.dumps(error(exc), indent=2, default=str))
        return
    print_error(f"[{exc.code}] {exc.message}")
