"""Opaque offset cursors for list pagination."""

from __future__ import annotations

import base64
import binascii
import json

from pagestore.errors import InvalidCursorError


def encode_cursor(offset: int) -> str:
    raw = json.dumps(offset).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: str | None) -> int | None:
    """Decode a cursor produced by :func:`encode_cursor`; ``None`` passes through."""
    if not cursor:
        return None
    try:
        value = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidCursorError(cursor) from e
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise InvalidCursorError(cursor)
    return value
