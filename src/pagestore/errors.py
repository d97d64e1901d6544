"""Structured error types for pagestore."""

from __future__ import annotations

from typing import Any


class PageStoreError(Exception):
    """Base error for all pagestore errors.

    Every error carries a machine-readable ``code`` and an optional ``data``
    payload with the keys and parameters involved.
    """

    default_code = "PAGE_STORE_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "data": self.data}


class MalformedRequestError(PageStoreError):
    """Raised when request parameters are missing or conflicting.

    Always raised before any storage I/O happens.
    """

    default_code = "MALFORMED_REQUEST"


class InvalidCursorError(MalformedRequestError):
    """Raised when a pagination cursor cannot be decoded."""

    default_code = "INVALID_CURSOR"

    def __init__(self, cursor: str) -> None:
        super().__init__(f"Invalid cursor '{cursor}'.", data={"cursor": cursor})


class StorageBackendError(PageStoreError):
    """Raised when backend storage operations fail."""

    default_code = "STORAGE_BACKEND_ERROR"

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(
            f"Storage backend error during {operation}: {detail}",
            data={"operation": operation},
        )


class BatchWriteError(StorageBackendError):
    """Raised when a chunk of a batch write fails.

    ``applied`` counts the mutations that were committed by earlier chunks;
    they are not rolled back.
    """

    default_code = "BATCH_WRITE_ERROR"

    def __init__(self, detail: str, *, applied: int, total: int) -> None:
        self.applied = applied
        self.total = total
        super().__init__("batch_write", detail)
        self.data = {"operation": "batch_write", "applied": applied, "total": total}


class StorageOperationError(PageStoreError):
    """Raised when a page storage operation fails at the storage level."""

    default_code = "STORAGE_OPERATION_ERROR"


class DataIntegrityError(PageStoreError):
    """Raised when stored projections violate a page invariant."""

    default_code = "DATA_INTEGRITY_ERROR"


class NotFoundError(PageStoreError):
    """Raised when a requested page does not exist."""

    default_code = "NOT_FOUND"


class LifecycleError(PageStoreError):
    """Raised when a page cannot move to the requested status."""

    default_code = "INVALID_STATUS_TRANSITION"
