"""pagestore: single-table storage operations for page-builder pages."""

__version__ = "0.1.0"

from pagestore.batch import DeleteItem, PutItem, batch_write_all
from pagestore.config import PageStoreConfig
from pagestore.errors import (
    BatchWriteError,
    DataIntegrityError,
    InvalidCursorError,
    LifecycleError,
    MalformedRequestError,
    NotFoundError,
    PageStoreError,
    StorageBackendError,
    StorageOperationError,
)
from pagestore.filters import FieldRegistry, PageField
from pagestore.operations import PageStorageOperations
from pagestore.pages import PageManager
from pagestore.query import (
    GetWhere,
    ListMeta,
    ListParams,
    ListResponse,
    ListWhere,
    PathWhere,
    RevisionsWhere,
    TagsWhere,
)
from pagestore.storage import SqliteTable, TableProtocol, open_table
from pagestore.types import Page, PageStatus

__all__ = [
    "__version__",
    "Page",
    "PageStatus",
    "PageStoreConfig",
    "PageStorageOperations",
    "PageManager",
    "GetWhere",
    "PathWhere",
    "RevisionsWhere",
    "TagsWhere",
    "ListWhere",
    "ListParams",
    "ListMeta",
    "ListResponse",
    "FieldRegistry",
    "PageField",
    "PutItem",
    "DeleteItem",
    "batch_write_all",
    "TableProtocol",
    "SqliteTable",
    "open_table",
    "PageStoreError",
    "MalformedRequestError",
    "InvalidCursorError",
    "StorageBackendError",
    "BatchWriteError",
    "StorageOperationError",
    "DataIntegrityError",
    "NotFoundError",
    "LifecycleError",
]
