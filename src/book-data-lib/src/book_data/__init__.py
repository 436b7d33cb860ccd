"""
book_data — Owner-scoped DynamoDB data access library for the book tracker.

The ONLY permitted way to access the library tables from Lambda handlers.
Every store and relationship operation passes through the access guard.
"""

from book_data.client import LibraryTables
from book_data.config import StoreSettings
from book_data.exceptions import (
    CascadeIncomplete,
    Conflict,
    Forbidden,
    InternalError,
    LibraryError,
    MissingIdentity,
    NotFound,
    StorageUnavailable,
    ValidationError,
)
from book_data.guard import authorize
from book_data.relationships import RelationshipEncoder
from book_data.store import OwnerScopedTable

__all__ = [
    "CascadeIncomplete",
    "Conflict",
    "Forbidden",
    "InternalError",
    "LibraryError",
    "LibraryTables",
    "MissingIdentity",
    "NotFound",
    "OwnerScopedTable",
    "RelationshipEncoder",
    "StorageUnavailable",
    "StoreSettings",
    "ValidationError",
    "authorize",
]
