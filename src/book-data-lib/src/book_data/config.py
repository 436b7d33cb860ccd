"""
book_data.config — Store settings read from the Lambda environment.

Table names are injected by the infrastructure stack; the defaults match the
local dev tables created by scripts/dev-bootstrap.py.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config

from book_data.models import EntityTable, RelationshipTable

_BOOKS_TABLE_ENV = "BOOKS_TABLE"
_TAGS_TABLE_ENV = "TAGS_TABLE"
_BOOK_TAGS_TABLE_ENV = "BOOK_TAGS_TABLE"
_PROGRESS_TABLE_ENV = "PROGRESS_TABLE"
_COLLECTIONS_TABLE_ENV = "COLLECTIONS_TABLE"
_COLLECTION_BOOKS_TABLE_ENV = "COLLECTION_BOOKS_TABLE"

DEFAULT_CONNECT_TIMEOUT_SECONDS: float = 2.0
DEFAULT_READ_TIMEOUT_SECONDS: float = 3.0
DEFAULT_MAX_ATTEMPTS: int = 3
DEFAULT_CASCADE_MAX_ATTEMPTS: int = 3


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True)
class StoreSettings:
    region: str
    books_table: str = "bookshelf-books"
    tags_table: str = "bookshelf-tags"
    book_tags_table: str = "bookshelf-book-tags"
    progress_table: str = "bookshelf-progress"
    collections_table: str = "bookshelf-collections"
    collection_books_table: str = "bookshelf-collection-books"
    endpoint_url: str | None = None
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS
    read_timeout: float = DEFAULT_READ_TIMEOUT_SECONDS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    cascade_max_attempts: int = DEFAULT_CASCADE_MAX_ATTEMPTS

    def __post_init__(self) -> None:
        for name in ("max_attempts", "cascade_max_attempts"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1, got {getattr(self, name)}")
        for name in ("connect_timeout", "read_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

    @classmethod
    def from_env(cls) -> StoreSettings:
        """Build settings from the environment.  AWS_REGION is mandatory."""
        defaults = cls(region="")
        return cls(
            region=os.environ["AWS_REGION"],
            books_table=os.environ.get(_BOOKS_TABLE_ENV, defaults.books_table),
            tags_table=os.environ.get(_TAGS_TABLE_ENV, defaults.tags_table),
            book_tags_table=os.environ.get(_BOOK_TAGS_TABLE_ENV, defaults.book_tags_table),
            progress_table=os.environ.get(_PROGRESS_TABLE_ENV, defaults.progress_table),
            collections_table=os.environ.get(
                _COLLECTIONS_TABLE_ENV, defaults.collections_table
            ),
            collection_books_table=os.environ.get(
                _COLLECTION_BOOKS_TABLE_ENV, defaults.collection_books_table
            ),
            endpoint_url=os.environ.get("LOCALSTACK_ENDPOINT") or None,
            connect_timeout=_float_env("STORE_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT_SECONDS),
            read_timeout=_float_env("STORE_READ_TIMEOUT", DEFAULT_READ_TIMEOUT_SECONDS),
            max_attempts=_int_env("STORE_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
            cascade_max_attempts=_int_env("CASCADE_MAX_ATTEMPTS", DEFAULT_CASCADE_MAX_ATTEMPTS),
        )

    # -- table definitions --------------------------------------------------

    @property
    def books(self) -> EntityTable:
        return EntityTable(entity_name="Book", table_name=self.books_table)

    @property
    def tags(self) -> EntityTable:
        return EntityTable(entity_name="Tag", table_name=self.tags_table)

    @property
    def collections(self) -> EntityTable:
        return EntityTable(entity_name="Collection", table_name=self.collections_table)

    @property
    def progress(self) -> EntityTable:
        return EntityTable(
            entity_name="Progress",
            table_name=self.progress_table,
            id_attribute="bookId",
        )

    @property
    def book_tags(self) -> RelationshipTable:
        return RelationshipTable(
            table_name=self.book_tags_table,
            left_attribute="bookId",
            right_attribute="tagId",
        )

    @property
    def collection_books(self) -> RelationshipTable:
        return RelationshipTable(
            table_name=self.collection_books_table,
            left_attribute="collectionId",
            right_attribute="bookId",
        )

    # -- boto3 -----------------------------------------------------------------

    def botocore_config(self) -> Config:
        """Bounded latency for every store call: timeouts plus standard retries."""
        return Config(
            connect_timeout=self.connect_timeout,
            read_timeout=self.read_timeout,
            retries={"max_attempts": self.max_attempts, "mode": "standard"},
        )

    def dynamodb_resource(self) -> Any:
        return boto3.resource(
            "dynamodb",
            region_name=self.region,
            endpoint_url=self.endpoint_url,
            config=self.botocore_config(),
        )
