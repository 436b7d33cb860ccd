"""
book_data.models — DynamoDB table schemas as Python dataclasses.

Defines the canonical data model for the library tracker tables.  Every
table uses the entity (or composite relationship) id as the hash key and the
owner id (``userId``) as the range key, so (entity-id, owner-id) uniquely
identifies a record.

Tables defined here:
    books             — PK: id                   SK: userId
    tags              — PK: id                   SK: userId
    book-tags         — PK: bookId_tagId         SK: userId
    progress          — PK: bookId               SK: userId
    collections       — PK: id                   SK: userId
    collection-books  — PK: collectionId_bookId  SK: userId

Owner listing goes through the ``userId-index`` GSI on entity tables.
Relationship tables carry one GSI per endpoint, keyed (userId, endpointId),
which serves the reverse lookups without a table scan.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from book_data.exceptions import ValidationError

OWNER_ATTRIBUTE: str = "userId"
OWNER_INDEX: str = "userId-index"

# Composite relationship keys are "{leftId}_{rightId}"; ids must not contain it.
RELATIONSHIP_KEY_SEPARATOR: str = "_"

MAX_ID_LENGTH: int = 128
_ID_PATTERN = re.compile(r"^[A-Za-z0-9.:@-]+$")


# ---------------------------------------------------------------------------
# Enums — constrained vocabulary for status fields
# ---------------------------------------------------------------------------


class ReadingStatus(StrEnum):
    UNSTARTED = "unstarted"
    IN_PROGRESS = "in-progress"
    FINISHED = "finished"


# ---------------------------------------------------------------------------
# Entity ids
# ---------------------------------------------------------------------------


def validate_entity_id(value: Any, *, field: str = "id") -> str:
    """Return a stripped entity id or raise ValidationError.

    Ids are opaque strings, but the relationship separator is reserved so
    that composite keys stay unambiguous.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string")
    text = value.strip()
    if len(text) > MAX_ID_LENGTH:
        raise ValidationError(f"{field} must be at most {MAX_ID_LENGTH} characters")
    if RELATIONSHIP_KEY_SEPARATOR in text or not _ID_PATTERN.match(text):
        raise ValidationError(f"{field} contains unsupported characters")
    return text


def relationship_key(left_id: str, right_id: str) -> str:
    """Deterministic composite key for a (left, right) link.

    Order is fixed by role (book before tag, collection before book), so the
    same pair always yields the same key.
    """
    return f"{left_id}{RELATIONSHIP_KEY_SEPARATOR}{right_id}"


# ---------------------------------------------------------------------------
# Table definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntityTable:
    """An owner-partitioned entity table.

    entity_name is used in caller-facing messages ("Book not found").
    """

    entity_name: str
    table_name: str
    id_attribute: str = "id"
    owner_index: str = OWNER_INDEX

    def key(self, entity_id: str, owner_id: str) -> dict[str, str]:
        return {self.id_attribute: entity_id, OWNER_ATTRIBUTE: owner_id}


@dataclass(frozen=True)
class RelationshipTable:
    """A many-to-many link table.

    key_attribute holds relationship_key(left, right); left_attribute and
    right_attribute carry the endpoint ids so the per-endpoint GSIs can be
    queried in either direction.
    """

    table_name: str
    left_attribute: str
    right_attribute: str

    @property
    def key_attribute(self) -> str:
        return f"{self.left_attribute}{RELATIONSHIP_KEY_SEPARATOR}{self.right_attribute}"

    @property
    def left_index(self) -> str:
        return f"{self.left_attribute}-index"

    @property
    def right_index(self) -> str:
        return f"{self.right_attribute}-index"

    def key(self, owner_id: str, left_id: str, right_id: str) -> dict[str, str]:
        return {
            self.key_attribute: relationship_key(left_id, right_id),
            OWNER_ATTRIBUTE: owner_id,
        }


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BookRecord:
    """Book catalog record.  title and author are required at creation."""

    id: str
    user_id: str
    title: str
    author: str
    created_at: str  # ISO 8601 UTC
    updated_at: str  # ISO 8601 UTC
    isbn: str | None = None
    cover_image_url: str | None = None
    page_count: int | None = None
    publisher: str | None = None
    published_date: str | None = None
    description: str | None = None

    def to_item(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            "id": self.id,
            OWNER_ATTRIBUTE: self.user_id,
            "title": self.title,
            "author": self.author,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        optional = {
            "isbn": self.isbn,
            "coverImageUrl": self.cover_image_url,
            "pageCount": self.page_count,
            "publisher": self.publisher,
            "publishedDate": self.published_date,
            "description": self.description,
        }
        item.update({name: value for name, value in optional.items() if value is not None})
        return item


@dataclass(frozen=True)
class TagRecord:
    id: str
    user_id: str
    label: str
    created_at: str
    updated_at: str

    def to_item(self) -> dict[str, Any]:
        return {
            "id": self.id,
            OWNER_ATTRIBUTE: self.user_id,
            "label": self.label,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class CollectionRecord:
    id: str
    user_id: str
    name: str
    created_at: str
    updated_at: str
    description: str | None = None

    def to_item(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            "id": self.id,
            OWNER_ATTRIBUTE: self.user_id,
            "name": self.name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.description is not None:
            item["description"] = self.description
        return item


@dataclass(frozen=True)
class ProgressRecord:
    """Reading progress, at most one per (book_id, user_id).

    Lifecycle: unstarted → in-progress → finished, with any transition
    permitted (manual corrections, re-reading a finished book).
    percentage is written as Decimal by the store (boto3 rejects float).
    """

    book_id: str
    user_id: str
    status: ReadingStatus
    updated_at: str
    current_page: int | None = None
    percentage: float | None = None
    started_at: str | None = None
    finished_at: str | None = None

    def __post_init__(self) -> None:
        if self.current_page is not None and self.current_page < 0:
            raise ValidationError("currentPage must be zero or greater")
        if self.percentage is not None and not 0 <= self.percentage <= 100:
            raise ValidationError("percentage must be between 0 and 100")

    def to_item(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            "bookId": self.book_id,
            OWNER_ATTRIBUTE: self.user_id,
            "status": self.status.value,
            "updatedAt": self.updated_at,
        }
        optional = {
            "currentPage": self.current_page,
            "percentage": self.percentage,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
        }
        item.update({name: value for name, value in optional.items() if value is not None})
        return item
