"""
dev-bootstrap.py — Local development environment seeding script.

Creates the six library tables (books, tags, book-tags, progress,
collections, collection-books) with their GSIs, then seeds one demo owner:
  - two books, two tags, one collection
  - book↔tag and collection↔book links
  - one in-progress reading record

Idempotent — safe to run multiple times.  Running twice produces the same
set of records; no duplicates are created.

Usage:
    uv run python scripts/dev-bootstrap.py

Targets LocalStack when LOCALSTACK_ENDPOINT is set, otherwise the default
AWS endpoint (which moto intercepts in tests).
"""

from __future__ import annotations

import os
import sys
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.exceptions import ClientError

from book_data.config import StoreSettings
from book_data.models import (
    BookRecord,
    CollectionRecord,
    ProgressRecord,
    ReadingStatus,
    TagRecord,
    relationship_key,
)
from book_data.tables import create_tables

# ---------------------------------------------------------------------------
# Fixture constants — stable IDs for local dev test fixtures
# ---------------------------------------------------------------------------

DEMO_OWNER_ID = "demo-user-001"
_BOOK_DUNE = "book-dune"
_BOOK_EMMA = "book-emma"
_TAG_SCIFI = "tag-scifi"
_TAG_CLASSIC = "tag-classic"
_COLLECTION_SHELF = "collection-nightstand"


def _log(message: str) -> None:
    print(message, file=sys.stderr)


def _settings() -> StoreSettings:
    """Read region and table names from environment.  Fails loudly without AWS_REGION."""
    return StoreSettings.from_env()


def _dynamodb_resource(settings: StoreSettings) -> Any:
    return boto3.resource(
        "dynamodb", region_name=settings.region, endpoint_url=settings.endpoint_url
    )


def _now_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# DynamoDB item helpers
# ---------------------------------------------------------------------------


def _put_if_absent(table: Any, item: dict[str, Any], hash_attribute: str) -> bool:
    """Write item only if its key does not already exist.

    Uses a conditional put so that repeated runs never overwrite existing
    records, preserving createdAt timestamps and any edits made during a dev
    session.  Returns True if the item was written.
    """
    try:
        table.put_item(
            Item=item,
            ConditionExpression="attribute_not_exists(#k)",
            ExpressionAttributeNames={"#k": hash_attribute},
        )
        return True
    except ClientError as exc:
        if (exc.response.get("Error") or {}).get("Code") == "ConditionalCheckFailedException":
            return False
        raise


def _seed(table: Any, items: list[dict[str, Any]], hash_attribute: str, label: str) -> int:
    written = 0
    for item in items:
        created = _put_if_absent(table, item, hash_attribute)
        written += int(created)
        mark = "+" if created else "="
        action = "created" if created else "exists"
        _log(f"  [{mark}] {label} {item[hash_attribute]} ({action})")
    return written


# ---------------------------------------------------------------------------
# Fixture seeding
# ---------------------------------------------------------------------------


def _seed_fixtures(dynamodb: Any, settings: StoreSettings) -> dict[str, int]:
    now = _now_iso()
    books = [
        BookRecord(
            id=_BOOK_DUNE,
            user_id=DEMO_OWNER_ID,
            title="Dune",
            author="Frank Herbert",
            created_at=now,
            updated_at=now,
            isbn="9780441172719",
            page_count=412,
        ).to_item(),
        BookRecord(
            id=_BOOK_EMMA,
            user_id=DEMO_OWNER_ID,
            title="Emma",
            author="Jane Austen",
            created_at=now,
            updated_at=now,
            page_count=474,
        ).to_item(),
    ]
    tags = [
        TagRecord(_TAG_SCIFI, DEMO_OWNER_ID, "science fiction", now, now).to_item(),
        TagRecord(_TAG_CLASSIC, DEMO_OWNER_ID, "classic", now, now).to_item(),
    ]
    collections = [
        CollectionRecord(
            id=_COLLECTION_SHELF,
            user_id=DEMO_OWNER_ID,
            name="Nightstand",
            created_at=now,
            updated_at=now,
            description="Currently reading",
        ).to_item()
    ]
    book_tags_def = settings.book_tags
    book_tags = [
        {
            book_tags_def.key_attribute: relationship_key(book_id, tag_id),
            "userId": DEMO_OWNER_ID,
            "bookId": book_id,
            "tagId": tag_id,
            "createdAt": now,
        }
        for book_id, tag_id in ((_BOOK_DUNE, _TAG_SCIFI), (_BOOK_EMMA, _TAG_CLASSIC))
    ]
    collection_books_def = settings.collection_books
    collection_books = [
        {
            collection_books_def.key_attribute: relationship_key(_COLLECTION_SHELF, _BOOK_DUNE),
            "userId": DEMO_OWNER_ID,
            "collectionId": _COLLECTION_SHELF,
            "bookId": _BOOK_DUNE,
            "createdAt": now,
        }
    ]
    progress = [
        ProgressRecord(
            book_id=_BOOK_DUNE,
            user_id=DEMO_OWNER_ID,
            status=ReadingStatus.IN_PROGRESS,
            updated_at=now,
            current_page=120,
            started_at=now,
        ).to_item()
    ]

    return {
        "books": _seed(dynamodb.Table(settings.books_table), books, "id", "book"),
        "tags": _seed(dynamodb.Table(settings.tags_table), tags, "id", "tag"),
        "collections": _seed(
            dynamodb.Table(settings.collections_table), collections, "id", "collection"
        ),
        "bookTags": _seed(
            dynamodb.Table(settings.book_tags_table),
            book_tags,
            book_tags_def.key_attribute,
            "book-tag",
        ),
        "collectionBooks": _seed(
            dynamodb.Table(settings.collection_books_table),
            collection_books,
            collection_books_def.key_attribute,
            "collection-book",
        ),
        "progress": _seed(dynamodb.Table(settings.progress_table), progress, "bookId", "progress"),
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run() -> dict[str, int]:
    """Create tables and seed fixtures.  Returns the number of items written per table."""
    settings = _settings()
    dynamodb = _dynamodb_resource(settings)

    _log("Creating library tables...")
    for table_name in create_tables(dynamodb, settings):
        _log(f"  [+] created table {table_name}")

    _log(f"Seeding fixtures for {DEMO_OWNER_ID}...")
    written = _seed_fixtures(dynamodb, settings)
    _log("Done.")
    return written


def main() -> int:
    if "AWS_REGION" not in os.environ:
        _log("AWS_REGION must be set (e.g. export AWS_REGION=eu-west-2)")
        return 1
    run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
