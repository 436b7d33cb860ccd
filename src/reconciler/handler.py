"""
reconciler.handler — Scheduled soft-garbage sweep.

Removes records left behind by cascades that were interrupted or raced with
a concurrent link:
  - BookTag links whose book or tag no longer exists
  - CollectionBook links whose collection or book no longer exists
  - Progress records whose book no longer exists

Runs per owner, always through owner-scoped store handles, so the sweep is
bound by the same access guard as the resolver.  Owners come from the event
("ownerIds"), or are discovered by an administrative scan of the
relationship and progress tables.  Idempotent: a second run finds nothing.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from aws_lambda_powertools import Logger

from book_data import LibraryTables, OwnerScopedTable
from book_data.models import OWNER_ATTRIBUTE
from book_data.store import storage_errors

logger = Logger(service="reconciler")

# Global tables handle — connection reuse across warm starts
_tables: LibraryTables | None = None


def get_tables() -> LibraryTables:
    global _tables
    if _tables is None:
        _tables = LibraryTables.from_env()
    return _tables


@dataclass
class ReconcileReport:
    owner_id: str
    book_tags_removed: int = 0
    collection_books_removed: int = 0
    progress_removed: int = 0

    @property
    def total(self) -> int:
        return self.book_tags_removed + self.collection_books_removed + self.progress_removed


def _ids(items: list[dict[str, Any]], attribute: str = "id") -> set[str]:
    return {str(item[attribute]) for item in items}


def _gone(store: OwnerScopedTable, owner_id: str, entity_id: str, known: set[str]) -> bool:
    """True only if the endpoint is absent from the listing AND from a consistent read.

    The owner index lags behind writes, so a record created moments ago may
    be missing from the listing without being garbage.
    """
    return entity_id not in known and store.find(entity_id, owner_id) is None


def reconcile_owner(tables: LibraryTables, owner_id: str) -> ReconcileReport:
    """Delete every dangling relationship/progress record of one owner."""
    report = ReconcileReport(owner_id=owner_id)
    books = tables.books(owner_id)
    tags = tables.tags(owner_id)
    collections = tables.collections(owner_id)
    book_ids = _ids(books.list_by_owner(owner_id))
    tag_ids = _ids(tags.list_by_owner(owner_id))
    collection_ids = _ids(collections.list_by_owner(owner_id))

    book_tags = tables.book_tags(owner_id)
    for book_id, tag_id in book_tags.list_links(owner_id):
        if _gone(books, owner_id, book_id, book_ids) or _gone(tags, owner_id, tag_id, tag_ids):
            report.book_tags_removed += int(book_tags.unlink(owner_id, book_id, tag_id))

    collection_books = tables.collection_books(owner_id)
    for collection_id, book_id in collection_books.list_links(owner_id):
        if _gone(collections, owner_id, collection_id, collection_ids) or _gone(
            books, owner_id, book_id, book_ids
        ):
            report.collection_books_removed += int(
                collection_books.unlink(owner_id, collection_id, book_id)
            )

    progress = tables.progress(owner_id)
    for item in progress.list_by_owner(owner_id):
        book_id = str(item["bookId"])
        if _gone(books, owner_id, book_id, book_ids):
            report.progress_removed += int(progress.discard(book_id, owner_id))

    if report.total:
        logger.info("Removed soft garbage", **asdict(report))
    return report


def discover_owners(tables: LibraryTables) -> set[str]:
    """Owners with any relationship or progress record.

    SECURITY: this is an administrative scan across owners.  It projects
    only the owner attribute; the per-owner sweep that follows is guarded.
    """
    settings = tables.settings
    owners: set[str] = set()
    for table_name in (
        settings.book_tags_table,
        settings.collection_books_table,
        settings.progress_table,
    ):
        table = tables.dynamodb.Table(table_name)
        kwargs: dict[str, Any] = {
            "ProjectionExpression": "#owner",
            "ExpressionAttributeNames": {"#owner": OWNER_ATTRIBUTE},
        }
        with storage_errors(table_name):
            while True:
                response = table.scan(**kwargs)
                owners.update(str(item[OWNER_ATTRIBUTE]) for item in response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
    return owners


def _owner_ids(event: dict[str, Any], tables: LibraryTables) -> list[str]:
    raw = event.get("ownerIds")
    if raw is None:
        return sorted(discover_owners(tables))
    if not isinstance(raw, list):
        raise ValueError("ownerIds must be a list of strings")
    return [str(owner).strip() for owner in raw if str(owner).strip()]


@logger.inject_lambda_context(clear_state=True, log_event=False)
def lambda_handler(event: dict[str, Any], _context: Any) -> dict[str, Any]:
    tables = get_tables()
    owners = _owner_ids(event or {}, tables)
    reports = []
    failed: list[str] = []
    for owner_id in owners:
        try:
            reports.append(reconcile_owner(tables, owner_id))
        except Exception:
            # One owner's failure must not stop the sweep; the next run retries.
            logger.exception("Reconcile failed for owner", owner_id=owner_id)
            failed.append(owner_id)
    return {
        "ownersScanned": len(owners),
        "ownersFailed": failed,
        "bookTagsRemoved": sum(r.book_tags_removed for r in reports),
        "collectionBooksRemoved": sum(r.collection_books_removed for r in reports),
        "progressRemoved": sum(r.progress_removed for r in reports),
    }
