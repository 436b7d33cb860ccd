"""
book_api.services.book_service — Book catalog operations.

Deleting a book cascades, in order: tag links, collection memberships,
progress record, then the book itself (see services.cascade).
"""

from __future__ import annotations

from typing import Any

from aws_lambda_powertools import Logger

from book_api.services import common
from book_api.services.cascade import CascadeStep, run_cascade
from book_api.services.progress_service import ProgressService
from book_data import LibraryTables, ValidationError
from book_data.guard import require_caller
from book_data.models import BookRecord

logger = Logger(service="book-api")

BOOK_TEXT_FIELDS = ("isbn", "coverImageUrl", "publisher", "publishedDate", "description")
BOOK_UPDATE_FIELDS = frozenset({"title", "author", "pageCount", *BOOK_TEXT_FIELDS})


def _page_count(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("pageCount must be a non-negative integer")
    return value


class BookService:
    def __init__(self, tables: LibraryTables, progress: ProgressService | None = None) -> None:
        self._tables = tables
        self._progress = progress or ProgressService(tables)

    def create_book(self, caller_id: str, attributes: dict[str, Any]) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        now = common.iso(common.now_utc())
        text = {
            field: common.optional_text(attributes.get(field), field=field)
            for field in BOOK_TEXT_FIELDS
        }
        record = BookRecord(
            id=common.entity_id_or_new(attributes.get("id")),
            user_id=caller_id,
            title=common.required_text(attributes.get("title"), field="title"),
            author=common.required_text(attributes.get("author"), field="author"),
            created_at=now,
            updated_at=now,
            isbn=text["isbn"],
            cover_image_url=text["coverImageUrl"],
            page_count=_page_count(attributes.get("pageCount")),
            publisher=text["publisher"],
            published_date=text["publishedDate"],
            description=text["description"],
        )
        item = self._tables.books(caller_id).create(record.to_item())
        logger.info("Book created", owner_id=caller_id, book_id=record.id)
        return item

    def get_book(self, caller_id: str, book_id: str) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        return self._tables.books(caller_id).get(book_id, caller_id)

    def list_books(self, caller_id: str) -> list[dict[str, Any]]:
        caller_id = require_caller(caller_id)
        return self._tables.books(caller_id).list_by_owner(caller_id)

    def update_book(
        self,
        caller_id: str,
        book_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply a partial update.  A null optional field removes it."""
        caller_id = require_caller(caller_id)
        unknown = sorted(set(changes) - BOOK_UPDATE_FIELDS)
        if unknown:
            raise ValidationError(f"Unsupported update field(s): {', '.join(unknown)}")

        books = self._tables.books(caller_id)
        item = dict(books.get(book_id, caller_id))
        for field in ("title", "author"):
            if field in changes:
                item[field] = common.required_text(changes[field], field=field)
        if "pageCount" in changes:
            item["pageCount"] = _page_count(changes["pageCount"])
        for field in BOOK_TEXT_FIELDS:
            if field in changes:
                item[field] = common.optional_text(changes[field], field=field)

        item = {name: value for name, value in item.items() if value is not None}
        item["updatedAt"] = common.iso(common.now_utc())
        return books.replace(item)

    def delete_book(self, caller_id: str, book_id: str) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        books = self._tables.books(caller_id)
        book_tags = self._tables.book_tags(caller_id)
        collection_books = self._tables.collection_books(caller_id)

        books.get(book_id, caller_id)

        def detach_tags() -> int:
            tag_ids = book_tags.list_rights_for_left(caller_id, book_id)
            return sum(book_tags.unlink(caller_id, book_id, tag_id) for tag_id in tag_ids)

        def leave_collections() -> int:
            collection_ids = collection_books.list_lefts_for_right(caller_id, book_id)
            return sum(
                collection_books.unlink(caller_id, collection_id, book_id)
                for collection_id in collection_ids
            )

        def drop_progress() -> bool:
            return self._progress.delete_progress_for_book(caller_id, book_id)

        tags_removed, memberships_removed, progress_removed = run_cascade(
            entity_name="Book",
            entity_id=book_id,
            steps=[
                CascadeStep("detach-tags", detach_tags),
                CascadeStep("leave-collections", leave_collections),
                CascadeStep("delete-progress", drop_progress),
            ],
            max_attempts=self._tables.settings.cascade_max_attempts,
        )
        deleted = books.delete(book_id, caller_id)
        logger.info(
            "Book deleted",
            owner_id=caller_id,
            book_id=book_id,
            tags_removed=tags_removed,
            memberships_removed=memberships_removed,
            progress_removed=progress_removed,
        )
        return deleted
