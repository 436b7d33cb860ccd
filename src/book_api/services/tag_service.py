"""
book_api.services.tag_service — Tags and the book↔tag relationship.

Attach/detach verify that both the book and the tag exist for the caller
before delegating to the BookTag relationship encoder.  Deleting a tag
removes every BookTag link to it and leaves books and other tags alone.
"""

from __future__ import annotations

from typing import Any

from aws_lambda_powertools import Logger

from book_api.services import common
from book_api.services.cascade import CascadeStep, run_cascade
from book_data import LibraryTables
from book_data.guard import require_caller
from book_data.models import TagRecord

logger = Logger(service="book-api")


class TagService:
    def __init__(self, tables: LibraryTables) -> None:
        self._tables = tables

    def create_tag(self, caller_id: str, attributes: dict[str, Any]) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        now = common.iso(common.now_utc())
        record = TagRecord(
            id=common.entity_id_or_new(attributes.get("id")),
            user_id=caller_id,
            label=common.required_text(attributes.get("label"), field="label"),
            created_at=now,
            updated_at=now,
        )
        return self._tables.tags(caller_id).create(record.to_item())

    def get_tag(self, caller_id: str, tag_id: str) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        return self._tables.tags(caller_id).get(tag_id, caller_id)

    def list_tags(self, caller_id: str) -> list[dict[str, Any]]:
        caller_id = require_caller(caller_id)
        return self._tables.tags(caller_id).list_by_owner(caller_id)

    def update_tag(self, caller_id: str, tag_id: str, label: Any) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        tags = self._tables.tags(caller_id)
        item = dict(tags.get(tag_id, caller_id))
        item["label"] = common.required_text(label, field="label")
        item["updatedAt"] = common.iso(common.now_utc())
        return tags.replace(item)

    def delete_tag(self, caller_id: str, tag_id: str) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        tags = self._tables.tags(caller_id)
        book_tags = self._tables.book_tags(caller_id)

        tags.get(tag_id, caller_id)

        def detach_from_books() -> int:
            book_ids = book_tags.list_lefts_for_right(caller_id, tag_id)
            return sum(book_tags.unlink(caller_id, book_id, tag_id) for book_id in book_ids)

        (links_removed,) = run_cascade(
            entity_name="Tag",
            entity_id=tag_id,
            steps=[CascadeStep("detach-from-books", detach_from_books)],
            max_attempts=self._tables.settings.cascade_max_attempts,
        )
        deleted = tags.delete(tag_id, caller_id)
        logger.info("Tag deleted", owner_id=caller_id, tag_id=tag_id, links_removed=links_removed)
        return deleted

    def _require_endpoints(self, caller_id: str, book_id: str, tag_id: str) -> None:
        self._tables.books(caller_id).get(book_id, caller_id)
        self._tables.tags(caller_id).get(tag_id, caller_id)

    def attach_tag(self, caller_id: str, book_id: str, tag_id: str) -> dict[str, Any]:
        """Idempotent: attaching an already-attached tag is a success."""
        caller_id = require_caller(caller_id)
        self._require_endpoints(caller_id, book_id, tag_id)
        created = self._tables.book_tags(caller_id).link(caller_id, book_id, tag_id)
        return {"bookId": book_id, "tagId": tag_id, "attached": True, "created": created}

    def detach_tag(self, caller_id: str, book_id: str, tag_id: str) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        self._require_endpoints(caller_id, book_id, tag_id)
        removed = self._tables.book_tags(caller_id).unlink(caller_id, book_id, tag_id)
        return {"bookId": book_id, "tagId": tag_id, "attached": False, "removed": removed}

    def list_book_tags(self, caller_id: str, book_id: str) -> list[dict[str, Any]]:
        """Tags on a book.  Links to tags that no longer exist are skipped."""
        caller_id = require_caller(caller_id)
        self._tables.books(caller_id).get(book_id, caller_id)
        tag_ids = self._tables.book_tags(caller_id).list_rights_for_left(caller_id, book_id)
        return common.resolve_existing(self._tables.tags(caller_id), caller_id, tag_ids)

    def list_tagged_books(self, caller_id: str, tag_id: str) -> list[dict[str, Any]]:
        """Books carrying a tag.  Links to books that no longer exist are skipped."""
        caller_id = require_caller(caller_id)
        self._tables.tags(caller_id).get(tag_id, caller_id)
        book_ids = self._tables.book_tags(caller_id).list_lefts_for_right(caller_id, tag_id)
        return common.resolve_existing(self._tables.books(caller_id), caller_id, book_ids)
