"""
book_api.services.collection_service — Collections and collection↔book membership.

Mirrors the tag pattern against the CollectionBook relationship: the
collection is the left endpoint, the book the right.  Deleting a collection
removes its memberships; the books themselves are untouched.
"""

from __future__ import annotations

from typing import Any

from aws_lambda_powertools import Logger

from book_api.services import common
from book_api.services.cascade import CascadeStep, run_cascade
from book_data import LibraryTables, ValidationError
from book_data.guard import require_caller
from book_data.models import CollectionRecord

logger = Logger(service="book-api")

COLLECTION_UPDATE_FIELDS = frozenset({"name", "description"})


class CollectionService:
    def __init__(self, tables: LibraryTables) -> None:
        self._tables = tables

    def create_collection(self, caller_id: str, attributes: dict[str, Any]) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        now = common.iso(common.now_utc())
        record = CollectionRecord(
            id=common.entity_id_or_new(attributes.get("id")),
            user_id=caller_id,
            name=common.required_text(attributes.get("name"), field="name"),
            created_at=now,
            updated_at=now,
            description=common.optional_text(attributes.get("description"), field="description"),
        )
        return self._tables.collections(caller_id).create(record.to_item())

    def get_collection(self, caller_id: str, collection_id: str) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        return self._tables.collections(caller_id).get(collection_id, caller_id)

    def list_collections(self, caller_id: str) -> list[dict[str, Any]]:
        caller_id = require_caller(caller_id)
        return self._tables.collections(caller_id).list_by_owner(caller_id)

    def update_collection(
        self,
        caller_id: str,
        collection_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        unknown = sorted(set(changes) - COLLECTION_UPDATE_FIELDS)
        if unknown:
            raise ValidationError(f"Unsupported update field(s): {', '.join(unknown)}")

        collections = self._tables.collections(caller_id)
        item = dict(collections.get(collection_id, caller_id))
        if "name" in changes:
            item["name"] = common.required_text(changes["name"], field="name")
        if "description" in changes:
            description = common.optional_text(changes["description"], field="description")
            if description is None:
                item.pop("description", None)
            else:
                item["description"] = description
        item["updatedAt"] = common.iso(common.now_utc())
        return collections.replace(item)

    def delete_collection(self, caller_id: str, collection_id: str) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        collections = self._tables.collections(caller_id)
        collection_books = self._tables.collection_books(caller_id)

        collections.get(collection_id, caller_id)

        def remove_memberships() -> int:
            book_ids = collection_books.list_rights_for_left(caller_id, collection_id)
            return sum(
                collection_books.unlink(caller_id, collection_id, book_id) for book_id in book_ids
            )

        (memberships_removed,) = run_cascade(
            entity_name="Collection",
            entity_id=collection_id,
            steps=[CascadeStep("remove-memberships", remove_memberships)],
            max_attempts=self._tables.settings.cascade_max_attempts,
        )
        deleted = collections.delete(collection_id, caller_id)
        logger.info(
            "Collection deleted",
            owner_id=caller_id,
            collection_id=collection_id,
            memberships_removed=memberships_removed,
        )
        return deleted

    def _require_endpoints(self, caller_id: str, collection_id: str, book_id: str) -> None:
        self._tables.collections(caller_id).get(collection_id, caller_id)
        self._tables.books(caller_id).get(book_id, caller_id)

    def add_book_to_collection(
        self, caller_id: str, collection_id: str, book_id: str
    ) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        self._require_endpoints(caller_id, collection_id, book_id)
        created = self._tables.collection_books(caller_id).link(caller_id, collection_id, book_id)
        return {
            "collectionId": collection_id,
            "bookId": book_id,
            "member": True,
            "created": created,
        }

    def remove_book_from_collection(
        self, caller_id: str, collection_id: str, book_id: str
    ) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        self._require_endpoints(caller_id, collection_id, book_id)
        removed = self._tables.collection_books(caller_id).unlink(
            caller_id, collection_id, book_id
        )
        return {
            "collectionId": collection_id,
            "bookId": book_id,
            "member": False,
            "removed": removed,
        }

    def list_collection_books(self, caller_id: str, collection_id: str) -> list[dict[str, Any]]:
        caller_id = require_caller(caller_id)
        self._tables.collections(caller_id).get(collection_id, caller_id)
        book_ids = self._tables.collection_books(caller_id).list_rights_for_left(
            caller_id, collection_id
        )
        return common.resolve_existing(self._tables.books(caller_id), caller_id, book_ids)

    def list_book_collections(self, caller_id: str, book_id: str) -> list[dict[str, Any]]:
        caller_id = require_caller(caller_id)
        self._tables.books(caller_id).get(book_id, caller_id)
        collection_ids = self._tables.collection_books(caller_id).list_lefts_for_right(
            caller_id, book_id
        )
        return common.resolve_existing(
            self._tables.collections(caller_id), caller_id, collection_ids
        )
