"""
tests/unit/test_library_services.py — Book, tag and collection services.

Coverage assertions:
  - CRUD for each entity, owner-scoped.
  - Another owner's ids behave exactly like missing ids.
  - Deleting a book removes its tag links, memberships and progress.
  - Deleting a tag or collection removes only its own links.
  - Relationship listings skip endpoints that no longer exist.
"""

from __future__ import annotations

from typing import Any

import pytest
from book_api.services import LibraryServices
from book_data import Conflict, Forbidden, LibraryTables, NotFound, ValidationError

OWNER = "u1"
OTHER = "u2"


def _book(services: LibraryServices, book_id: str = "b1", owner: str = OWNER, **extra: Any):
    attributes = {"id": book_id, "title": "Dune", "author": "Frank Herbert", **extra}
    return services.books.create_book(owner, attributes)


def _tag(services: LibraryServices, tag_id: str = "t1", owner: str = OWNER):
    return services.tags.create_tag(owner, {"id": tag_id, "label": f"label-{tag_id}"})


def _collection(services: LibraryServices, collection_id: str = "c1", owner: str = OWNER):
    return services.collections.create_collection(
        owner, {"id": collection_id, "name": "Nightstand"}
    )


# ---------------------------------------------------------------------------
# Books
# ---------------------------------------------------------------------------


class TestBooks:
    def test_create_stamps_owner_and_timestamps(self, services: LibraryServices) -> None:
        book = _book(services, pageCount=412, isbn="9780441172719")
        assert book["userId"] == OWNER
        assert book["createdAt"] == book["updatedAt"] == "2026-03-01T09:00:00Z"
        assert book["pageCount"] == 412
        assert services.books.get_book(OWNER, "b1")["isbn"] == "9780441172719"

    def test_create_generates_id(self, services: LibraryServices) -> None:
        book = services.books.create_book(OWNER, {"title": "Emma", "author": "Jane Austen"})
        assert len(book["id"]) == 36
        assert services.books.get_book(OWNER, book["id"])["title"] == "Emma"

    @pytest.mark.parametrize(
        "attributes",
        [
            {"author": "A"},
            {"title": "  ", "author": "A"},
            {"title": "T", "author": "A", "pageCount": -1},
            {"title": "T", "author": "A", "id": "bad_id"},
        ],
    )
    def test_create_rejects_invalid(
        self, services: LibraryServices, attributes: dict[str, Any]
    ) -> None:
        with pytest.raises(ValidationError):
            services.books.create_book(OWNER, attributes)

    def test_duplicate_id_conflicts(self, services: LibraryServices) -> None:
        _book(services)
        with pytest.raises(Conflict):
            _book(services)

    def test_update_changes_fields_and_removes_nulls(
        self, services: LibraryServices, clock: Any
    ) -> None:
        _book(services, isbn="123")
        clock.advance(minutes=5)
        updated = services.books.update_book(OWNER, "b1", {"title": "Dune Messiah", "isbn": None})
        assert updated["title"] == "Dune Messiah"
        assert "isbn" not in updated
        assert updated["updatedAt"] == "2026-03-01T09:05:00Z"
        assert updated["createdAt"] == "2026-03-01T09:00:00Z"
        stored = services.books.get_book(OWNER, "b1")
        assert "isbn" not in stored

    def test_update_rejects_unknown_field(self, services: LibraryServices) -> None:
        _book(services)
        with pytest.raises(ValidationError):
            services.books.update_book(OWNER, "b1", {"userId": OTHER})

    def test_update_missing_book(self, services: LibraryServices) -> None:
        with pytest.raises(NotFound):
            services.books.update_book(OWNER, "nope", {"title": "x"})

    def test_list_books_owner_scoped(self, services: LibraryServices) -> None:
        _book(services, "b1")
        _book(services, "b2")
        _book(services, "b3", owner=OTHER)
        assert {b["id"] for b in services.books.list_books(OWNER)} == {"b1", "b2"}
        assert {b["id"] for b in services.books.list_books(OTHER)} == {"b3"}

    def test_delete_returns_book(self, services: LibraryServices) -> None:
        _book(services)
        assert services.books.delete_book(OWNER, "b1")["id"] == "b1"
        with pytest.raises(NotFound):
            services.books.get_book(OWNER, "b1")

    def test_delete_missing(self, services: LibraryServices) -> None:
        with pytest.raises(NotFound):
            services.books.delete_book(OWNER, "b1")


# ---------------------------------------------------------------------------
# Owner isolation
# ---------------------------------------------------------------------------


class TestOwnerIsolation:
    def test_other_owner_reads_and_writes_look_missing(self, services: LibraryServices) -> None:
        _book(services)
        _tag(services)
        _collection(services)
        attempts = [
            lambda: services.books.get_book(OTHER, "b1"),
            lambda: services.books.update_book(OTHER, "b1", {"title": "x"}),
            lambda: services.books.delete_book(OTHER, "b1"),
            lambda: services.tags.get_tag(OTHER, "t1"),
            lambda: services.tags.update_tag(OTHER, "t1", "x"),
            lambda: services.tags.delete_tag(OTHER, "t1"),
            lambda: services.tags.attach_tag(OTHER, "b1", "t1"),
            lambda: services.collections.get_collection(OTHER, "c1"),
            lambda: services.collections.add_book_to_collection(OTHER, "c1", "b1"),
            lambda: services.progress.record_progress(OTHER, "b1", current_page=5),
            lambda: services.progress.get_progress(OTHER, "b1"),
        ]
        for attempt in attempts:
            with pytest.raises(NotFound):
                attempt()
        assert services.books.get_book(OWNER, "b1")["title"] == "Dune"
        assert services.tags.get_tag(OWNER, "t1")["label"] == "label-t1"

    def test_other_owner_cannot_create_same_id(self, services: LibraryServices) -> None:
        _book(services)
        with pytest.raises(Conflict):
            _book(services, owner=OTHER)

    def test_cannot_link_own_tag_to_foreign_book(self, services: LibraryServices) -> None:
        _book(services)
        _tag(services, "t9", owner=OTHER)
        with pytest.raises(NotFound):
            services.tags.attach_tag(OTHER, "b1", "t9")
        assert services.tags.list_tagged_books(OTHER, "t9") == []

    def test_guard_emits_metric_on_mismatch(
        self, tables: LibraryTables, services: LibraryServices, mock_cw: Any
    ) -> None:
        _book(services)
        with pytest.raises(Forbidden):
            tables.books(OTHER).get("b1", OWNER)
        mock_cw.put_metric_data.assert_called_once()


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


class TestTags:
    def test_attach_then_list_both_directions(self, services: LibraryServices) -> None:
        _book(services)
        _tag(services, "t1")
        _tag(services, "t2")
        result = services.tags.attach_tag(OWNER, "b1", "t1")
        assert result == {"bookId": "b1", "tagId": "t1", "attached": True, "created": True}
        services.tags.attach_tag(OWNER, "b1", "t2")
        assert {t["id"] for t in services.tags.list_book_tags(OWNER, "b1")} == {"t1", "t2"}
        assert [b["id"] for b in services.tags.list_tagged_books(OWNER, "t1")] == ["b1"]

    def test_attach_twice_is_idempotent(self, services: LibraryServices) -> None:
        _book(services)
        _tag(services)
        services.tags.attach_tag(OWNER, "b1", "t1")
        again = services.tags.attach_tag(OWNER, "b1", "t1")
        assert again["attached"] is True
        assert again["created"] is False
        assert len(services.tags.list_book_tags(OWNER, "b1")) == 1

    def test_detach_is_idempotent(self, services: LibraryServices) -> None:
        _book(services)
        _tag(services)
        services.tags.attach_tag(OWNER, "b1", "t1")
        assert services.tags.detach_tag(OWNER, "b1", "t1")["removed"] is True
        assert services.tags.detach_tag(OWNER, "b1", "t1")["removed"] is False
        assert services.tags.list_book_tags(OWNER, "b1") == []

    def test_attach_requires_both_endpoints(self, services: LibraryServices) -> None:
        _book(services)
        with pytest.raises(NotFound, match="Tag not found"):
            services.tags.attach_tag(OWNER, "b1", "t1")
        _tag(services)
        with pytest.raises(NotFound, match="Book not found"):
            services.tags.attach_tag(OWNER, "b2", "t1")

    def test_update_tag_renames(self, services: LibraryServices) -> None:
        _tag(services)
        assert services.tags.update_tag(OWNER, "t1", "sci-fi")["label"] == "sci-fi"
        with pytest.raises(ValidationError):
            services.tags.update_tag(OWNER, "t1", "")

    def test_delete_tag_removes_only_its_links(
        self, services: LibraryServices, tables: LibraryTables
    ) -> None:
        _book(services, "b1")
        _book(services, "b2")
        _tag(services, "t1")
        _tag(services, "t2")
        for book_id in ("b1", "b2"):
            services.tags.attach_tag(OWNER, book_id, "t1")
        services.tags.attach_tag(OWNER, "b1", "t2")

        services.tags.delete_tag(OWNER, "t1")

        book_tags = tables.book_tags(OWNER)
        assert book_tags.exists(OWNER, "b1", "t1") is False
        assert book_tags.exists(OWNER, "b2", "t1") is False
        assert book_tags.exists(OWNER, "b1", "t2") is True
        assert {b["id"] for b in services.books.list_books(OWNER)} == {"b1", "b2"}
        assert [t["id"] for t in services.tags.list_tags(OWNER)] == ["t2"]

    def test_listing_skips_vanished_endpoints(
        self, services: LibraryServices, tables: LibraryTables
    ) -> None:
        _book(services)
        _tag(services, "t1")
        _tag(services, "t2")
        services.tags.attach_tag(OWNER, "b1", "t1")
        services.tags.attach_tag(OWNER, "b1", "t2")
        # Simulate an interrupted cascade: tag gone, link left behind.
        tables.tags(OWNER).delete("t2", OWNER)
        assert tables.book_tags(OWNER).exists(OWNER, "b1", "t2") is True
        assert [t["id"] for t in services.tags.list_book_tags(OWNER, "b1")] == ["t1"]


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


class TestCollections:
    def test_membership_round_trip(self, services: LibraryServices) -> None:
        _book(services, "b1")
        _book(services, "b2")
        _collection(services)
        added = services.collections.add_book_to_collection(OWNER, "c1", "b1")
        assert added == {"collectionId": "c1", "bookId": "b1", "member": True, "created": True}
        services.collections.add_book_to_collection(OWNER, "c1", "b2")
        assert {
            b["id"] for b in services.collections.list_collection_books(OWNER, "c1")
        } == {"b1", "b2"}
        assert [
            c["id"] for c in services.collections.list_book_collections(OWNER, "b1")
        ] == ["c1"]

        removed = services.collections.remove_book_from_collection(OWNER, "c1", "b1")
        assert removed["removed"] is True
        assert [
            b["id"] for b in services.collections.list_collection_books(OWNER, "c1")
        ] == ["b2"]

    def test_update_collection(self, services: LibraryServices) -> None:
        services.collections.create_collection(
            OWNER, {"id": "c1", "name": "Shelf", "description": "old"}
        )
        updated = services.collections.update_collection(
            OWNER, "c1", {"name": "Top shelf", "description": None}
        )
        assert updated["name"] == "Top shelf"
        assert "description" not in updated
        with pytest.raises(ValidationError):
            services.collections.update_collection(OWNER, "c1", {"owner": "x"})

    def test_delete_collection_keeps_books(
        self, services: LibraryServices, tables: LibraryTables
    ) -> None:
        _book(services)
        _collection(services, "c1")
        _collection(services, "c2")
        services.collections.add_book_to_collection(OWNER, "c1", "b1")
        services.collections.add_book_to_collection(OWNER, "c2", "b1")

        services.collections.delete_collection(OWNER, "c1")

        members = tables.collection_books(OWNER)
        assert members.exists(OWNER, "c1", "b1") is False
        assert members.exists(OWNER, "c2", "b1") is True
        assert services.books.get_book(OWNER, "b1")["id"] == "b1"
        with pytest.raises(NotFound):
            services.collections.get_collection(OWNER, "c1")


# ---------------------------------------------------------------------------
# Book delete cascade
# ---------------------------------------------------------------------------


class TestBookDeleteCascade:
    def test_removes_links_memberships_and_progress(
        self, services: LibraryServices, tables: LibraryTables
    ) -> None:
        _book(services, "b1")
        _book(services, "b2")
        _tag(services)
        _collection(services)
        services.tags.attach_tag(OWNER, "b1", "t1")
        services.tags.attach_tag(OWNER, "b2", "t1")
        services.collections.add_book_to_collection(OWNER, "c1", "b1")
        services.progress.record_progress(OWNER, "b1", current_page=10)

        services.books.delete_book(OWNER, "b1")

        assert tables.book_tags(OWNER).exists(OWNER, "b1", "t1") is False
        assert tables.book_tags(OWNER).exists(OWNER, "b2", "t1") is True
        assert tables.collection_books(OWNER).exists(OWNER, "c1", "b1") is False
        assert tables.progress(OWNER).find("b1", OWNER) is None
        assert services.tags.get_tag(OWNER, "t1")["id"] == "t1"
        assert services.collections.get_collection(OWNER, "c1")["id"] == "c1"

    def test_attach_delete_scenario(
        self, services: LibraryServices, tables: LibraryTables
    ) -> None:
        _book(services, "b1")
        _tag(services, "t1")
        services.tags.attach_tag(OWNER, "b1", "t1")
        book_tags = tables.book_tags(OWNER)
        assert book_tags.list_rights_for_left(OWNER, "b1") == {"t1"}

        services.books.delete_book(OWNER, "b1")

        assert book_tags.exists(OWNER, "b1", "t1") is False
        assert book_tags.list_rights_for_left(OWNER, "b1") == set()
        assert services.tags.list_tagged_books(OWNER, "t1") == []

    def test_delete_leaves_other_owner_untouched(
        self, services: LibraryServices, tables: LibraryTables
    ) -> None:
        _book(services, "b1")
        _tag(services, "t1")
        services.tags.attach_tag(OWNER, "b1", "t1")
        _book(services, "b7", owner=OTHER)
        _tag(services, "t7", owner=OTHER)
        services.tags.attach_tag(OTHER, "b7", "t7")

        services.books.delete_book(OWNER, "b1")

        assert tables.book_tags(OTHER).exists(OTHER, "b7", "t7") is True
