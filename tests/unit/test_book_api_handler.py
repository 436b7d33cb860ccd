"""
tests/unit/test_book_api_handler.py — Resolver dispatch and the Lambda entry point.

Coverage assertions:
  - Every operation name routes to a service call and returns {"data": ...}.
  - Errors map to stable codes; another owner's record is NOT_FOUND.
  - Internal and storage faults never leak details.
  - Identity is read from the authorizer block; no anonymous calls.
  - Numbers leave as int/float, never Decimal.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from unittest.mock import MagicMock

import pytest
from book_api import handler as book_api_handler
from book_api.services import LibraryServices
from book_data import CascadeIncomplete, StorageUnavailable
from botocore.exceptions import ClientError

OWNER = "u1"
OTHER = "u2"


class FakeLambdaContext:
    function_name = "book-api"
    memory_limit_in_mb = 256
    invoked_function_arn = "arn:aws:lambda:eu-west-2:111111111111:function:book-api"
    aws_request_id = "req-123"


@pytest.fixture
def wired(monkeypatch: pytest.MonkeyPatch, services: LibraryServices) -> LibraryServices:
    monkeypatch.setattr(book_api_handler, "get_services", lambda: services)
    return services


def _call(operation: str, arguments: dict[str, Any] | None = None, caller: str = OWNER):
    return book_api_handler.dispatch(operation, caller, arguments or {})


def _data(response: dict[str, Any]) -> Any:
    assert "error" not in response, response
    return response["data"]


def _code(response: dict[str, Any]) -> str:
    assert "data" not in response, response
    return response["error"]["code"]


def _event(
    field_name: str,
    arguments: dict[str, Any] | None = None,
    identity: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "info": {"fieldName": field_name, "parentTypeName": "Query"},
        "arguments": arguments or {},
        "identity": {"sub": OWNER} if identity is None else identity,
    }


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


def test_operation_table_is_complete() -> None:
    assert set(book_api_handler.OPERATIONS) == {
        "getBook",
        "listBooks",
        "getTag",
        "listTags",
        "listBookTags",
        "listTaggedBooks",
        "getCollection",
        "listCollections",
        "listCollectionBooks",
        "listBookCollections",
        "getProgress",
        "listProgress",
        "getReadingStats",
        "createBook",
        "updateBook",
        "deleteBook",
        "createTag",
        "updateTag",
        "deleteTag",
        "attachTagToBook",
        "detachTagFromBook",
        "createCollection",
        "updateCollection",
        "deleteCollection",
        "addBookToCollection",
        "removeBookFromCollection",
        "recordProgress",
    }


def test_full_flow_through_dispatch(wired: LibraryServices) -> None:
    book = _data(
        _call(
            "createBook",
            {"input": {"id": "b1", "title": "Dune", "author": "Frank Herbert", "pageCount": 412}},
        )
    )
    assert book["pageCount"] == 412
    _data(_call("createTag", {"input": {"id": "t1", "label": "sf"}}))
    _data(_call("createCollection", {"input": {"id": "c1", "name": "Shelf"}}))

    attached = _data(_call("attachTagToBook", {"bookId": "b1", "tagId": "t1"}))
    assert attached["attached"] is True
    _data(_call("addBookToCollection", {"collectionId": "c1", "bookId": "b1"}))

    assert [t["id"] for t in _data(_call("listBookTags", {"bookId": "b1"}))] == ["t1"]
    assert [b["id"] for b in _data(_call("listTaggedBooks", {"tagId": "t1"}))] == ["b1"]
    assert [b["id"] for b in _data(_call("listCollectionBooks", {"collectionId": "c1"}))] == [
        "b1"
    ]
    assert [c["id"] for c in _data(_call("listBookCollections", {"bookId": "b1"}))] == ["c1"]

    progress = _data(_call("recordProgress", {"input": {"bookId": "b1", "page": 50}}))
    assert progress["currentPage"] == 50
    assert progress["status"] == "in-progress"
    assert _data(_call("getProgress", {"bookId": "b1"}))["currentPage"] == 50
    assert len(_data(_call("listProgress"))) == 1
    assert _data(_call("getReadingStats"))["totalPagesRead"] == 50

    renamed = _data(_call("updateBook", {"input": {"id": "b1", "title": "Dune (1965)"}}))
    assert renamed["title"] == "Dune (1965)"
    assert _data(_call("updateTag", {"input": {"id": "t1", "label": "sci-fi"}}))["label"] == (
        "sci-fi"
    )
    assert _data(_call("updateCollection", {"input": {"id": "c1", "name": "Top"}}))["name"] == (
        "Top"
    )

    _data(_call("removeBookFromCollection", {"collectionId": "c1", "bookId": "b1"}))
    _data(_call("detachTagFromBook", {"bookId": "b1", "tagId": "t1"}))
    assert _data(_call("getTag", {"id": "t1"}))["label"] == "sci-fi"
    assert _data(_call("getCollection", {"id": "c1"}))["name"] == "Top"
    assert [t["id"] for t in _data(_call("listTags"))] == ["t1"]
    assert [c["id"] for c in _data(_call("listCollections"))] == ["c1"]

    _data(_call("deleteCollection", {"id": "c1"}))
    _data(_call("deleteTag", {"id": "t1"}))
    assert _data(_call("deleteBook", {"id": "b1"}))["id"] == "b1"
    assert _data(_call("listBooks")) == []


def test_numbers_leave_as_int_and_float(wired: LibraryServices) -> None:
    _data(_call("createBook", {"id": "b1", "title": "Dune", "author": "H", "pageCount": 412}))
    _data(_call("recordProgress", {"bookId": "b1", "currentPage": 7, "percentage": 12.5}))

    book = _data(_call("getBook", {"id": "b1"}))
    progress = _data(_call("getProgress", {"bookId": "b1"}))

    assert type(book["pageCount"]) is int
    assert type(progress["currentPage"]) is int
    assert type(progress["percentage"]) is float
    assert progress["percentage"] == 12.5


def test_shape_converts_nested_values() -> None:
    shaped = book_api_handler._shape(
        {"a": Decimal("3"), "b": [Decimal("1.5")], "c": {"t2", "t1"}, "d": None}
    )
    assert shaped == {"a": 3, "b": [1.5], "c": ["t1", "t2"], "d": None}


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def test_missing_record_is_not_found(wired: LibraryServices) -> None:
    response = _call("getBook", {"id": "b1"})
    assert response == {
        "error": {"code": "NOT_FOUND", "message": "Book not found", "retryable": False}
    }


def test_other_owner_record_is_indistinguishable_from_missing(wired: LibraryServices) -> None:
    _data(_call("createBook", {"id": "b1", "title": "Dune", "author": "H"}))
    foreign = _call("getBook", {"id": "b1"}, caller=OTHER)
    missing = _call("getBook", {"id": "b9"}, caller=OTHER)
    assert foreign == missing
    assert _code(_call("deleteBook", {"id": "b1"}, caller=OTHER)) == "NOT_FOUND"
    assert _code(_call("recordProgress", {"bookId": "b1", "page": 3}, caller=OTHER)) == (
        "NOT_FOUND"
    )
    assert _data(_call("getBook", {"id": "b1"}))["title"] == "Dune"


def test_duplicate_create_is_conflict(wired: LibraryServices) -> None:
    _data(_call("createTag", {"id": "t1", "label": "sf"}))
    assert _code(_call("createTag", {"id": "t1", "label": "sf"})) == "CONFLICT"
    assert _code(_call("createTag", {"id": "t1", "label": "sf"}, caller=OTHER)) == "CONFLICT"


@pytest.mark.parametrize(
    ("operation", "arguments"),
    [
        ("createBook", {"title": "Dune"}),
        ("createBook", {"title": "Dune", "author": "H", "pageCount": "many"}),
        ("createBook", {"title": "Dune", "author": "H", "owner": "u2"}),
        ("getBook", {}),
        ("getBook", {"id": "has_underscore"}),
        ("getBook", {"id": 12}),
        ("updateBook", {"id": "b1"}),
        ("recordProgress", {"bookId": "b1", "percentage": "half"}),
        ("recordProgress", {"bookId": "b1", "page": True}),
        ("recordProgress", {"bookId": "b1", "currentPage": 5, "page": "not-a-number"}),
        ("recordProgress", {"bookId": "b1", "currentPage": 5, "page": 6}),
        ("createBook", {"id": "b1", "title": "D", "author": "H", "description": "x" * 500_000}),
        ("createBook", {"id": "b1", "title": "D" * 2000, "author": "H"}),
        ("createTag", {"id": "t1", "label": "x" * 5000}),
        ("createCollection", {"id": "c1", "name": "Shelf", "description": "x" * 500_000}),
        ("updateCollection", {"id": "c1"}),
        ("noSuchOperation", {}),
    ],
)
def test_structural_validation(
    wired: LibraryServices, operation: str, arguments: dict[str, Any]
) -> None:
    response = _call(operation, arguments)
    assert _code(response) == "VALIDATION_ERROR"
    assert response["error"]["retryable"] is False


def test_business_validation_from_services(wired: LibraryServices) -> None:
    _data(_call("createBook", {"id": "b1", "title": "Dune", "author": "H"}))
    response = _call("recordProgress", {"bookId": "b1", "percentage": 150})
    assert _code(response) == "VALIDATION_ERROR"
    assert "percentage" in response["error"]["message"]


def test_page_alias_matching_current_page_is_accepted(wired: LibraryServices) -> None:
    _data(_call("createBook", {"id": "b1", "title": "Dune", "author": "H"}))
    progress = _data(_call("recordProgress", {"bookId": "b1", "currentPage": 5, "page": 5}))
    assert progress["currentPage"] == 5


def test_oversized_update_is_rejected_and_record_kept(wired: LibraryServices) -> None:
    _data(_call("createBook", {"id": "b1", "title": "Dune", "author": "H"}))
    response = _call("updateBook", {"id": "b1", "description": "x" * 500_000})
    assert _code(response) == "VALIDATION_ERROR"
    assert "description" in response["error"]["message"]
    assert "description" not in _data(_call("getBook", {"id": "b1"}))


@pytest.mark.parametrize("caller", [None, "", "   "])
def test_missing_identity_is_rejected(wired: LibraryServices, caller: Any) -> None:
    response = book_api_handler.dispatch("listBooks", caller, {})
    assert _code(response) == "VALIDATION_ERROR"


def test_storage_unavailable_is_retryable_and_opaque() -> None:
    services = MagicMock()
    services.books.list_books.side_effect = StorageUnavailable("bookshelf-books throttled")
    response = book_api_handler.dispatch("listBooks", OWNER, {}, services)
    assert response["error"]["code"] == "STORAGE_UNAVAILABLE"
    assert response["error"]["retryable"] is True
    assert "bookshelf-books" not in response["error"]["message"]


@pytest.mark.parametrize(
    "exc",
    [
        RuntimeError("secret detail"),
        CascadeIncomplete(entity_name="Book", entity_id="b1", step="detach-tags"),
        ClientError({"Error": {"Code": "AccessDeniedException", "Message": "no"}}, "Query"),
    ],
)
def test_internal_errors_are_opaque(exc: Exception) -> None:
    services = MagicMock()
    services.books.delete_book.side_effect = exc
    response = book_api_handler.dispatch("deleteBook", OWNER, {"id": "b1"}, services)
    assert response == {
        "error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "retryable": False}
    }


# ---------------------------------------------------------------------------
# Lambda entry point
# ---------------------------------------------------------------------------


def test_lambda_handler_routes_by_field_name(wired: LibraryServices) -> None:
    event = _event("createBook", {"input": {"id": "b1", "title": "Dune", "author": "H"}})
    response = book_api_handler.lambda_handler(event, FakeLambdaContext())
    assert response["data"]["userId"] == OWNER

    listed = book_api_handler.lambda_handler(_event("listBooks"), FakeLambdaContext())
    assert [b["id"] for b in listed["data"]] == ["b1"]


def test_lambda_handler_without_identity(wired: LibraryServices) -> None:
    event = _event("listBooks", identity={})
    response = book_api_handler.lambda_handler(event, FakeLambdaContext())
    assert response["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.parametrize(
    ("identity", "expected"),
    [
        ({"sub": "s-1", "username": "alice"}, "s-1"),
        ({"claims": {"sub": "s-2"}}, "s-2"),
        ({"cognitoIdentityId": "eu-west-2:abc"}, "eu-west-2:abc"),
        ({"username": "alice"}, "alice"),
        ({"sub": "  "}, None),
        ({}, None),
    ],
)
def test_caller_id_extraction(identity: dict[str, Any], expected: str | None) -> None:
    assert book_api_handler._caller_id({"identity": identity}) == expected


def test_caller_id_missing_identity_block() -> None:
    assert book_api_handler._caller_id({}) is None
