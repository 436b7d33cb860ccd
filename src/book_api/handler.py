"""
book_api.handler — GraphQL resolver Lambda for the book tracker.

Invoked by the API as a direct Lambda resolver.  Maps the field name of the
query/mutation to one domain-service call, validating argument structure on
the way in and shaping the result on the way out.

Response envelope (never raises):
    {"data": <result>}
    {"error": {"code": <stable code>, "message": <safe text>, "retryable": bool}}

Codes: NOT_FOUND, CONFLICT, VALIDATION_ERROR, STORAGE_UNAVAILABLE,
INTERNAL_ERROR.  Another owner's record is always reported as NOT_FOUND.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from typing import Any

from aws_lambda_powertools import Logger, Tracer
from botocore.exceptions import BotoCoreError, ClientError

from book_api.services import LibraryServices
from book_api.services.book_service import BOOK_TEXT_FIELDS
from book_data import (
    Forbidden,
    InternalError,
    LibraryError,
    LibraryTables,
    StorageUnavailable,
    ValidationError,
)
from book_data.guard import require_caller
from book_data.models import validate_entity_id

logger = Logger(service="book-api")
tracer = Tracer(service="book-api")

_INTERNAL_MESSAGE = "Internal server error"
_UNAVAILABLE_MESSAGE = "Storage temporarily unavailable, retry with backoff"

# Global services — connection reuse across warm starts
_services: LibraryServices | None = None


def get_services() -> LibraryServices:
    """Lazy initialization of the service graph and its boto3 resources."""
    global _services
    if _services is None:
        _services = LibraryServices.build(LibraryTables.from_env())
    return _services


# ---------------------------------------------------------------------------
# Structural argument validation
# ---------------------------------------------------------------------------


def _arguments(raw: Any) -> dict[str, Any]:
    """Flatten GraphQL arguments; fields under "input" are merged to the top level."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError("arguments must be an object")
    args = {name: value for name, value in raw.items() if name != "input"}
    nested = raw.get("input")
    if nested is not None:
        if not isinstance(nested, dict):
            raise ValidationError("input must be an object")
        args.update(nested)
    return args


def _id_arg(args: dict[str, Any], name: str) -> str:
    if args.get(name) is None:
        raise ValidationError(f"Missing required field(s): {name}")
    return validate_entity_id(args[name], field=name)


def _str_arg(args: dict[str, Any], name: str, *, required: bool = False) -> str | None:
    value = args.get(name)
    if value is None:
        if required:
            raise ValidationError(f"Missing required field(s): {name}")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    return value


def _int_arg(args: dict[str, Any], name: str) -> int | None:
    value = args.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    return value


def _number_arg(args: dict[str, Any], name: str) -> float | int | None:
    value = args.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ValidationError(f"{name} must be a number")
    return value


def _reject_unknown(args: dict[str, Any], allowed: set[str] | frozenset[str]) -> None:
    unknown = sorted(set(args) - set(allowed))
    if unknown:
        raise ValidationError(f"Unsupported field(s): {', '.join(unknown)}")


_BOOK_FIELDS = frozenset({"id", "title", "author", "pageCount", *BOOK_TEXT_FIELDS})


def _book_attributes(args: dict[str, Any], *, create: bool) -> dict[str, Any]:
    _reject_unknown(args, _BOOK_FIELDS)
    attributes: dict[str, Any] = {}
    for field in ("title", "author"):
        if create or field in args:
            attributes[field] = _str_arg(args, field, required=True)
    if "pageCount" in args:
        attributes["pageCount"] = _int_arg(args, "pageCount")
    for field in BOOK_TEXT_FIELDS:
        if field in args:
            attributes[field] = _str_arg(args, field)
    if create and args.get("id") is not None:
        attributes["id"] = _id_arg(args, "id")
    return attributes


# ---------------------------------------------------------------------------
# Operations — one per domain-service method
# ---------------------------------------------------------------------------

Handler = Callable[[LibraryServices, str, dict[str, Any]], Any]


def _create_book(services: LibraryServices, caller: str, args: dict[str, Any]) -> Any:
    return services.books.create_book(caller, _book_attributes(args, create=True))


def _update_book(services: LibraryServices, caller: str, args: dict[str, Any]) -> Any:
    book_id = _id_arg(args, "id")
    changes = _book_attributes(args, create=False)
    changes.pop("id", None)
    if not changes:
        raise ValidationError("At least one update field is required")
    return services.books.update_book(caller, book_id, changes)


def _create_tag(services: LibraryServices, caller: str, args: dict[str, Any]) -> Any:
    _reject_unknown(args, {"id", "label"})
    attributes: dict[str, Any] = {"label": _str_arg(args, "label", required=True)}
    if args.get("id") is not None:
        attributes["id"] = _id_arg(args, "id")
    return services.tags.create_tag(caller, attributes)


def _update_tag(services: LibraryServices, caller: str, args: dict[str, Any]) -> Any:
    _reject_unknown(args, {"id", "label"})
    return services.tags.update_tag(
        caller, _id_arg(args, "id"), _str_arg(args, "label", required=True)
    )


def _create_collection(services: LibraryServices, caller: str, args: dict[str, Any]) -> Any:
    _reject_unknown(args, {"id", "name", "description"})
    attributes: dict[str, Any] = {
        "name": _str_arg(args, "name", required=True),
        "description": _str_arg(args, "description"),
    }
    if args.get("id") is not None:
        attributes["id"] = _id_arg(args, "id")
    return services.collections.create_collection(caller, attributes)


def _update_collection(services: LibraryServices, caller: str, args: dict[str, Any]) -> Any:
    _reject_unknown(args, {"id", "name", "description"})
    changes: dict[str, Any] = {}
    if "name" in args:
        changes["name"] = _str_arg(args, "name", required=True)
    if "description" in args:
        changes["description"] = _str_arg(args, "description")
    if not changes:
        raise ValidationError("At least one update field is required")
    return services.collections.update_collection(caller, _id_arg(args, "id"), changes)


def _record_progress(services: LibraryServices, caller: str, args: dict[str, Any]) -> Any:
    _reject_unknown(args, {"bookId", "currentPage", "page", "percentage", "status"})
    current_page = _int_arg(args, "currentPage")
    page = _int_arg(args, "page")
    if current_page is not None and page is not None and current_page != page:
        raise ValidationError("currentPage and page disagree; send one of them")
    if current_page is None:
        current_page = page
    return services.progress.record_progress(
        caller,
        _id_arg(args, "bookId"),
        current_page=current_page,
        percentage=_number_arg(args, "percentage"),
        status=_str_arg(args, "status"),
    )


OPERATIONS: dict[str, Handler] = {
    # Books
    "createBook": _create_book,
    "updateBook": _update_book,
    "deleteBook": lambda s, c, a: s.books.delete_book(c, _id_arg(a, "id")),
    "getBook": lambda s, c, a: s.books.get_book(c, _id_arg(a, "id")),
    "listBooks": lambda s, c, a: s.books.list_books(c),
    # Tags
    "createTag": _create_tag,
    "updateTag": _update_tag,
    "deleteTag": lambda s, c, a: s.tags.delete_tag(c, _id_arg(a, "id")),
    "getTag": lambda s, c, a: s.tags.get_tag(c, _id_arg(a, "id")),
    "listTags": lambda s, c, a: s.tags.list_tags(c),
    "attachTagToBook": lambda s, c, a: s.tags.attach_tag(
        c, _id_arg(a, "bookId"), _id_arg(a, "tagId")
    ),
    "detachTagFromBook": lambda s, c, a: s.tags.detach_tag(
        c, _id_arg(a, "bookId"), _id_arg(a, "tagId")
    ),
    "listBookTags": lambda s, c, a: s.tags.list_book_tags(c, _id_arg(a, "bookId")),
    "listTaggedBooks": lambda s, c, a: s.tags.list_tagged_books(c, _id_arg(a, "tagId")),
    # Collections
    "createCollection": _create_collection,
    "updateCollection": _update_collection,
    "deleteCollection": lambda s, c, a: s.collections.delete_collection(c, _id_arg(a, "id")),
    "getCollection": lambda s, c, a: s.collections.get_collection(c, _id_arg(a, "id")),
    "listCollections": lambda s, c, a: s.collections.list_collections(c),
    "addBookToCollection": lambda s, c, a: s.collections.add_book_to_collection(
        c, _id_arg(a, "collectionId"), _id_arg(a, "bookId")
    ),
    "removeBookFromCollection": lambda s, c, a: s.collections.remove_book_from_collection(
        c, _id_arg(a, "collectionId"), _id_arg(a, "bookId")
    ),
    "listCollectionBooks": lambda s, c, a: s.collections.list_collection_books(
        c, _id_arg(a, "collectionId")
    ),
    "listBookCollections": lambda s, c, a: s.collections.list_book_collections(
        c, _id_arg(a, "bookId")
    ),
    # Progress & analytics
    "recordProgress": _record_progress,
    "getProgress": lambda s, c, a: s.progress.get_progress(c, _id_arg(a, "bookId")),
    "listProgress": lambda s, c, a: s.progress.list_progress(c),
    "getReadingStats": lambda s, c, a: s.analytics.reading_stats(c),
}


# ---------------------------------------------------------------------------
# Output shaping
# ---------------------------------------------------------------------------


def _shape(value: Any) -> Any:
    """Make a service result JSON-safe: Decimal → int/float, sets → sorted lists."""
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, dict):
        return {key: _shape(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_shape(item) for item in value]
    if isinstance(value, set | frozenset):
        return sorted(_shape(item) for item in value)
    return value


def _error(code: str, message: str, *, retryable: bool = False) -> dict[str, Any]:
    return {"error": {"code": code, "message": message, "retryable": retryable}}


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def dispatch(
    operation: Any,
    caller_id: Any,
    arguments: Any,
    services: LibraryServices | None = None,
) -> dict[str, Any]:
    """Run one named operation for a caller.  Never raises."""
    try:
        caller = require_caller(caller_id)
        handler = OPERATIONS.get(operation) if isinstance(operation, str) else None
        if handler is None:
            raise ValidationError(f"Unsupported operation: {operation!r}")
        args = _arguments(arguments)
        result = handler(services or get_services(), caller, args)
        return {"data": _shape(result)}
    except Forbidden as exc:
        # Already logged by the guard; must look exactly like NOT_FOUND.
        return _error(exc.code, str(exc))
    except StorageUnavailable:
        logger.warning("Storage unavailable", operation=operation)
        return _error(StorageUnavailable.code, _UNAVAILABLE_MESSAGE, retryable=True)
    except InternalError:
        logger.exception("Internal error in resolver", operation=operation)
        return _error(InternalError.code, _INTERNAL_MESSAGE)
    except LibraryError as exc:
        return _error(exc.code, str(exc), retryable=exc.retryable)
    except (ClientError, BotoCoreError):
        logger.exception("AWS client error in resolver", operation=operation)
        return _error(InternalError.code, _INTERNAL_MESSAGE)
    except Exception:
        logger.exception("Unhandled resolver error", operation=operation)
        return _error(InternalError.code, _INTERNAL_MESSAGE)


def _caller_id(event: dict[str, Any]) -> str | None:
    """Verified identity supplied by the API's user-pool or IAM authorizer."""
    identity = event.get("identity") or {}
    if not isinstance(identity, dict):
        return None
    claims = identity.get("claims") if isinstance(identity.get("claims"), dict) else {}
    for value in (
        identity.get("sub"),
        claims.get("sub"),
        identity.get("cognitoIdentityId"),
        identity.get("username"),
    ):
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _operation_name(event: dict[str, Any]) -> str | None:
    info = event.get("info") or {}
    name = info.get("fieldName") if isinstance(info, dict) else None
    return name or event.get("fieldName")


@logger.inject_lambda_context(clear_state=True, log_event=False)
@tracer.capture_lambda_handler
def lambda_handler(event: dict[str, Any], _context: Any) -> dict[str, Any]:
    operation = _operation_name(event)
    caller = _caller_id(event)
    logger.append_keys(operation=operation or "unknown", owner_id=caller or "anonymous")
    return dispatch(operation, caller, event.get("arguments"))
