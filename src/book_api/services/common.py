"""
book_api.services.common — Clock, id and attribute helpers shared by the services.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from book_data import OwnerScopedTable, ValidationError
from book_data.models import validate_entity_id

# DynamoDB items are capped at 400 KB; these keep every record well under it.
MAX_TEXT_LENGTH = 1024
MAX_DESCRIPTION_LENGTH = 8192

_TEXT_LIMITS = {"description": MAX_DESCRIPTION_LENGTH}


def now_utc() -> datetime:
    return datetime.now(UTC)


def iso(dt: datetime) -> str:
    return dt.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def new_id() -> str:
    return str(uuid.uuid4())


def entity_id_or_new(value: Any, *, field: str = "id") -> str:
    """Use a caller-supplied id when given, otherwise mint a UUID."""
    if value is None:
        return new_id()
    return validate_entity_id(value, field=field)


def _capped(text: str, field: str) -> str:
    limit = _TEXT_LIMITS.get(field, MAX_TEXT_LENGTH)
    if len(text) > limit:
        raise ValidationError(f"{field} must be at most {limit} characters")
    return text


def required_text(value: Any, *, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must not be blank")
    return _capped(value.strip(), field)


def optional_text(value: Any, *, field: str) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return _capped(text, field) if text else None


def as_number(value: Any) -> int | float | None:
    """Normalize a stored number (Decimal from boto3) to int or float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, int | float):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def resolve_existing(
    store: OwnerScopedTable,
    owner_id: str,
    ids: Iterable[str],
) -> list[dict[str, Any]]:
    """Return the owner's records whose id is in ids, dropping ids that no longer exist.

    Relationship listings can reference endpoints whose cascade has not run
    (or failed); those are soft garbage and are filtered here.  Costs one
    owner-index query regardless of how many ids are asked for.
    """
    wanted = set(ids)
    if not wanted:
        return []
    return [item for item in store.list_by_owner(owner_id) if str(item.get("id")) in wanted]
