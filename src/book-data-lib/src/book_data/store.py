"""
book_data.store — OwnerScopedTable, the Entity Store.

A DynamoDB table wrapper bound to a single caller identity.  Every operation
takes the owner id explicitly and runs it through the access guard against
the bound caller before touching storage; every item read back is guarded
again before it is returned.

Contract (per entity table):
    get(id, owner)          -> item              | NotFound
    create(item)            -> item              | Conflict
    put(item)               -> item   (upsert)
    replace(item)           -> item              | NotFound (must already exist)
    delete(id, owner)       -> deleted item      | NotFound
    list_by_owner(owner)    -> list[item] (unordered, owner-scoped)

There is no cross-owner listing.  Writes are visible to the next read; no
caching happens here.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from typing import Any

from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from book_data.exceptions import (
    Conflict,
    Forbidden,
    NotFound,
    StorageUnavailable,
    ValidationError,
)
from book_data.guard import authorize, require_caller
from book_data.models import OWNER_ATTRIBUTE, EntityTable

logger = Logger(service="book-data-lib")

_RETRYABLE_ERROR_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "InternalServerError",
        "ServiceUnavailable",
        "TransactionConflictException",
    }
)
_TRANSIENT_BOTOCORE_ERRORS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    ConnectionClosedError,
)


def error_code(exc: ClientError) -> str:
    return str((exc.response.get("Error") or {}).get("Code", ""))


@contextmanager
def storage_errors(table_name: str) -> Iterator[None]:
    """Translate transient DynamoDB faults into StorageUnavailable.

    A ValidationException (oversized item, malformed attribute) becomes
    ValidationError.  Other ClientErrors propagate unchanged; callers that
    expect a specific code (ConditionalCheckFailedException) handle it
    themselves.
    """
    try:
        yield
    except ClientError as exc:
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        if error_code(exc) == "ValidationException":
            logger.warning(
                "DynamoDB rejected request",
                table=table_name,
                error_message=(exc.response.get("Error") or {}).get("Message", ""),
            )
            raise ValidationError("Record rejected by storage: too large or malformed") from exc
        if error_code(exc) in _RETRYABLE_ERROR_CODES or status >= 500:
            logger.warning(
                "Transient DynamoDB error", table=table_name, error_code=error_code(exc)
            )
            raise StorageUnavailable(f"Storage temporarily unavailable ({table_name})") from exc
        raise
    except _TRANSIENT_BOTOCORE_ERRORS as exc:
        logger.warning("DynamoDB connection error", table=table_name, error=str(exc))
        raise StorageUnavailable(f"Storage temporarily unavailable ({table_name})") from exc


def ddb_value(value: Any) -> Any:
    """Convert floats (recursively) to Decimal; boto3 rejects float."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: ddb_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [ddb_value(v) for v in value]
    return value


def query_all(table: Any, **kwargs: Any) -> list[dict[str, Any]]:
    """Run a query, following LastEvaluatedKey until exhausted."""
    items: list[dict[str, Any]] = []
    while True:
        response = table.query(**kwargs)
        items.extend(response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


class OwnerScopedTable:
    """
    Entity table scoped to a single caller.

    Any owner id passed in (explicitly, or embedded as userId in an item) must
    equal the bound caller; otherwise the guard raises Forbidden, which is
    reported to callers as NotFound.
    """

    def __init__(
        self,
        definition: EntityTable,
        *,
        caller_id: str,
        dynamodb_resource: Any,
        cloudwatch_client: Any = None,
    ) -> None:
        self._definition = definition
        self._caller_id = require_caller(caller_id)
        self._table: Any = dynamodb_resource.Table(definition.table_name)
        self._cloudwatch = cloudwatch_client

    @property
    def entity_name(self) -> str:
        return self._definition.entity_name

    def _authorize(self, owner_id: Any) -> None:
        authorize(
            self._caller_id,
            owner_id,
            entity_name=self._definition.entity_name,
            cloudwatch_client=self._cloudwatch,
        )

    def _not_found(self) -> NotFound:
        return NotFound(self._definition.entity_name)

    def _id_of(self, item: dict[str, Any]) -> str:
        return str(item[self._definition.id_attribute])

    def get(self, entity_id: str, owner_id: str) -> dict[str, Any]:
        self._authorize(owner_id)
        with storage_errors(self._definition.table_name):
            response = self._table.get_item(
                Key=self._definition.key(entity_id, owner_id),
                ConsistentRead=True,
            )
        item = response.get("Item")
        if item is None:
            raise self._not_found()
        self._authorize(item.get(OWNER_ATTRIBUTE))
        return item

    def find(self, entity_id: str, owner_id: str) -> dict[str, Any] | None:
        """Like get(), but returns None when the record does not exist."""
        try:
            return self.get(entity_id, owner_id)
        except Forbidden:
            raise
        except NotFound:
            return None

    def id_in_use(self, entity_id: str) -> bool:
        """True if any owner already holds a record with this id.

        Reads only the hash key partition and returns nothing but a boolean.
        """
        with storage_errors(self._definition.table_name):
            response = self._table.query(
                KeyConditionExpression=Key(self._definition.id_attribute).eq(entity_id),
                Limit=1,
            )
        return bool(response.get("Items"))

    def create(self, item: dict[str, Any]) -> dict[str, Any]:
        """Insert a new record.  Conflict if the id exists under any owner."""
        self._authorize(item.get(OWNER_ATTRIBUTE))
        entity_id = self._id_of(item)
        if self.id_in_use(entity_id):
            raise Conflict(f"{self._definition.entity_name} {entity_id!r} already exists")
        try:
            with storage_errors(self._definition.table_name):
                self._table.put_item(
                    Item=ddb_value(item),
                    ConditionExpression=Attr(self._definition.id_attribute).not_exists(),
                )
        except ClientError as exc:
            if error_code(exc) == "ConditionalCheckFailedException":
                raise Conflict(
                    f"{self._definition.entity_name} {entity_id!r} already exists"
                ) from exc
            raise
        return item

    def put(self, item: dict[str, Any]) -> dict[str, Any]:
        """Upsert.  The owner is the item's userId and must be the caller."""
        self._authorize(item.get(OWNER_ATTRIBUTE))
        with storage_errors(self._definition.table_name):
            self._table.put_item(Item=ddb_value(item))
        return item

    def replace(self, item: dict[str, Any]) -> dict[str, Any]:
        """Overwrite an existing record; NotFound if it was deleted meanwhile."""
        self._authorize(item.get(OWNER_ATTRIBUTE))
        try:
            with storage_errors(self._definition.table_name):
                self._table.put_item(
                    Item=ddb_value(item),
                    ConditionExpression=Attr(self._definition.id_attribute).exists(),
                )
        except ClientError as exc:
            if error_code(exc) == "ConditionalCheckFailedException":
                raise self._not_found() from exc
            raise
        return item

    def delete(self, entity_id: str, owner_id: str) -> dict[str, Any]:
        """Delete one record and return its previous attributes."""
        self._authorize(owner_id)
        try:
            with storage_errors(self._definition.table_name):
                response = self._table.delete_item(
                    Key=self._definition.key(entity_id, owner_id),
                    ConditionExpression=Attr(self._definition.id_attribute).exists(),
                    ReturnValues="ALL_OLD",
                )
        except ClientError as exc:
            if error_code(exc) == "ConditionalCheckFailedException":
                raise self._not_found() from exc
            raise
        return response.get("Attributes", {})

    def discard(self, entity_id: str, owner_id: str) -> bool:
        """Idempotent delete used by cascades.  Returns True if a record was removed."""
        try:
            self.delete(entity_id, owner_id)
        except Forbidden:
            raise
        except NotFound:
            return False
        return True

    def list_by_owner(self, owner_id: str) -> list[dict[str, Any]]:
        """All records of one owner via the userId GSI (eventually consistent)."""
        self._authorize(owner_id)
        with storage_errors(self._definition.table_name):
            items = query_all(
                self._table,
                IndexName=self._definition.owner_index,
                KeyConditionExpression=Key(OWNER_ATTRIBUTE).eq(owner_id),
            )
        for item in items:
            self._authorize(item.get(OWNER_ATTRIBUTE))
        return items
