"""
book_data.tables — Provisioning definitions for the six library tables.

Mirrors the production stack: hash key = entity (or composite) id, range
key = userId, on-demand billing.  The GSIs are what make owner listing and
both relationship directions queries rather than scans.

Used by scripts/dev-bootstrap.py and by the moto-backed tests.
"""

from __future__ import annotations

from typing import Any

from botocore.exceptions import ClientError

from book_data.config import StoreSettings
from book_data.models import OWNER_ATTRIBUTE, EntityTable, RelationshipTable
from book_data.store import error_code


def _gsi(index_name: str, hash_attribute: str, range_attribute: str | None = None) -> dict:
    key_schema = [{"AttributeName": hash_attribute, "KeyType": "HASH"}]
    if range_attribute is not None:
        key_schema.append({"AttributeName": range_attribute, "KeyType": "RANGE"})
    return {
        "IndexName": index_name,
        "KeySchema": key_schema,
        "Projection": {"ProjectionType": "ALL"},
    }


def _entity_table_definition(table: EntityTable) -> dict[str, Any]:
    return {
        "TableName": table.table_name,
        "KeySchema": [
            {"AttributeName": table.id_attribute, "KeyType": "HASH"},
            {"AttributeName": OWNER_ATTRIBUTE, "KeyType": "RANGE"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": table.id_attribute, "AttributeType": "S"},
            {"AttributeName": OWNER_ATTRIBUTE, "AttributeType": "S"},
        ],
        "GlobalSecondaryIndexes": [_gsi(table.owner_index, OWNER_ATTRIBUTE)],
        "BillingMode": "PAY_PER_REQUEST",
    }


def _relationship_table_definition(table: RelationshipTable) -> dict[str, Any]:
    return {
        "TableName": table.table_name,
        "KeySchema": [
            {"AttributeName": table.key_attribute, "KeyType": "HASH"},
            {"AttributeName": OWNER_ATTRIBUTE, "KeyType": "RANGE"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": table.key_attribute, "AttributeType": "S"},
            {"AttributeName": OWNER_ATTRIBUTE, "AttributeType": "S"},
            {"AttributeName": table.left_attribute, "AttributeType": "S"},
            {"AttributeName": table.right_attribute, "AttributeType": "S"},
        ],
        "GlobalSecondaryIndexes": [
            _gsi(table.left_index, OWNER_ATTRIBUTE, table.left_attribute),
            _gsi(table.right_index, OWNER_ATTRIBUTE, table.right_attribute),
        ],
        "BillingMode": "PAY_PER_REQUEST",
    }


def table_definitions(settings: StoreSettings) -> list[dict[str, Any]]:
    """create_table kwargs for every library table, entity tables first."""
    return [
        _entity_table_definition(settings.books),
        _entity_table_definition(settings.tags),
        _entity_table_definition(settings.collections),
        _entity_table_definition(settings.progress),
        _relationship_table_definition(settings.book_tags),
        _relationship_table_definition(settings.collection_books),
    ]


def create_tables(dynamodb: Any, settings: StoreSettings) -> list[str]:
    """Create all library tables.  Idempotent; existing tables are skipped.

    Returns the names of the tables that were created by this call.
    """
    created: list[str] = []
    for definition in table_definitions(settings):
        try:
            dynamodb.create_table(**definition)
        except ClientError as exc:
            if error_code(exc) in ("ResourceInUseException", "TableAlreadyExistsException"):
                continue
            raise
        created.append(definition["TableName"])
    return created
