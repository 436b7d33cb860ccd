"""
book_data.relationships — RelationshipEncoder, join-table emulation on DynamoDB.

A many-to-many link (book↔tag, collection↔book) is one item whose hash key
is relationship_key(leftId, rightId) and whose range key is the owner.
link / unlink / exists are therefore single-key operations.

Reverse lookups do not scan: each relationship table carries two GSIs,
``{left}-index`` and ``{right}-index``, both hashed on userId and ranged on
the endpoint id.  A listing costs one query proportional to the number of
links the endpoint has.

Known limitation: GSIs are eventually consistent, so a link created a moment
ago may be missing from a listing for a short window.  exists() reads the
base table with ConsistentRead and is not affected.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from book_data.guard import authorize, require_caller
from book_data.models import OWNER_ATTRIBUTE, RelationshipTable, relationship_key
from book_data.store import error_code, query_all, storage_errors


def _now_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class RelationshipEncoder:
    """
    Link table scoped to a single caller.

    Endpoint existence is NOT checked here; the domain services verify both
    endpoints before linking.  Link and unlink are idempotent.
    """

    def __init__(
        self,
        definition: RelationshipTable,
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
    def definition(self) -> RelationshipTable:
        return self._definition

    def _authorize(self, owner_id: Any) -> None:
        authorize(
            self._caller_id,
            owner_id,
            entity_name="Relationship",
            cloudwatch_client=self._cloudwatch,
        )

    def link(self, owner_id: str, left_id: str, right_id: str) -> bool:
        """Create the link.  Returns False (not an error) if it already existed."""
        self._authorize(owner_id)
        item = {
            self._definition.key_attribute: relationship_key(left_id, right_id),
            OWNER_ATTRIBUTE: owner_id,
            self._definition.left_attribute: left_id,
            self._definition.right_attribute: right_id,
            "createdAt": _now_iso(),
        }
        try:
            with storage_errors(self._definition.table_name):
                self._table.put_item(
                    Item=item,
                    ConditionExpression=Attr(self._definition.key_attribute).not_exists(),
                )
        except ClientError as exc:
            if error_code(exc) == "ConditionalCheckFailedException":
                return False
            raise
        return True

    def unlink(self, owner_id: str, left_id: str, right_id: str) -> bool:
        """Remove the link.  Returns False (not an error) if it was absent."""
        self._authorize(owner_id)
        with storage_errors(self._definition.table_name):
            response = self._table.delete_item(
                Key=self._definition.key(owner_id, left_id, right_id),
                ReturnValues="ALL_OLD",
            )
        return bool(response.get("Attributes"))

    def exists(self, owner_id: str, left_id: str, right_id: str) -> bool:
        self._authorize(owner_id)
        with storage_errors(self._definition.table_name):
            response = self._table.get_item(
                Key=self._definition.key(owner_id, left_id, right_id),
                ConsistentRead=True,
            )
        item = response.get("Item")
        if item is None:
            return False
        self._authorize(item.get(OWNER_ATTRIBUTE))
        return True

    def _list_endpoint(
        self,
        owner_id: str,
        *,
        index_name: str,
        match_attribute: str,
        match_id: str,
        result_attribute: str,
    ) -> set[str]:
        self._authorize(owner_id)
        with storage_errors(self._definition.table_name):
            items = query_all(
                self._table,
                IndexName=index_name,
                KeyConditionExpression=(
                    Key(OWNER_ATTRIBUTE).eq(owner_id) & Key(match_attribute).eq(match_id)
                ),
            )
        results: set[str] = set()
        for item in items:
            self._authorize(item.get(OWNER_ATTRIBUTE))
            results.add(str(item[result_attribute]))
        return results

    def list_rights_for_left(self, owner_id: str, left_id: str) -> set[str]:
        """e.g. all tag ids on a book, all book ids in a collection."""
        return self._list_endpoint(
            owner_id,
            index_name=self._definition.left_index,
            match_attribute=self._definition.left_attribute,
            match_id=left_id,
            result_attribute=self._definition.right_attribute,
        )

    def list_lefts_for_right(self, owner_id: str, right_id: str) -> set[str]:
        """e.g. all book ids carrying a tag, all collections holding a book."""
        return self._list_endpoint(
            owner_id,
            index_name=self._definition.right_index,
            match_attribute=self._definition.right_attribute,
            match_id=right_id,
            result_attribute=self._definition.left_attribute,
        )

    def list_links(self, owner_id: str) -> list[tuple[str, str]]:
        """Every (left, right) pair the owner has.  Used by the reconciler."""
        self._authorize(owner_id)
        with storage_errors(self._definition.table_name):
            items = query_all(
                self._table,
                IndexName=self._definition.left_index,
                KeyConditionExpression=Key(OWNER_ATTRIBUTE).eq(owner_id),
            )
        left_attribute = self._definition.left_attribute
        right_attribute = self._definition.right_attribute
        links: list[tuple[str, str]] = []
        for item in items:
            self._authorize(item.get(OWNER_ATTRIBUTE))
            links.append((str(item[left_attribute]), str(item[right_attribute])))
        return links
