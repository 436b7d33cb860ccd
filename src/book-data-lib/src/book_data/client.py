"""
book_data.client — LibraryTables, the factory for caller-scoped store handles.

The ONLY permitted way for the resolver and reconciler Lambdas to reach the
library tables.  Each accessor binds a store or encoder to one caller
identity; nothing here holds per-request state, so one instance can be
shared across warm invocations.
"""

from __future__ import annotations

from typing import Any

import boto3

from book_data.config import StoreSettings
from book_data.relationships import RelationshipEncoder
from book_data.store import OwnerScopedTable


class LibraryTables:
    def __init__(
        self,
        settings: StoreSettings,
        *,
        dynamodb_resource: Any = None,
        cloudwatch_client: Any = None,
    ) -> None:
        self.settings = settings
        self._dynamodb: Any = dynamodb_resource or settings.dynamodb_resource()
        self._cloudwatch: Any = cloudwatch_client or boto3.client(
            "cloudwatch", region_name=settings.region, endpoint_url=settings.endpoint_url
        )

    @property
    def dynamodb(self) -> Any:
        return self._dynamodb

    @classmethod
    def from_env(cls) -> LibraryTables:
        return cls(StoreSettings.from_env())

    def _entity(self, definition: Any, caller_id: str) -> OwnerScopedTable:
        return OwnerScopedTable(
            definition,
            caller_id=caller_id,
            dynamodb_resource=self._dynamodb,
            cloudwatch_client=self._cloudwatch,
        )

    def _relationship(self, definition: Any, caller_id: str) -> RelationshipEncoder:
        return RelationshipEncoder(
            definition,
            caller_id=caller_id,
            dynamodb_resource=self._dynamodb,
            cloudwatch_client=self._cloudwatch,
        )

    def books(self, caller_id: str) -> OwnerScopedTable:
        return self._entity(self.settings.books, caller_id)

    def tags(self, caller_id: str) -> OwnerScopedTable:
        return self._entity(self.settings.tags, caller_id)

    def collections(self, caller_id: str) -> OwnerScopedTable:
        return self._entity(self.settings.collections, caller_id)

    def progress(self, caller_id: str) -> OwnerScopedTable:
        return self._entity(self.settings.progress, caller_id)

    def book_tags(self, caller_id: str) -> RelationshipEncoder:
        return self._relationship(self.settings.book_tags, caller_id)

    def collection_books(self, caller_id: str) -> RelationshipEncoder:
        return self._relationship(self.settings.collection_books, caller_id)
