"""
book_api.services — Domain services composing store, encoder and guard.

Every operation takes the caller identity as its first argument; there is
no implicit "current user".
"""

from __future__ import annotations

from dataclasses import dataclass

from book_api.services.analytics_service import AnalyticsService
from book_api.services.book_service import BookService
from book_api.services.collection_service import CollectionService
from book_api.services.progress_service import ProgressService
from book_api.services.tag_service import TagService
from book_data import LibraryTables


@dataclass(frozen=True)
class LibraryServices:
    books: BookService
    tags: TagService
    collections: CollectionService
    progress: ProgressService
    analytics: AnalyticsService

    @classmethod
    def build(cls, tables: LibraryTables) -> LibraryServices:
        progress = ProgressService(tables)
        return cls(
            books=BookService(tables, progress),
            tags=TagService(tables),
            collections=CollectionService(tables),
            progress=progress,
            analytics=AnalyticsService(tables),
        )


__all__ = [
    "AnalyticsService",
    "BookService",
    "CollectionService",
    "LibraryServices",
    "ProgressService",
    "TagService",
]
