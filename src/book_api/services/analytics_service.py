"""
book_api.services.analytics_service — Read-only reading statistics.

Aggregates a caller's progress records.  Missing fields count as zero and
progress whose book no longer exists is ignored.  Never writes.
"""

from __future__ import annotations

from typing import Any

from book_api.services import common
from book_data import LibraryTables
from book_data.guard import require_caller
from book_data.models import ReadingStatus


class AnalyticsService:
    def __init__(self, tables: LibraryTables) -> None:
        self._tables = tables

    def reading_stats(self, caller_id: str) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        page_counts: dict[str, int] = {}
        for book in self._tables.books(caller_id).list_by_owner(caller_id):
            page_counts[str(book["id"])] = int(common.as_number(book.get("pageCount")) or 0)

        counts = {status: 0 for status in ReadingStatus}
        total_pages = 0
        percentages: list[float] = []
        for item in self._tables.progress(caller_id).list_by_owner(caller_id):
            book_id = str(item.get("bookId"))
            if book_id not in page_counts:
                continue
            try:
                status = ReadingStatus(str(item.get("status") or ReadingStatus.UNSTARTED.value))
            except ValueError:
                status = ReadingStatus.UNSTARTED
            counts[status] += 1

            pages = int(common.as_number(item.get("currentPage")) or 0)
            if status is ReadingStatus.FINISHED:
                pages = max(pages, page_counts[book_id])
            total_pages += pages

            percentage = common.as_number(item.get("percentage"))
            if percentage is None and status is ReadingStatus.FINISHED:
                percentage = 100
            if percentage is not None:
                percentages.append(float(percentage))

        tracked = sum(counts.values())
        average = round(sum(percentages) / len(percentages), 2) if percentages else 0.0
        return {
            "totalBooks": len(page_counts),
            "totalTracked": tracked,
            "unstarted": counts[ReadingStatus.UNSTARTED],
            "inProgress": counts[ReadingStatus.IN_PROGRESS],
            "finished": counts[ReadingStatus.FINISHED],
            "totalPagesRead": total_pages,
            "averagePercentage": average,
        }
