"""
book_api.services.progress_service — Reading progress, one record per (book, owner).

record_progress is an upsert with last-write-wins semantics.  Page and
percentage are not required to increase, and any status transition is
accepted (finished → in-progress is a re-read).
"""

from __future__ import annotations

from typing import Any

from book_api.services import common
from book_data import LibraryTables, NotFound, ValidationError
from book_data.guard import require_caller
from book_data.models import ProgressRecord, ReadingStatus


def _parse_status(value: Any) -> ReadingStatus | None:
    if value is None:
        return None
    try:
        return ReadingStatus(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(status.value for status in ReadingStatus)
        raise ValidationError(f"status must be one of: {allowed}") from exc


def _infer_status(
    *,
    current_page: int | None,
    percentage: float | None,
    previous: ReadingStatus | None,
) -> ReadingStatus:
    if percentage is not None and percentage >= 100:
        return ReadingStatus.FINISHED
    if (current_page or 0) > 0 or (percentage or 0) > 0:
        return ReadingStatus.IN_PROGRESS
    return previous or ReadingStatus.UNSTARTED


def _contradicts(status: ReadingStatus, percentage: float | None) -> bool:
    if percentage is None:
        return False
    if percentage >= 100:
        return status is not ReadingStatus.FINISHED
    return status is ReadingStatus.UNSTARTED and percentage > 0


class ProgressService:
    def __init__(self, tables: LibraryTables) -> None:
        self._tables = tables

    def record_progress(
        self,
        caller_id: str,
        book_id: str,
        *,
        current_page: int | None = None,
        percentage: float | None = None,
        status: Any = None,
    ) -> dict[str, Any]:
        """Upsert the caller's progress on a book they own.

        Fields left out keep their previous value.  When status is left out
        it is inferred from page/percentage.  A kept percentage that disagrees
        with the new status (100 while no longer finished) is dropped.
        """
        caller_id = require_caller(caller_id)
        self._tables.books(caller_id).get(book_id, caller_id)
        progress = self._tables.progress(caller_id)
        previous = progress.find(book_id, caller_id) or {}

        requested_status = _parse_status(status)
        previous_status = _parse_status(previous.get("status"))
        page_changed = current_page is not None
        percentage_changed = percentage is not None
        if current_page is None:
            current_page = common.as_number(previous.get("currentPage"))
        if percentage is None:
            percentage = common.as_number(previous.get("percentage"))

        if requested_status is None:
            if page_changed or percentage_changed:
                new_status = _infer_status(
                    current_page=current_page if page_changed else None,
                    percentage=percentage if percentage_changed else None,
                    previous=previous_status,
                )
            else:
                new_status = previous_status or ReadingStatus.UNSTARTED
        else:
            new_status = requested_status

        if _contradicts(new_status, percentage):
            if percentage_changed:
                raise ValidationError(
                    f"percentage {percentage} does not match status {new_status.value}"
                )
            # a carried-forward percentage no longer describes this read
            percentage = None

        now = common.iso(common.now_utc())
        started_at = previous.get("startedAt")
        if new_status is not ReadingStatus.UNSTARTED and not started_at:
            started_at = now
        finished_at = None
        if new_status is ReadingStatus.FINISHED:
            keep = previous_status is ReadingStatus.FINISHED and previous.get("finishedAt")
            finished_at = previous["finishedAt"] if keep else now

        record = ProgressRecord(
            book_id=book_id,
            user_id=caller_id,
            status=new_status,
            updated_at=now,
            current_page=int(current_page) if current_page is not None else None,
            percentage=percentage,
            started_at=started_at,
            finished_at=finished_at,
        )
        return progress.put(record.to_item())

    def get_progress(self, caller_id: str, book_id: str) -> dict[str, Any]:
        caller_id = require_caller(caller_id)
        if self._tables.books(caller_id).find(book_id, caller_id) is None:
            # progress left behind by a book that is gone is soft garbage
            raise NotFound("Progress")
        return self._tables.progress(caller_id).get(book_id, caller_id)

    def list_progress(self, caller_id: str) -> list[dict[str, Any]]:
        caller_id = require_caller(caller_id)
        book_ids = {
            str(book["id"]) for book in self._tables.books(caller_id).list_by_owner(caller_id)
        }
        return [
            item
            for item in self._tables.progress(caller_id).list_by_owner(caller_id)
            if str(item.get("bookId")) in book_ids
        ]

    def delete_progress_for_book(self, caller_id: str, book_id: str) -> bool:
        """Cascade hook.  Progress is never deleted on its own."""
        caller_id = require_caller(caller_id)
        return self._tables.progress(caller_id).discard(book_id, caller_id)
