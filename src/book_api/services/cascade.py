"""
book_api.services.cascade — Ordered, best-effort cascade deletes.

Deleting a parent (book, tag, collection) removes its dependent records
first and the parent last.  This is a saga, not a transaction:

  - Each step is idempotent and retried up to max_attempts on
    StorageUnavailable, with a short exponential backoff.
  - The first step that still fails stops the saga and raises
    CascadeIncomplete.  Completed steps are not rolled back.
  - Because the parent is deleted last, a failed cascade leaves the parent
    in place and the whole delete can simply be retried.

Links created concurrently with a delete can still be missed (the listing
GSIs are eventually consistent); such soft garbage is filtered at read time
and removed by the reconciler.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from aws_lambda_powertools import Logger

from book_data import CascadeIncomplete, StorageUnavailable

logger = Logger(service="book-api")

_BACKOFF_BASE_SECONDS = 0.05


@dataclass(frozen=True)
class CascadeStep:
    name: str
    action: Callable[[], Any]


def _sleep(seconds: float) -> None:
    time.sleep(seconds)


def run_cascade(
    *,
    entity_name: str,
    entity_id: str,
    steps: Sequence[CascadeStep],
    max_attempts: int,
) -> list[Any]:
    """Run steps in order and return each step's result."""
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
    results: list[Any] = []
    for step in steps:
        for attempt in range(1, max_attempts + 1):
            try:
                results.append(step.action())
                break
            except StorageUnavailable as exc:
                if attempt < max_attempts:
                    logger.warning(
                        "Cascade step failed, retrying",
                        entity=entity_name,
                        entity_id=entity_id,
                        step=step.name,
                        attempt=attempt,
                    )
                    _sleep(_BACKOFF_BASE_SECONDS * (2 ** (attempt - 1)))
                    continue
                logger.exception(
                    "Cascade step exhausted retries",
                    entity=entity_name,
                    entity_id=entity_id,
                    step=step.name,
                )
                raise CascadeIncomplete(
                    entity_name=entity_name, entity_id=entity_id, step=step.name
                ) from exc
            except Exception as exc:
                logger.exception(
                    "Cascade step failed",
                    entity=entity_name,
                    entity_id=entity_id,
                    step=step.name,
                )
                raise CascadeIncomplete(
                    entity_name=entity_name, entity_id=entity_id, step=step.name
                ) from exc
    return results
