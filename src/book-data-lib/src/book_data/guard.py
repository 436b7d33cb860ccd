"""
book_data.guard — The single access-control check for every store operation.

authorize() is applied before every Entity Store / Relationship Encoder
mutation and before any read result is returned.  A mismatch raises
Forbidden, which callers see as NotFound.

On violation:
  1. Logs structured error with caller_id and owner_id.
  2. Emits CloudWatch metric: namespace=bookshelf/security, OwnerAccessViolation.
  3. Raises Forbidden.
"""

from __future__ import annotations

from typing import Any

from aws_lambda_powertools import Logger

from book_data.exceptions import Forbidden, MissingIdentity

logger = Logger(service="book-data-lib")

_METRIC_NAMESPACE = "bookshelf/security"
_METRIC_NAME = "OwnerAccessViolation"


def _emit_access_violation_metric(
    cloudwatch_client: Any,
    *,
    caller_id: str,
    owner_id: str,
) -> None:
    """Publish an OwnerAccessViolation count metric to CloudWatch.

    Never raises.  A metric emission failure must not suppress the exception.
    """
    try:
        cloudwatch_client.put_metric_data(
            Namespace=_METRIC_NAMESPACE,
            MetricData=[
                {
                    "MetricName": _METRIC_NAME,
                    "Value": 1,
                    "Unit": "Count",
                    "Dimensions": [
                        {"Name": "caller_id", "Value": caller_id},
                        {"Name": "owner_id", "Value": owner_id},
                    ],
                }
            ],
        )
    except Exception:
        logger.exception(
            "Failed to emit OwnerAccessViolation metric",
            caller_id=caller_id,
            owner_id=owner_id,
        )


def require_caller(caller_id: Any) -> str:
    """Return the caller identity, or raise MissingIdentity if absent/blank."""
    if not isinstance(caller_id, str) or not caller_id.strip():
        raise MissingIdentity()
    return caller_id


def authorize(
    caller_id: str,
    record_owner_id: Any,
    *,
    entity_name: str = "Record",
    cloudwatch_client: Any = None,
) -> None:
    """Allow the operation only when caller_id owns the record.

    An absent owner on the record counts as a mismatch.
    """
    caller_id = require_caller(caller_id)
    if isinstance(record_owner_id, str) and record_owner_id == caller_id:
        return

    owner_id = str(record_owner_id) if record_owner_id is not None else "<missing>"
    logger.error(
        "OwnerAccessViolation: caller does not own record",
        caller_id=caller_id,
        owner_id=owner_id,
        entity=entity_name,
    )
    if cloudwatch_client is not None:
        _emit_access_violation_metric(cloudwatch_client, caller_id=caller_id, owner_id=owner_id)
    raise Forbidden(caller_id=caller_id, owner_id=owner_id, entity_name=entity_name)
