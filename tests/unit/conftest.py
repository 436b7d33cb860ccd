"""
tests/unit/conftest.py — moto-backed library tables and services shared by the unit tests.

All AWS calls are intercepted by moto's mock_aws context; CloudWatch is a
MagicMock so access-violation metrics can be asserted on.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import boto3
import pytest
from book_api.services import LibraryServices, common
from book_data import LibraryTables, StoreSettings
from book_data.tables import create_tables
from moto import mock_aws

REGION = "eu-west-2"


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture(autouse=True)
def aws_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set minimal AWS env vars required by the library and moto."""
    monkeypatch.setenv("AWS_REGION", REGION)
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("POWERTOOLS_TRACE_DISABLED", "1")


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock(datetime(2026, 3, 1, 9, 0, 0, tzinfo=UTC))
    monkeypatch.setattr(common, "now_utc", fake)
    return fake


@pytest.fixture
def mock_cw() -> MagicMock:
    return MagicMock()


@pytest.fixture
def tables(mock_cw: MagicMock) -> Iterator[LibraryTables]:
    with mock_aws():
        settings = StoreSettings(region=REGION)
        dynamodb = boto3.resource("dynamodb", region_name=REGION)
        create_tables(dynamodb, settings)
        yield LibraryTables(settings, dynamodb_resource=dynamodb, cloudwatch_client=mock_cw)


@pytest.fixture
def services(tables: LibraryTables, clock: FakeClock) -> LibraryServices:
    return LibraryServices.build(tables)
