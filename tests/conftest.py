"""Shared pytest fixtures for annuaire-sync tests."""

from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from annuairesync.core.types import MailboxSnapshot, MailboxType
from annuairesync.engine.database import Database
from annuairesync.engine.notifications import DatabaseNotificationSink
from annuairesync.engine.transfer import LocalFSTransferChannel

START = datetime(2026, 3, 2, 2, 0, 0, tzinfo=UTC)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> datetime:
        """Move the clock forward and return the new time."""
        self.now += delta
        return self.now


def make_snapshot(
    address: str = "dr.martin@chu.example",
    mailbox_type: MailboxType = MailboxType.PERSONAL,
    **kwargs: Any,
) -> MailboxSnapshot:
    """Create a mailbox snapshot with realistic defaults."""
    defaults: dict[str, Any] = {
        "ref": f"mbx-{address.split('@')[0]}",
        "national_id": "10001234567" if mailbox_type is MailboxType.PERSONAL else None,
        "last_name": "Martin" if mailbox_type is MailboxType.PERSONAL else None,
        "first_name": "Claire" if mailbox_type is MailboxType.PERSONAL else None,
        "profession": "10" if mailbox_type is MailboxType.PERSONAL else None,
        "specialty": "SM26" if mailbox_type is MailboxType.PERSONAL else None,
        "finess": "750000001",
        "organization_name": "CHU Example",
        "created_at": datetime(2026, 1, 15, 9, 30, tzinfo=UTC),
    }
    defaults.update(kwargs)
    return MailboxSnapshot(address=address, mailbox_type=mailbox_type, **defaults)


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a test database."""
    database = Database(tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def clock() -> FakeClock:
    """Create a controllable clock."""
    return FakeClock()


@pytest.fixture
def snapshot() -> Callable[..., MailboxSnapshot]:
    """Factory for mailbox snapshots."""
    return make_snapshot


@pytest.fixture
def sink(db: Database) -> DatabaseNotificationSink:
    """Create a notification sink writing to the test database."""
    return DatabaseNotificationSink(db)


@pytest.fixture
def transfer(tmp_path: Path) -> LocalFSTransferChannel:
    """Create a local transfer channel."""
    return LocalFSTransferChannel(tmp_path / "remote")
