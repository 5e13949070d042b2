"""SQLAlchemy models for the publication store.

This module defines the database schema using SQLAlchemy ORM.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from annuairesync.core.types import MailboxSnapshot, MailboxType, PublicationStatus


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """DateTime stored as naive UTC and always returned timezone-aware.

    SQLite has no timezone support, so aware values are converted to UTC
    before storage and tagged with UTC when loaded.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(UTC).replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class Publication(Base):
    """A pending or attempted directory change for one mailbox."""

    __tablename__ = "publications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    operation: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PublicationStatus.PENDING.value
    )
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_retry_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    batch_file: Mapped[str | None] = mapped_column(String(255), nullable=True)
    response_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    response_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_data: Mapped[Any | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Claim bookkeeping
    claimed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    claimed_from: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Mailbox snapshot, captured at enqueue time
    mailbox_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(320), nullable=False)
    mailbox_type: Mapped[str] = mapped_column(String(20), nullable=False)
    national_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    profession: Mapped[str | None] = mapped_column(String(64), nullable=True)
    specialty: Mapped[str | None] = mapped_column(String(64), nullable=True)
    finess: Mapped[str | None] = mapped_column(String(16), nullable=True)
    organization_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    hidden_from_directory: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    mailbox_created_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Indexes
    __table_args__ = (
        Index("idx_publications_status_created", "status", "created_at"),
        Index("idx_publications_address", "address"),
        Index("idx_publications_claimed_by", "claimed_by"),
    )

    @property
    def snapshot(self) -> MailboxSnapshot:
        """Return the mailbox attributes captured at enqueue time."""
        return MailboxSnapshot(
            ref=self.mailbox_ref,
            address=self.address,
            mailbox_type=MailboxType(self.mailbox_type),
            national_id=self.national_id,
            last_name=self.last_name,
            first_name=self.first_name,
            profession=self.profession,
            specialty=self.specialty,
            finess=self.finess,
            organization_name=self.organization_name,
            hidden_from_directory=self.hidden_from_directory,
            created_at=self.mailbox_created_at,
        )


class ProcessedReport(Base):
    """A confirmation report that has been reconciled (never processed twice)."""

    __tablename__ = "processed_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    filename: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    downloaded_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    processed_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    records_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    success_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unmatched_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    invalid_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class NotificationRecord(Base):
    """An alert produced for the external notifier."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    target_roles: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (Index("idx_notifications_type", "type"),)


class AuditEntry(Base):
    """Audit trail of engine runs."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(64), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_audit_action", "action"),)
