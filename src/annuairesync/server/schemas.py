"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from annuairesync.core.types import MailboxSnapshot, MailboxType, Operation
from annuairesync.engine.models import NotificationRecord, ProcessedReport, Publication

# === Publication schemas ===


class PublicationCreateRequest(BaseModel):
    """Request body for enqueueing a directory change."""

    mailbox_ref: str
    address: str
    mailbox_type: MailboxType
    operation: Operation
    national_id: str | None = None
    last_name: str | None = None
    first_name: str | None = None
    profession: str | None = None
    specialty: str | None = None
    finess: str | None = None
    organization_name: str | None = None
    hidden_from_directory: bool = False
    mailbox_created_at: datetime | None = None

    def to_snapshot(self) -> MailboxSnapshot:
        """Build the mailbox snapshot stored with the publication."""
        return MailboxSnapshot(
            ref=self.mailbox_ref,
            address=self.address,
            mailbox_type=self.mailbox_type,
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


class PublicationResponse(BaseModel):
    """Publication data in responses."""

    id: int
    mailbox_ref: str
    address: str
    mailbox_type: str
    operation: str
    status: str
    retry_count: int
    next_retry_at: str | None
    last_error: str | None
    batch_file: str | None
    response_code: str | None
    response_message: str | None
    created_at: str
    submitted_at: str | None
    processed_at: str | None
    completed_at: str | None


class PublicationListResponse(BaseModel):
    """Paginated publication list."""

    items: list[PublicationResponse]
    total: int
    limit: int
    offset: int


class BulkRetryRequest(BaseModel):
    """Request body for retrying several publications."""

    publication_ids: list[int] = Field(min_length=1)


class BulkRetryError(BaseModel):
    """A publication that could not be retried."""

    id: int
    detail: str


class BulkRetryResponse(BaseModel):
    """Response for bulk retry."""

    retried: list[int]
    errors: list[BulkRetryError]


# === Report schemas ===


class ReportResponse(BaseModel):
    """Processed report summary in responses."""

    id: int
    filename: str
    status: str
    downloaded_at: str
    processed_at: str
    records_count: int
    success_count: int
    error_count: int
    unmatched_count: int
    skipped_count: int
    invalid_count: int
    archived: bool


# === Notification schemas ===


class NotificationResponse(BaseModel):
    """Notification record in responses."""

    id: int
    type: str
    severity: str
    title: str
    message: str
    metadata: dict[str, Any]
    target_roles: list[str]
    created_at: str
    delivered_at: str | None


# === Sync status schemas ===


class SyncStatusResponse(BaseModel):
    """Response for /api/sync/status endpoint."""

    operator_id: str
    immediate_mode: bool
    counts: dict[str, int]
    last_batch_file: str | None
    last_batch_at: str | None
    last_report: ReportResponse | None


# === Health schema ===


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


# === Converters ===


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def publication_to_response(publication: Publication) -> PublicationResponse:
    """Convert Publication to response model."""
    return PublicationResponse(
        id=publication.id,
        mailbox_ref=publication.mailbox_ref,
        address=publication.address,
        mailbox_type=publication.mailbox_type,
        operation=publication.operation,
        status=publication.status,
        retry_count=publication.retry_count,
        next_retry_at=_iso(publication.next_retry_at),
        last_error=publication.last_error,
        batch_file=publication.batch_file,
        response_code=publication.response_code,
        response_message=publication.response_message,
        created_at=publication.created_at.isoformat(),
        submitted_at=_iso(publication.submitted_at),
        processed_at=_iso(publication.processed_at),
        completed_at=_iso(publication.completed_at),
    )


def report_to_response(report: ProcessedReport) -> ReportResponse:
    """Convert ProcessedReport to response model."""
    return ReportResponse(
        id=report.id,
        filename=report.filename,
        status=report.status,
        downloaded_at=report.downloaded_at.isoformat(),
        processed_at=report.processed_at.isoformat(),
        records_count=report.records_count,
        success_count=report.success_count,
        error_count=report.error_count,
        unmatched_count=report.unmatched_count,
        skipped_count=report.skipped_count,
        invalid_count=report.invalid_count,
        archived=report.archived,
    )


def notification_to_response(record: NotificationRecord) -> NotificationResponse:
    """Convert NotificationRecord to response model."""
    return NotificationResponse(
        id=record.id,
        type=record.type,
        severity=record.severity,
        title=record.title,
        message=record.message,
        metadata=record.details or {},
        target_roles=record.target_roles or [],
        created_at=record.created_at.isoformat(),
        delivered_at=_iso(record.delivered_at),
    )
