"""Publication store using SQLAlchemy with SQLite.

This module provides:
- Publication enqueueing and lookup
- Atomic claiming for the retry and export jobs
- Conditional state transitions (terminal rows are never rewritten)
- Report idempotency records
- Notification and audit storage
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, delete, event, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from annuairesync.core.backoff import DEFAULT_BACKOFF_UNIT, next_retry_at
from annuairesync.core.types import (
    RETRYABLE_STATUSES,
    TERMINAL_STATUSES,
    ConfirmationOutcome,
    MailboxSnapshot,
    Operation,
    PublicationStatus,
    Severity,
)
from annuairesync.engine.models import (
    AuditEntry,
    Base,
    NotificationRecord,
    ProcessedReport,
    Publication,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy import Engine

    from annuairesync.engine.notifications import Notification

logger = logging.getLogger(__name__)

_TERMINAL = [s.value for s in TERMINAL_STATUSES]
_RETRYABLE = [s.value for s in RETRYABLE_STATUSES]

# processed_reports.status of a file an ingestion run is still applying
REPORT_PROCESSING = "processing"


class PublicationNotFoundError(Exception):
    """Raised when a publication does not exist."""


class PublicationStateError(Exception):
    """Raised when a transition is not allowed from the current status."""


class ReconcileOutcome(str, Enum):
    """Result of applying one confirmation line."""

    APPLIED = "applied"
    SKIPPED = "skipped"
    UNMATCHED = "unmatched"


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(UTC)


class Database:
    """SQLAlchemy store for publications and engine bookkeeping.

    Uses SQLite with WAL mode. Every transaction starts with BEGIN IMMEDIATE,
    so a claim or a read-modify-write holds the write lock from its first
    statement and concurrent jobs serialize instead of interleaving.
    """

    def __init__(self, db_path: Path, busy_timeout: float = 30.0) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
            busy_timeout: Seconds to wait for the write lock.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Create engine with check_same_thread=False for multi-threaded access
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
            echo=False,
        )
        busy_ms = int(busy_timeout * 1000)

        @event.listens_for(self._engine, "connect")
        def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
            # Let SQLAlchemy emit BEGIN itself
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={busy_ms}")
            cursor.close()

        @event.listens_for(self._engine, "begin")
        def _on_begin(conn: Any) -> None:
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        # Create tables if they don't exist
        Base.metadata.create_all(self._engine)

    @property
    def path(self) -> Path:
        """Path of the SQLite database file."""
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine, expire_on_commit=False)

    # === Publication operations ===

    def enqueue_publication(
        self,
        snapshot: MailboxSnapshot,
        operation: Operation,
        now: datetime | None = None,
    ) -> Publication:
        """Record a directory change to transmit.

        Args:
            snapshot: Mailbox attributes at the time of the change.
            operation: Requested directory change.
            now: Creation time (default: current time).

        Returns:
            Created Publication in pending status.
        """
        with self._session() as session:
            publication = Publication(
                operation=Operation(operation).value,
                status=PublicationStatus.PENDING.value,
                retry_count=0,
                created_at=_now(now),
                mailbox_ref=snapshot.ref,
                address=snapshot.address,
                mailbox_type=snapshot.mailbox_type.value,
                national_id=snapshot.national_id,
                last_name=snapshot.last_name,
                first_name=snapshot.first_name,
                profession=snapshot.profession,
                specialty=snapshot.specialty,
                finess=snapshot.finess,
                organization_name=snapshot.organization_name,
                hidden_from_directory=snapshot.hidden_from_directory,
                mailbox_created_at=snapshot.created_at,
            )
            session.add(publication)
            session.commit()
            session.refresh(publication)
            session.expunge(publication)
            logger.debug(
                "Enqueued %s for %s (id=%s)", publication.operation, snapshot.address, publication.id
            )
            return publication

    def get_publication(self, publication_id: int) -> Publication | None:
        """Get a publication by ID.

        Args:
            publication_id: Publication ID.

        Returns:
            Publication if found, None otherwise.
        """
        with self._session() as session:
            publication = session.get(Publication, publication_id)
            if publication:
                session.expunge(publication)
            return publication

    def list_publications(
        self,
        status: PublicationStatus | None = None,
        operation: Operation | None = None,
        address: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Publication]:
        """List publications, most recent first.

        Args:
            status: Optional status filter.
            operation: Optional operation filter.
            address: Optional substring filter on the mailbox address.
            limit: Maximum number of rows.
            offset: Number of rows to skip.

        Returns:
            List of publications.
        """
        with self._session() as session:
            stmt = self._filtered(select(Publication), status, operation, address)
            stmt = (
                stmt.order_by(Publication.created_at.desc(), Publication.id.desc())
                .limit(limit)
                .offset(offset)
            )
            publications = list(session.execute(stmt).scalars().all())
            for publication in publications:
                session.expunge(publication)
            return publications

    def count_publications(
        self,
        status: PublicationStatus | None = None,
        operation: Operation | None = None,
        address: str | None = None,
    ) -> int:
        """Count publications matching the same filters as list_publications."""
        with self._session() as session:
            stmt = self._filtered(
                select(func.count(Publication.id)), status, operation, address
            )
            return session.execute(stmt).scalar() or 0

    @staticmethod
    def _filtered(stmt: Any, status: Any, operation: Any, address: str | None) -> Any:
        if status is not None:
            stmt = stmt.where(Publication.status == PublicationStatus(status).value)
        if operation is not None:
            stmt = stmt.where(Publication.operation == Operation(operation).value)
        if address:
            stmt = stmt.where(Publication.address.contains(address))
        return stmt

    def count_by_status(self) -> dict[str, int]:
        """Count publications per status.

        Returns:
            Dict mapping every status value to its count (zero included).
        """
        counts = {status.value: 0 for status in PublicationStatus}
        with self._session() as session:
            stmt = select(Publication.status, func.count(Publication.id)).group_by(
                Publication.status
            )
            for status, count in session.execute(stmt).all():
                counts[status] = count
        return counts

    def last_batch_file(self) -> tuple[str, datetime] | None:
        """Get the most recently submitted batch file and its submission time."""
        with self._session() as session:
            stmt = (
                select(Publication.batch_file, Publication.submitted_at)
                .where(Publication.batch_file.is_not(None))
                .order_by(Publication.submitted_at.desc())
                .limit(1)
            )
            row = session.execute(stmt).first()
            if row is None:
                return None
            return row.batch_file, row.submitted_at

    # === Claim operations ===

    def _claim(self, claimant: str, candidates: Any, now: datetime) -> list[Publication]:
        """Mark candidate rows as claimed by claimant, then read them back.

        The UPDATE re-checks that rows are still retryable so a row claimed
        by another job between the subquery and the write is left alone.
        """
        with self._session() as session:
            stmt = (
                update(Publication)
                .where(
                    Publication.id.in_(candidates),
                    Publication.status.in_(_RETRYABLE),
                    Publication.claimed_by.is_(None),
                )
                .values(
                    claimed_from=Publication.status,
                    status=PublicationStatus.CLAIMED.value,
                    claimed_by=claimant,
                    claimed_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            session.execute(stmt)

            claimed_stmt = (
                select(Publication)
                .where(
                    Publication.claimed_by == claimant,
                    Publication.status == PublicationStatus.CLAIMED.value,
                )
                .order_by(Publication.created_at.asc(), Publication.id.asc())
            )
            publications = list(session.execute(claimed_stmt).scalars().all())
            session.commit()
            for publication in publications:
                session.expunge(publication)
            return publications

    def claim_for_retry(
        self,
        claimant: str,
        max_attempts: int,
        limit: int,
        now: datetime | None = None,
    ) -> list[Publication]:
        """Atomically claim records eligible for an immediate attempt.

        Eligible records are pending or error, below the retry bound, and
        either never scheduled or due.

        Args:
            claimant: Unique token of the claiming run.
            max_attempts: Retry bound.
            limit: Maximum number of records to claim.
            now: Current time.

        Returns:
            Claimed publications, oldest first.
        """
        now = _now(now)
        candidates = (
            select(Publication.id)
            .where(
                Publication.status.in_(_RETRYABLE),
                Publication.retry_count < max_attempts,
                (Publication.next_retry_at.is_(None)) | (Publication.next_retry_at <= now),
            )
            .order_by(Publication.created_at.asc(), Publication.id.asc())
            .limit(limit)
        )
        return self._claim(claimant, candidates, now)

    def claim_pending_for_export(
        self, claimant: str, now: datetime | None = None
    ) -> list[Publication]:
        """Atomically claim every pending record, whatever its creation date.

        Args:
            claimant: Unique token of the claiming run.
            now: Current time.

        Returns:
            Claimed publications, oldest first.
        """
        now = _now(now)
        candidates = (
            select(Publication.id)
            .where(Publication.status == PublicationStatus.PENDING.value)
        )
        return self._claim(claimant, candidates, now)

    def release_claim(self, claimant: str, ids: list[int] | None = None) -> int:
        """Return claimed records to the status they had before the claim.

        Args:
            claimant: Token of the claiming run.
            ids: Optional subset of records to release.

        Returns:
            Number of records released.
        """
        with self._session() as session:
            stmt = update(Publication).where(
                Publication.claimed_by == claimant,
                Publication.status == PublicationStatus.CLAIMED.value,
            )
            if ids is not None:
                stmt = stmt.where(Publication.id.in_(ids))
            result = session.execute(
                stmt.values(
                    status=func.coalesce(Publication.claimed_from, PublicationStatus.PENDING.value),
                    claimed_by=None,
                    claimed_at=None,
                    claimed_from=None,
                ).execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount or 0

    def release_stale_claims(self, lease: timedelta, now: datetime | None = None) -> int:
        """Release claims older than lease, left behind by an interrupted run.

        Args:
            lease: Maximum age of a live claim.
            now: Current time.

        Returns:
            Number of records released.
        """
        cutoff = _now(now) - lease
        with self._session() as session:
            result = session.execute(
                update(Publication)
                .where(
                    Publication.status == PublicationStatus.CLAIMED.value,
                    Publication.claimed_at < cutoff,
                )
                .values(
                    status=func.coalesce(Publication.claimed_from, PublicationStatus.PENDING.value),
                    claimed_by=None,
                    claimed_at=None,
                    claimed_from=None,
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            released = result.rowcount or 0
        if released:
            logger.warning("Released %d abandoned claim(s) older than %s", released, lease)
        return released

    # === Transition operations ===

    def mark_submitted(
        self, claimant: str, batch_file: str, now: datetime | None = None
    ) -> int:
        """Mark every record claimed by claimant as submitted in batch_file.

        Args:
            claimant: Token of the export run.
            batch_file: Name of the uploaded batch file.
            now: Submission time.

        Returns:
            Number of records transitioned.
        """
        with self._session() as session:
            result = session.execute(
                update(Publication)
                .where(
                    Publication.claimed_by == claimant,
                    Publication.status == PublicationStatus.CLAIMED.value,
                )
                .values(
                    status=PublicationStatus.SUBMITTED.value,
                    submitted_at=_now(now),
                    processed_at=None,
                    batch_file=batch_file,
                    claimed_by=None,
                    claimed_at=None,
                    claimed_from=None,
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount or 0

    def _get_claimed(self, session: Session, publication_id: int, claimant: str) -> Publication | None:
        stmt = select(Publication).where(
            Publication.id == publication_id,
            Publication.claimed_by == claimant,
            Publication.status == PublicationStatus.CLAIMED.value,
        )
        return session.execute(stmt).scalar_one_or_none()

    def record_attempt_success(
        self,
        publication_id: int,
        claimant: str,
        response_code: str | None = None,
        response_message: str | None = None,
        response_data: Any = None,
        now: datetime | None = None,
    ) -> Publication | None:
        """Record a successful immediate registry call.

        Args:
            publication_id: Publication ID.
            claimant: Token of the run that holds the claim.
            response_code: Registry response code.
            response_message: Registry response message.
            response_data: Registry response payload.
            now: Completion time.

        Returns:
            Updated publication, or None if the claim was lost.
        """
        now = _now(now)
        with self._session() as session:
            publication = self._get_claimed(session, publication_id, claimant)
            if publication is None:
                return None
            publication.status = PublicationStatus.SUCCESS.value
            publication.submitted_at = publication.submitted_at or now
            publication.processed_at = now
            publication.completed_at = now
            publication.next_retry_at = None
            publication.last_error = None
            publication.response_code = response_code
            publication.response_message = response_message
            publication.response_data = response_data
            publication.claimed_by = None
            publication.claimed_at = None
            publication.claimed_from = None
            session.commit()
            session.expunge(publication)
            return publication

    def record_attempt_failure(
        self,
        publication_id: int,
        claimant: str,
        error: str,
        max_attempts: int,
        now: datetime | None = None,
        backoff_unit: timedelta = DEFAULT_BACKOFF_UNIT,
        response_code: str | None = None,
        on_failed: Callable[[Publication], Notification] | None = None,
    ) -> Publication | None:
        """Record a failed immediate registry call.

        The retry count is incremented. Reaching max_attempts moves the
        record to failed, otherwise it goes back to error with a backoff.

        Args:
            publication_id: Publication ID.
            claimant: Token of the run that holds the claim.
            error: Error description.
            max_attempts: Retry bound.
            now: Attempt time.
            backoff_unit: Duration of one backoff unit.
            response_code: Registry response code, if any.
            on_failed: Builds the notification stored in the same
                transaction as the move to failed.

        Returns:
            Updated publication, or None if the claim was lost.
        """
        now = _now(now)
        with self._session() as session:
            publication = self._get_claimed(session, publication_id, claimant)
            if publication is None:
                return None
            retry_count = publication.retry_count + 1
            publication.retry_count = retry_count
            publication.last_error = error
            publication.response_code = response_code
            if retry_count >= max_attempts:
                publication.status = PublicationStatus.FAILED.value
                publication.next_retry_at = None
                publication.completed_at = now
            else:
                publication.status = PublicationStatus.ERROR.value
                publication.next_retry_at = next_retry_at(now, retry_count, backoff_unit)
            publication.claimed_by = None
            publication.claimed_at = None
            publication.claimed_from = None
            if on_failed is not None and publication.status == PublicationStatus.FAILED.value:
                notification = on_failed(publication)
                session.add(
                    NotificationRecord(
                        type=notification.type,
                        severity=Severity(notification.severity).value,
                        title=notification.title,
                        message=notification.message,
                        details=notification.metadata,
                        target_roles=notification.target_roles,
                    )
                )
            session.commit()
            session.expunge(publication)
            return publication

    def apply_confirmation(
        self,
        address: str,
        outcome: ConfirmationOutcome,
        error_code: str | None = None,
        error_message: str | None = None,
        now: datetime | None = None,
    ) -> tuple[ReconcileOutcome, Publication | None]:
        """Apply one report confirmation to the matching publication.

        The match is the most recent submitted publication for the address
        that has not been confirmed yet. When there is none but the latest
        batch-submitted publication for the address was already confirmed,
        the line is a duplicate and is skipped.

        Args:
            address: Mailbox address from the report.
            outcome: Registry outcome.
            error_code: Registry error code.
            error_message: Registry error message.
            now: Reconciliation time.

        Returns:
            (outcome, publication) where publication is the affected or
            already-confirmed record, None when unmatched.
        """
        now = _now(now)
        with self._session() as session:
            stmt = (
                select(Publication)
                .where(
                    Publication.address == address,
                    Publication.status == PublicationStatus.SUBMITTED.value,
                    Publication.processed_at.is_(None),
                )
                .order_by(Publication.submitted_at.desc(), Publication.id.desc())
                .limit(1)
            )
            publication = session.execute(stmt).scalar_one_or_none()

            if publication is None:
                previous_stmt = (
                    select(Publication)
                    .where(
                        Publication.address == address,
                        Publication.batch_file.is_not(None),
                    )
                    .order_by(Publication.submitted_at.desc(), Publication.id.desc())
                    .limit(1)
                )
                previous = session.execute(previous_stmt).scalar_one_or_none()
                if previous is not None and (
                    previous.status in _TERMINAL or previous.processed_at is not None
                ):
                    session.expunge(previous)
                    return ReconcileOutcome.SKIPPED, previous
                return ReconcileOutcome.UNMATCHED, None

            publication.processed_at = now
            publication.response_code = error_code
            publication.response_message = error_message
            if outcome is ConfirmationOutcome.SUCCESS:
                publication.status = PublicationStatus.SUCCESS.value
                publication.completed_at = now
                publication.last_error = None
            else:
                publication.status = PublicationStatus.ERROR.value
                publication.last_error = error_message or error_code or "Rejected by registry"
            session.commit()
            session.expunge(publication)
            return ReconcileOutcome.APPLIED, publication

    def requeue_publication(self, publication_id: int) -> Publication:
        """Put an error publication back in the pending queue.

        Args:
            publication_id: Publication ID.

        Returns:
            Updated publication.

        Raises:
            PublicationNotFoundError: If the publication does not exist.
            PublicationStateError: If the publication is not in error status.
        """
        with self._session() as session:
            publication = session.get(Publication, publication_id)
            if publication is None:
                raise PublicationNotFoundError(f"Publication not found: {publication_id}")
            if publication.status != PublicationStatus.ERROR.value:
                raise PublicationStateError(
                    f"Publication {publication_id} is {publication.status}, only error "
                    "publications can be retried"
                )
            publication.status = PublicationStatus.PENDING.value
            publication.next_retry_at = None
            session.commit()
            session.expunge(publication)
            return publication

    # === Report operations ===

    def is_report_processed(self, filename: str) -> bool:
        """Check if a report file was already reconciled."""
        with self._session() as session:
            stmt = select(ProcessedReport.id).where(
                ProcessedReport.filename == filename,
                ProcessedReport.status != REPORT_PROCESSING,
            )
            return session.execute(stmt).first() is not None

    def claim_report(self, filename: str, lease: timedelta, now: datetime | None = None) -> bool:
        """Reserve a report file for one ingestion run.

        The processed_reports row is inserted in processing status before
        any line is applied, so overlapping runs never reconcile the same
        file. A processing row older than lease was left by an interrupted
        run and is taken over.

        Args:
            filename: Report file name.
            lease: Maximum age of a live reservation.
            now: Reservation time.

        Returns:
            True if this run now owns the file.
        """
        now = _now(now)
        with self._session() as session:
            session.add(
                ProcessedReport(
                    filename=filename,
                    status=REPORT_PROCESSING,
                    downloaded_at=now,
                    processed_at=now,
                )
            )
            try:
                session.commit()
                return True
            except IntegrityError:
                session.rollback()

            result = session.execute(
                update(ProcessedReport)
                .where(
                    ProcessedReport.filename == filename,
                    ProcessedReport.status == REPORT_PROCESSING,
                    ProcessedReport.processed_at <= now - lease,
                )
                .values(processed_at=now)
            )
            session.commit()
            if result.rowcount:
                logger.warning("Took over report %s abandoned by an interrupted run", filename)
                return True
            return False

    def release_report(self, filename: str) -> None:
        """Drop an unfinished reservation so the next run processes the file."""
        with self._session() as session:
            session.execute(
                delete(ProcessedReport).where(
                    ProcessedReport.filename == filename,
                    ProcessedReport.status == REPORT_PROCESSING,
                )
            )
            session.commit()

    def record_report(
        self,
        filename: str,
        status: str,
        records_count: int = 0,
        success_count: int = 0,
        error_count: int = 0,
        unmatched_count: int = 0,
        skipped_count: int = 0,
        invalid_count: int = 0,
        downloaded_at: datetime | None = None,
        now: datetime | None = None,
    ) -> ProcessedReport:
        """Record a reconciled report so it is never processed twice.

        Completes the reservation taken by claim_report, or creates the row
        when the file was not reserved.

        Returns:
            Recorded ProcessedReport.
        """
        now = _now(now)
        with self._session() as session:
            report = session.execute(
                select(ProcessedReport).where(ProcessedReport.filename == filename)
            ).scalar_one_or_none()
            if report is None:
                report = ProcessedReport(filename=filename)
                session.add(report)
            report.status = status
            report.records_count = records_count
            report.success_count = success_count
            report.error_count = error_count
            report.unmatched_count = unmatched_count
            report.skipped_count = skipped_count
            report.invalid_count = invalid_count
            report.downloaded_at = downloaded_at or now
            report.processed_at = now
            session.commit()
            session.refresh(report)
            session.expunge(report)
            return report

    def mark_report_archived(self, filename: str) -> None:
        """Flag a processed report as moved to the remote archive."""
        with self._session() as session:
            session.execute(
                update(ProcessedReport)
                .where(ProcessedReport.filename == filename)
                .values(archived=True)
            )
            session.commit()

    def list_reports(self, limit: int = 50) -> list[ProcessedReport]:
        """List processed reports, most recent first."""
        with self._session() as session:
            stmt = (
                select(ProcessedReport)
                .order_by(ProcessedReport.processed_at.desc(), ProcessedReport.id.desc())
                .limit(limit)
            )
            reports = list(session.execute(stmt).scalars().all())
            for report in reports:
                session.expunge(report)
            return reports

    # === Notification operations ===

    def add_notification(
        self,
        type: str,
        severity: str,
        title: str,
        message: str,
        details: dict[str, Any] | None = None,
        target_roles: list[str] | None = None,
    ) -> NotificationRecord:
        """Store a notification for the external notifier."""
        with self._session() as session:
            record = NotificationRecord(
                type=type,
                severity=severity,
                title=title,
                message=message,
                details=details or {},
                target_roles=target_roles or [],
            )
            session.add(record)
            session.commit()
            session.refresh(record)
            session.expunge(record)
            return record

    def list_notifications(
        self,
        type: str | None = None,
        undelivered_only: bool = False,
        limit: int = 100,
    ) -> list[NotificationRecord]:
        """List notifications, most recent first."""
        with self._session() as session:
            stmt = select(NotificationRecord)
            if type:
                stmt = stmt.where(NotificationRecord.type == type)
            if undelivered_only:
                stmt = stmt.where(NotificationRecord.delivered_at.is_(None))
            stmt = stmt.order_by(
                NotificationRecord.created_at.desc(), NotificationRecord.id.desc()
            ).limit(limit)
            records = list(session.execute(stmt).scalars().all())
            for record in records:
                session.expunge(record)
            return records

    def mark_notification_delivered(self, notification_id: int, now: datetime | None = None) -> bool:
        """Flag a notification as delivered.

        Returns:
            True if the notification existed and was undelivered.
        """
        with self._session() as session:
            result = session.execute(
                update(NotificationRecord)
                .where(
                    NotificationRecord.id == notification_id,
                    NotificationRecord.delivered_at.is_(None),
                )
                .values(delivered_at=_now(now))
            )
            session.commit()
            return bool(result.rowcount)

    # === Audit operations ===

    def add_audit_entry(
        self, action: str, resource_type: str, details: dict[str, Any] | None = None
    ) -> AuditEntry:
        """Append an entry to the audit trail."""
        with self._session() as session:
            entry = AuditEntry(action=action, resource_type=resource_type, details=details or {})
            session.add(entry)
            session.commit()
            session.refresh(entry)
            session.expunge(entry)
            return entry

    def list_audit_entries(self, action: str | None = None, limit: int = 50) -> list[AuditEntry]:
        """List audit entries, most recent first."""
        with self._session() as session:
            stmt = select(AuditEntry)
            if action:
                stmt = stmt.where(AuditEntry.action == action)
            stmt = stmt.order_by(AuditEntry.created_at.desc(), AuditEntry.id.desc()).limit(limit)
            entries = list(session.execute(stmt).scalars().all())
            for entry in entries:
                session.expunge(entry)
            return entries
