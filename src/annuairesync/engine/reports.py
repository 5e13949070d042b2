"""Confirmation report ingestion.

This module provides:
- ReportIngester: downloads new confirmation reports and reconciles them
  against the publication store
- ReportSummary / IngestResult: per-file and per-run summaries

A report is reserved in processed_reports before any line is applied and
recorded there before it is archived, so a file is never reconciled twice,
even by overlapping runs or when the remote move fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from annuairesync.core.formats import ReportFormatError, parse_report
from annuairesync.core.types import ConfirmationOutcome
from annuairesync.engine import notifications
from annuairesync.engine.database import ReconcileOutcome
from annuairesync.engine.retry import Clock, utc_clock
from annuairesync.engine.transfer import REPORTS_DIR

if TYPE_CHECKING:
    from datetime import datetime

    from annuairesync.engine.database import Database
    from annuairesync.engine.notifications import NotificationSink
    from annuairesync.engine.transfer import TransferChannel

logger = logging.getLogger(__name__)

REPORT_PREFIX = "CR_"

# processed_reports.status values
REPORT_SUCCESS = "success"
REPORT_PARTIAL = "partial"
REPORT_INVALID = "invalid"


@dataclass
class ReportSummary:
    """Reconciliation counts for one report file."""

    filename: str
    status: str = REPORT_SUCCESS
    records_count: int = 0
    success_count: int = 0
    error_count: int = 0
    unmatched_count: int = 0
    skipped_count: int = 0
    invalid_count: int = 0
    archived: bool = False


@dataclass
class IngestResult:
    """Summary of one ingestion run."""

    listed: int = 0
    reports: list[ReportSummary] = field(default_factory=list)
    failed_downloads: list[str] = field(default_factory=list)
    failed_reports: list[str] = field(default_factory=list)
    claimed_elsewhere: list[str] = field(default_factory=list)
    error: str | None = None


class ReportIngester:
    """Fetches confirmation reports and applies them to publications."""

    def __init__(
        self,
        db: Database,
        transfer: TransferChannel,
        sink: NotificationSink,
        operator_id: str,
        reports_dir: Path,
        claim_lease: timedelta = timedelta(minutes=30),
        clock: Clock = utc_clock,
    ) -> None:
        """Initialize the ingester.

        Args:
            db: Publication store.
            transfer: Channel to the registry directories.
            sink: Receives alerts for rejections and download failures.
            operator_id: Only reports whose name contains it are fetched.
            reports_dir: Local directory where reports are downloaded.
            claim_lease: Age after which another run's reservation of a
                report is taken over.
            clock: Returns the current time.
        """
        self._db = db
        self._transfer = transfer
        self._sink = sink
        self._operator_id = operator_id
        self._reports_dir = Path(reports_dir)
        self._claim_lease = claim_lease
        self._clock = clock

    def is_candidate(self, filename: str) -> bool:
        """Check if a remote file is a report for this operator."""
        return filename.startswith(REPORT_PREFIX) and self._operator_id in filename

    def run(self) -> IngestResult:
        """Run one ingestion pass.

        Returns:
            Summary of the run.
        """
        result = IngestResult()
        try:
            names = self._transfer.list(REPORTS_DIR)
        except Exception as e:
            result.error = str(e) or e.__class__.__name__
            logger.error("Cannot list confirmation reports: %s", result.error)
            self._notify(notifications.reports_download_failed(result.error))
            return result

        new_names = [
            name for name in names if self.is_candidate(name) and not self._db.is_report_processed(name)
        ]
        result.listed = len(new_names)
        if not new_names:
            logger.info("No new confirmation report")
            return result

        self._reports_dir.mkdir(parents=True, exist_ok=True)
        for name in new_names:
            if not self._db.claim_report(name, self._claim_lease, now=self._clock()):
                logger.info("Report %s is being processed by another run, skipped", name)
                result.claimed_elsewhere.append(name)
                continue

            remote_path = f"{REPORTS_DIR}/{name}"
            local_path = self._reports_dir / name
            try:
                self._transfer.download(remote_path, local_path)
            except Exception as e:
                # Retried on the next run
                logger.error("Download of %s failed: %s", name, e)
                result.failed_downloads.append(name)
                self._db.release_report(name)
                continue
            downloaded_at = self._clock()
            logger.info("Downloaded %s", name)

            try:
                summary = self.process_file(name, local_path, downloaded_at=downloaded_at)
            except Exception:
                logger.exception("Processing of %s failed, retried on the next run", name)
                result.failed_reports.append(name)
                self._db.release_report(name)
                continue
            summary.archived = self._archive(remote_path, name)
            result.reports.append(summary)

        self._db.add_audit_entry(
            "reports_downloaded",
            "annuaire_reports",
            {
                "downloaded": len(result.reports),
                "failed": result.failed_downloads + result.failed_reports,
                "files": [summary.filename for summary in result.reports],
            },
        )
        logger.info(
            "Report ingestion finished: %d file(s) processed, %d download failure(s), "
            "%d processing failure(s)",
            len(result.reports),
            len(result.failed_downloads),
            len(result.failed_reports),
        )
        return result

    def process_file(
        self,
        filename: str,
        local_path: Path,
        downloaded_at: datetime | None = None,
    ) -> ReportSummary:
        """Reconcile a downloaded report and record it as processed.

        Args:
            filename: Report file name (the idempotency key).
            local_path: Downloaded copy of the report.
            downloaded_at: Download time.

        Returns:
            Reconciliation counts for the file.
        """
        summary = ReportSummary(filename=filename)
        try:
            parsed = parse_report(local_path.read_text(encoding="utf-8"))
        except (ReportFormatError, UnicodeDecodeError) as e:
            logger.error("Report %s is unusable: %s", filename, e)
            summary.status = REPORT_INVALID
            self._record(summary, downloaded_at)
            return summary

        summary.records_count = parsed.records_count
        summary.invalid_count = len(parsed.invalid_lines)
        for line_number, reason in parsed.invalid_lines:
            logger.warning("%s line %d skipped: %s", filename, line_number, reason)

        for line in parsed.lines:
            try:
                outcome, publication = self._db.apply_confirmation(
                    line.address,
                    line.outcome,
                    error_code=line.error_code,
                    error_message=line.error_message,
                    now=self._clock(),
                )
            except Exception:
                logger.exception("%s line %d could not be applied", filename, line.line_number)
                summary.invalid_count += 1
                continue

            if outcome is ReconcileOutcome.SKIPPED:
                summary.skipped_count += 1
                logger.info(
                    "%s line %d: publication %s already confirmed, skipped",
                    filename,
                    line.line_number,
                    publication.id if publication else None,
                )
                continue

            if outcome is ReconcileOutcome.UNMATCHED:
                summary.unmatched_count += 1
                logger.warning(
                    "%s line %d: no submitted publication for %s",
                    filename,
                    line.line_number,
                    line.address,
                )
            elif line.outcome is ConfirmationOutcome.SUCCESS:
                summary.success_count += 1
            else:
                summary.error_count += 1

            if line.outcome is ConfirmationOutcome.ERROR:
                self._notify(
                    notifications.publication_rejected(
                        line.address, line.error_code, line.error_message, report=filename
                    )
                )

        if summary.invalid_count or summary.unmatched_count:
            summary.status = REPORT_PARTIAL
        self._record(summary, downloaded_at)
        logger.info(
            "Report %s processed: %d success, %d error, %d unmatched, %d skipped, %d invalid",
            filename,
            summary.success_count,
            summary.error_count,
            summary.unmatched_count,
            summary.skipped_count,
            summary.invalid_count,
        )
        return summary

    def _record(self, summary: ReportSummary, downloaded_at: datetime | None) -> None:
        self._db.record_report(
            summary.filename,
            summary.status,
            records_count=summary.records_count,
            success_count=summary.success_count,
            error_count=summary.error_count,
            unmatched_count=summary.unmatched_count,
            skipped_count=summary.skipped_count,
            invalid_count=summary.invalid_count,
            downloaded_at=downloaded_at,
            now=self._clock(),
        )

    def _archive(self, remote_path: str, name: str) -> bool:
        try:
            self._transfer.archive(remote_path)
        except Exception as e:
            logger.warning("Cannot archive %s: %s", name, e)
            return False
        self._db.mark_report_archived(name)
        logger.info("Archived %s", name)
        return True

    def _notify(self, notification: notifications.Notification) -> None:
        try:
            self._sink.send(notification)
        except Exception:
            logger.exception("Failed to send %s notification", notification.type)
