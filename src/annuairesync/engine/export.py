"""Batch export of pending publications.

This module provides:
- BatchExporter: writes every pending publication to one batch file and
  uploads it to the registry incoming directory
- ExportResult: summary of one run
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from annuairesync.core.formats import batch_filename, write_batch_file
from annuairesync.engine import notifications
from annuairesync.engine.retry import Clock, utc_clock

if TYPE_CHECKING:
    from annuairesync.engine.database import Database
    from annuairesync.engine.notifications import NotificationSink
    from annuairesync.engine.transfer import TransferChannel

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """Summary of one export run."""

    batch_file: str | None = None
    records: int = 0
    uploaded: bool = False
    error: str | None = None


class BatchExporter:
    """Collects pending publications into a registry batch file."""

    def __init__(
        self,
        db: Database,
        transfer: TransferChannel,
        sink: NotificationSink,
        operator_id: str,
        work_dir: Path,
        claim_lease: timedelta = timedelta(minutes=30),
        clock: Clock = utc_clock,
    ) -> None:
        """Initialize the exporter.

        Args:
            db: Publication store.
            transfer: Channel to the registry directories.
            sink: Receives alerts for failed exports.
            operator_id: Operator identifier used in the file name.
            work_dir: Directory for the temporary batch file.
            claim_lease: Age after which another run's claim is released.
            clock: Returns the current time.
        """
        self._db = db
        self._transfer = transfer
        self._sink = sink
        self._operator_id = operator_id
        self._work_dir = Path(work_dir)
        self._claim_lease = claim_lease
        self._clock = clock

    def run(self) -> ExportResult:
        """Run one export.

        Every pending publication is included, whatever its creation date,
        so a missed run is caught up by the next one. If the upload fails
        the publications go back to pending and nothing else changes.

        Returns:
            Summary of the run.
        """
        result = ExportResult()
        now = self._clock()
        claimant = f"export-{secrets.token_hex(8)}"

        self._db.release_stale_claims(self._claim_lease, now=now)
        publications = self._db.claim_pending_for_export(claimant, now=now)
        if not publications:
            logger.info("No pending publication, batch file not generated")
            return result

        filename = batch_filename(self._operator_id, now)
        local_path = self._work_dir / filename
        result.batch_file = filename
        logger.info("%d operation(s) to include in %s", len(publications), filename)

        try:
            self._work_dir.mkdir(parents=True, exist_ok=True)
            result.records = write_batch_file(local_path, publications)
            remote_path = self._transfer.upload(local_path, filename)
        except Exception as e:
            result.error = str(e) or e.__class__.__name__
            released = self._db.release_claim(claimant)
            logger.error(
                "Batch export %s failed, %d publication(s) left pending: %s",
                filename,
                released,
                result.error,
            )
            self._notify(notifications.batch_export_failed(result.error, filename))
            return result
        finally:
            local_path.unlink(missing_ok=True)

        result.uploaded = True
        submitted = self._db.mark_submitted(claimant, filename, now=self._clock())
        self._db.add_audit_entry(
            "annuaire_batch_upload",
            "annuaire",
            {"filename": filename, "remote_path": remote_path, "records_count": submitted},
        )
        logger.info("Batch file uploaded: %s (%d records)", filename, submitted)
        return result

    def _notify(self, notification: notifications.Notification) -> None:
        try:
            self._sink.send(notification)
        except Exception:
            logger.exception("Failed to send %s notification", notification.type)
