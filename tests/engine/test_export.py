"""Tests for the batch export job."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from annuairesync.core.formats import BATCH_HEADER
from annuairesync.core.types import MailboxType, Operation, PublicationStatus
from annuairesync.engine.database import Database
from annuairesync.engine.export import BatchExporter
from annuairesync.engine.transfer import LocalFSTransferChannel, TransferError


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    return tmp_path / "work"


def make_exporter(db, transfer, sink, clock, work_dir) -> BatchExporter:
    return BatchExporter(db, transfer, sink, "OP1", work_dir, clock=clock)


class TestBatchExport:
    """Tests for BatchExporter.run."""

    def test_no_pending_publication(self, db: Database, transfer, sink, clock, work_dir) -> None:
        """Without pending publications no file should be produced."""
        result = make_exporter(db, transfer, sink, clock, work_dir).run()

        assert result.batch_file is None
        assert result.uploaded is False
        assert transfer.list("/incoming") == []

    def test_exports_pending_publications(
        self,
        db: Database,
        transfer: LocalFSTransferChannel,
        sink,
        clock,
        work_dir: Path,
        snapshot,
    ) -> None:
        """Pending publications should be uploaded in one file and marked submitted."""
        first = db.enqueue_publication(
            snapshot("dr.martin@chu.example"), Operation.PUBLISH, now=clock() - timedelta(days=3)
        )
        second = db.enqueue_publication(
            snapshot("secretariat@chu.example", MailboxType.ORGANIZATIONAL),
            Operation.UPDATE,
            now=clock() - timedelta(hours=2),
        )

        result = make_exporter(db, transfer, sink, clock, work_dir).run()

        assert result.uploaded is True
        assert result.records == 2
        assert result.batch_file == "flux_annuaire_OP1_20260302_020000.csv"
        assert transfer.list("/incoming") == [result.batch_file]

        downloaded = work_dir.parent / "check.csv"
        transfer.download(f"/incoming/{result.batch_file}", downloaded)
        lines = downloaded.read_text(encoding="utf-8").splitlines()
        assert lines[0] == ";".join(BATCH_HEADER)
        assert lines[1].startswith("publish;dr.martin@chu.example;PERS;")
        assert lines[2].startswith("update;secretariat@chu.example;ORG;")

        for publication_id in (first.id, second.id):
            publication = db.get_publication(publication_id)
            assert publication is not None
            assert publication.status == PublicationStatus.SUBMITTED.value
            assert publication.batch_file == result.batch_file
            assert publication.submitted_at == clock()

        audit = db.list_audit_entries(action="annuaire_batch_upload")
        assert len(audit) == 1
        assert audit[0].details["records_count"] == 2

    def test_local_file_removed(
        self, db: Database, transfer, sink, clock, work_dir: Path, snapshot
    ) -> None:
        """The temporary batch file should not survive the run."""
        db.enqueue_publication(snapshot(), Operation.PUBLISH, now=clock())
        make_exporter(db, transfer, sink, clock, work_dir).run()
        assert list(work_dir.iterdir()) == []

    def test_exported_publications_not_exported_twice(
        self, db: Database, transfer, sink, clock, work_dir: Path, snapshot
    ) -> None:
        """A second run should find nothing left to export."""
        db.enqueue_publication(snapshot(), Operation.PUBLISH, now=clock())
        exporter = make_exporter(db, transfer, sink, clock, work_dir)
        exporter.run()

        clock.advance(timedelta(days=1))
        assert exporter.run().batch_file is None

    def test_error_publications_excluded(
        self, db: Database, transfer, sink, clock, work_dir: Path, snapshot
    ) -> None:
        """Publications in error should be left to the retry job."""
        publication = db.enqueue_publication(snapshot(), Operation.PUBLISH, now=clock())
        db.claim_for_retry("retry-1", 5, 10, now=clock())
        db.record_attempt_failure(publication.id, "retry-1", "down", 5, now=clock())

        assert make_exporter(db, transfer, sink, clock, work_dir).run().batch_file is None

    def test_upload_failure_leaves_publications_pending(
        self, db: Database, sink, clock, work_dir: Path, snapshot
    ) -> None:
        """A failed upload should change nothing and raise a critical alert."""
        publication = db.enqueue_publication(snapshot(), Operation.PUBLISH, now=clock())
        broken = MagicMock()
        broken.upload.side_effect = TransferError("Connection refused")

        result = make_exporter(db, broken, sink, clock, work_dir).run()

        assert result.uploaded is False
        assert result.error == "Connection refused"
        unchanged = db.get_publication(publication.id)
        assert unchanged is not None
        assert unchanged.status == PublicationStatus.PENDING.value
        assert unchanged.batch_file is None
        assert unchanged.claimed_by is None
        assert list(work_dir.iterdir()) == []
        assert db.list_audit_entries() == []

        alerts = db.list_notifications(type="annuaire_batch_error")
        assert len(alerts) == 1
        assert alerts[0].severity == "critical"
        assert alerts[0].details["batch_file"] == result.batch_file

    def test_failed_export_retried_next_run(
        self, db: Database, transfer, sink, clock, work_dir: Path, snapshot
    ) -> None:
        """Publications left pending by a failed run should go in the next file."""
        db.enqueue_publication(snapshot(), Operation.PUBLISH, now=clock())
        broken = MagicMock()
        broken.upload.side_effect = TransferError("Connection refused")
        make_exporter(db, broken, sink, clock, work_dir).run()

        clock.advance(timedelta(days=1))
        result = make_exporter(db, transfer, sink, clock, work_dir).run()

        assert result.uploaded is True
        assert result.records == 1
