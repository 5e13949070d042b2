"""Tests for periodic job wiring."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from annuairesync.engine.scheduler import BackgroundJobScheduler, SyncJobScheduler


class TestBackgroundJobScheduler:
    """Tests for the APScheduler-backed scheduler."""

    def test_registers_jobs_on_start(self) -> None:
        """Registered tasks should become APScheduler jobs."""
        scheduler = BackgroundJobScheduler()
        scheduler.run_periodically(lambda: None, timedelta(hours=1), "annuaire_retry")
        scheduler.run_periodically(lambda: None, timedelta(days=1), "annuaire_batch")
        assert scheduler.running is False

        scheduler.start()
        try:
            assert scheduler.running is True
            assert scheduler._scheduler is not None
            jobs = {job.id: job for job in scheduler._scheduler.get_jobs()}
            assert set(jobs) == {"annuaire_retry", "annuaire_batch"}
            assert jobs["annuaire_retry"].max_instances == 1
            assert jobs["annuaire_retry"].coalesce is True
        finally:
            scheduler.stop()
        assert scheduler.running is False

    def test_start_twice(self) -> None:
        """Starting an already running scheduler should be a no-op."""
        scheduler = BackgroundJobScheduler()
        scheduler.start()
        first = scheduler._scheduler
        scheduler.start()
        try:
            assert scheduler._scheduler is first
        finally:
            scheduler.stop()

    def test_register_while_running(self) -> None:
        """Tasks registered after start should be scheduled immediately."""
        scheduler = BackgroundJobScheduler()
        scheduler.start()
        try:
            scheduler.run_periodically(lambda: None, timedelta(minutes=5), "late")
            assert scheduler._scheduler is not None
            assert [job.id for job in scheduler._scheduler.get_jobs()] == ["late"]
        finally:
            scheduler.stop()

    def test_rejects_non_positive_period(self) -> None:
        """A zero period should raise ValueError."""
        with pytest.raises(ValueError):
            BackgroundJobScheduler().run_periodically(lambda: None, timedelta(0), "bad")


class TestSyncJobScheduler:
    """Tests for SyncJobScheduler."""

    def test_start_registers_all_jobs(self) -> None:
        """With an immediate channel all three jobs should run."""
        scheduler = MagicMock()
        jobs = SyncJobScheduler(
            scheduler,
            MagicMock(),
            MagicMock(),
            retry=MagicMock(),
            retry_period=timedelta(minutes=30),
        )

        jobs.start()

        registered = {call.args[2]: call.args[1] for call in scheduler.run_periodically.call_args_list}
        assert registered == {
            "annuaire_retry": timedelta(minutes=30),
            "annuaire_batch": timedelta(days=1),
            "annuaire_reports": timedelta(days=1),
        }
        scheduler.start.assert_called_once()

    def test_batch_only_mode(self) -> None:
        """Without an immediate channel the retry job should not be registered."""
        scheduler = MagicMock()
        SyncJobScheduler(scheduler, MagicMock(), MagicMock()).start()

        names = [call.args[2] for call in scheduler.run_periodically.call_args_list]
        assert names == ["annuaire_batch", "annuaire_reports"]

    def test_jobs_call_components(self) -> None:
        """Each job method should run its component."""
        exporter, ingester, retry = MagicMock(), MagicMock(), MagicMock()
        jobs = SyncJobScheduler(MagicMock(), exporter, ingester, retry=retry)

        jobs.retry_job()
        jobs.export_job()
        jobs.report_job()

        retry.run.assert_called_once()
        exporter.run.assert_called_once()
        ingester.run.assert_called_once()

    def test_jobs_swallow_exceptions(self, caplog: pytest.LogCaptureFixture) -> None:
        """A failing job should be logged, not raised into the scheduler."""
        exporter, ingester, retry = MagicMock(), MagicMock(), MagicMock()
        exporter.run.side_effect = RuntimeError("disk full")
        ingester.run.side_effect = RuntimeError("sftp down")
        retry.run.side_effect = RuntimeError("db locked")
        jobs = SyncJobScheduler(MagicMock(), exporter, ingester, retry=retry)

        jobs.retry_job()
        jobs.export_job()
        jobs.report_job()

        assert "Error during scheduled batch export" in caplog.text
        assert "Error during scheduled report ingestion" in caplog.text
        assert "Error during scheduled registry retry" in caplog.text

    def test_stop(self) -> None:
        """Stop should stop the underlying scheduler."""
        scheduler = MagicMock()
        SyncJobScheduler(scheduler, MagicMock(), MagicMock()).stop()
        scheduler.stop.assert_called_once()
