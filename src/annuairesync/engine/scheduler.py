"""Periodic execution of the synchronization jobs.

This module provides:
- Scheduler: abstract interface for running tasks periodically
- BackgroundJobScheduler: APScheduler implementation
- SyncJobScheduler: registers the retry, export and report jobs

Job bodies are plain methods, so tests call them directly instead of
waiting for a trigger.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import timedelta
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from annuairesync.engine.export import BatchExporter
    from annuairesync.engine.reports import ReportIngester
    from annuairesync.engine.retry import RetryScheduler

logger = logging.getLogger(__name__)

Task = Callable[[], object]


class Scheduler(ABC):
    """Abstract interface for periodic task execution."""

    @abstractmethod
    def run_periodically(self, task: Task, period: timedelta, name: str) -> None:
        """Register a task to run every period.

        Args:
            task: Callable run on each tick.
            period: Interval between two runs.
            name: Unique job name.
        """

    @abstractmethod
    def start(self) -> None:
        """Start running registered tasks."""

    @abstractmethod
    def stop(self) -> None:
        """Stop running tasks."""


class BackgroundJobScheduler(Scheduler):
    """Runs tasks in APScheduler background threads.

    A job never overlaps with itself, and missed runs are coalesced into
    a single one.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, tuple[Task, timedelta]] = {}
        self._scheduler: BackgroundScheduler | None = None

    @property
    def job_names(self) -> list[str]:
        """Names of the registered tasks."""
        return list(self._jobs)

    @property
    def running(self) -> bool:
        """Check if the scheduler is started."""
        return self._scheduler is not None

    def run_periodically(self, task: Task, period: timedelta, name: str) -> None:
        """Register a task; it is scheduled right away if already started."""
        if period <= timedelta(0):
            raise ValueError(f"Period of {name} must be positive")
        self._jobs[name] = (task, period)
        if self._scheduler is not None:
            self._add_job(self._scheduler, name, task, period)

    @staticmethod
    def _add_job(scheduler: BackgroundScheduler, name: str, task: Task, period: timedelta) -> None:
        scheduler.add_job(
            task,
            trigger=IntervalTrigger(seconds=period.total_seconds()),
            id=name,
            name=name,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

    def start(self) -> None:
        """Start the scheduler."""
        if self._scheduler is not None:
            return  # Already running

        self._scheduler = BackgroundScheduler()
        for name, (task, period) in self._jobs.items():
            self._add_job(self._scheduler, name, task, period)
        self._scheduler.start()
        logger.info("Scheduler started with %d job(s)", len(self._jobs))

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Scheduler stopped")


class SyncJobScheduler:
    """Wires the synchronization jobs onto a Scheduler.

    Runs:
    - Retry of due publications (only when an immediate channel exists)
    - Batch export of pending publications
    - Confirmation report ingestion
    """

    def __init__(
        self,
        scheduler: Scheduler,
        exporter: BatchExporter,
        ingester: ReportIngester,
        retry: RetryScheduler | None = None,
        retry_period: timedelta = timedelta(hours=1),
        export_period: timedelta = timedelta(days=1),
        report_period: timedelta = timedelta(days=1),
    ) -> None:
        """Initialize the job wiring.

        Args:
            scheduler: Scheduler running the jobs.
            exporter: Batch export job.
            ingester: Report ingestion job.
            retry: Immediate retry job (None in batch-only mode).
            retry_period: Period of the retry job.
            export_period: Period of the export job.
            report_period: Period of the report job.
        """
        self._scheduler = scheduler
        self._exporter = exporter
        self._ingester = ingester
        self._retry = retry
        self._retry_period = retry_period
        self._export_period = export_period
        self._report_period = report_period

    def retry_job(self) -> None:
        """Job function for scheduled retries."""
        if self._retry is None:
            return
        logger.info("Starting scheduled registry retry")
        try:
            self._retry.run()
        except Exception:
            logger.exception("Error during scheduled registry retry")

    def export_job(self) -> None:
        """Job function for scheduled batch export."""
        logger.info("Starting scheduled batch export")
        try:
            self._exporter.run()
        except Exception:
            logger.exception("Error during scheduled batch export")

    def report_job(self) -> None:
        """Job function for scheduled report ingestion."""
        logger.info("Starting scheduled report ingestion")
        try:
            self._ingester.run()
        except Exception:
            logger.exception("Error during scheduled report ingestion")

    def start(self) -> None:
        """Register the jobs and start the scheduler."""
        if self._retry is not None:
            self._scheduler.run_periodically(self.retry_job, self._retry_period, "annuaire_retry")
        else:
            logger.info("No immediate registry channel, retry job disabled")
        self._scheduler.run_periodically(self.export_job, self._export_period, "annuaire_batch")
        self._scheduler.run_periodically(self.report_job, self._report_period, "annuaire_reports")
        self._scheduler.start()

    def stop(self) -> None:
        """Stop the scheduler."""
        self._scheduler.stop()
