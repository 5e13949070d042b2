"""Assembly of the engine components from a configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from annuairesync.core.config import SyncConfig
from annuairesync.engine.database import Database
from annuairesync.engine.export import BatchExporter
from annuairesync.engine.notifications import DatabaseNotificationSink, NotificationSink
from annuairesync.engine.registry import HTTPRegistryAdapter, RegistryAdapter
from annuairesync.engine.reports import ReportIngester
from annuairesync.engine.retry import RetryScheduler
from annuairesync.engine.scheduler import BackgroundJobScheduler, SyncJobScheduler
from annuairesync.engine.transfer import LocalFSTransferChannel, TransferChannel

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """The wired engine components."""

    config: SyncConfig
    db: Database
    sink: NotificationSink
    transfer: TransferChannel
    registry: RegistryAdapter | None
    exporter: BatchExporter
    ingester: ReportIngester
    retry: RetryScheduler | None

    def job_scheduler(self) -> SyncJobScheduler:
        """Build the periodic job wiring on an APScheduler backend."""
        return SyncJobScheduler(
            BackgroundJobScheduler(),
            exporter=self.exporter,
            ingester=self.ingester,
            retry=self.retry,
            retry_period=self.config.retry_period,
            export_period=self.config.export_period,
            report_period=self.config.report_period,
        )

    def close(self) -> None:
        """Release the database and registry connections."""
        if isinstance(self.registry, HTTPRegistryAdapter):
            self.registry.close()
        self.db.close()


def build_runtime(
    config: SyncConfig,
    transfer: TransferChannel | None = None,
    registry: RegistryAdapter | None = None,
) -> Runtime:
    """Build the engine components.

    Args:
        config: Engine configuration.
        transfer: Transfer channel (default: local directory at transfer_root).
        registry: Immediate registry channel (default: HTTP adapter when
            registry_url is set, None otherwise).

    Returns:
        Wired components.
    """
    db = Database(config.db_path)
    sink = DatabaseNotificationSink(db)
    if transfer is None:
        transfer = LocalFSTransferChannel(config.transfer_root)
    if registry is None and config.immediate_mode:
        registry = HTTPRegistryAdapter(
            config.registry_url or "",
            config.operator_id,
            api_key=config.registry_api_key,
            timeout=config.registry_timeout,
        )

    retry = None
    if registry is not None:
        retry = RetryScheduler(
            db,
            registry,
            sink,
            max_attempts=config.max_retry_attempts,
            batch_size=config.batch_size,
            claim_lease=config.claim_lease,
            run_timeout=config.run_timeout,
        )

    exporter = BatchExporter(
        db,
        transfer,
        sink,
        operator_id=config.operator_id,
        work_dir=config.work_dir,
        claim_lease=config.claim_lease,
    )
    ingester = ReportIngester(
        db,
        transfer,
        sink,
        operator_id=config.operator_id,
        reports_dir=config.reports_dir,
        claim_lease=config.claim_lease,
    )
    logger.debug("Transfer channel: %s", transfer.location)
    return Runtime(
        config=config,
        db=db,
        sink=sink,
        transfer=transfer,
        registry=registry,
        exporter=exporter,
        ingester=ingester,
        retry=retry,
    )
