"""Immediate-mode delivery with exponential backoff.

This module provides:
- RetryScheduler: claims due publications and sends them to the registry
- RetryRunResult: summary of one run

Each run claims a batch of pending or error publications, calls the
registry for each of them in creation order and records the outcome
record by record, so a crash mid-batch keeps the updates already made.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from annuairesync.core.backoff import (
    DEFAULT_BACKOFF_UNIT,
    DEFAULT_MAX_RETRY_ATTEMPTS,
)
from annuairesync.core.types import Operation, PublicationStatus
from annuairesync.engine import notifications

if TYPE_CHECKING:
    from annuairesync.engine.database import Database
    from annuairesync.engine.models import Publication
    from annuairesync.engine.notifications import NotificationSink
    from annuairesync.engine.registry import RegistryAdapter

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_clock() -> datetime:
    """Default clock."""
    return datetime.now(UTC)


@dataclass
class RetryRunResult:
    """Summary of one retry run."""

    claimed: int = 0
    succeeded: int = 0
    rescheduled: int = 0
    exhausted: int = 0
    released: int = 0
    timed_out: bool = False


class RetryScheduler:
    """Sends due publications to the registry, one at a time."""

    def __init__(
        self,
        db: Database,
        registry: RegistryAdapter,
        sink: NotificationSink,
        max_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS,
        batch_size: int = 50,
        claim_lease: timedelta = timedelta(minutes=30),
        run_timeout: timedelta | None = None,
        backoff_unit: timedelta = DEFAULT_BACKOFF_UNIT,
        clock: Clock = utc_clock,
    ) -> None:
        """Initialize the retry scheduler.

        Args:
            db: Publication store.
            registry: Immediate registry channel.
            sink: Receives alerts for exhausted publications.
            max_attempts: Attempts before a publication is marked failed.
            batch_size: Maximum publications claimed per run.
            claim_lease: Age after which another run's claim is released.
            run_timeout: Optional time box for one run.
            backoff_unit: Duration of one backoff unit.
            clock: Returns the current time.
        """
        self._db = db
        self._registry = registry
        self._sink = sink
        self._max_attempts = max_attempts
        self._batch_size = batch_size
        self._claim_lease = claim_lease
        self._run_timeout = run_timeout
        self._backoff_unit = backoff_unit
        self._clock = clock

    def run(self) -> RetryRunResult:
        """Run one retry pass.

        Returns:
            Summary of the run.
        """
        result = RetryRunResult()
        started = self._clock()
        deadline = started + self._run_timeout if self._run_timeout else None
        claimant = f"retry-{secrets.token_hex(8)}"

        self._db.release_stale_claims(self._claim_lease, now=started)
        publications = self._db.claim_for_retry(
            claimant, self._max_attempts, self._batch_size, now=started
        )
        result.claimed = len(publications)
        if not publications:
            logger.info("No publication due for retry")
            return result

        logger.info("%d publication(s) to send to the registry", len(publications))
        try:
            for publication in publications:
                if deadline is not None and self._clock() >= deadline:
                    result.timed_out = True
                    logger.warning("Retry run timed out, releasing remaining claims")
                    break
                try:
                    self._process(publication, claimant, result)
                except Exception:
                    # Left claimed, released below
                    logger.exception("Failed to record outcome of publication %s", publication.id)
        finally:
            result.released = self._db.release_claim(claimant)

        logger.info(
            "Retry run finished: %d success, %d rescheduled, %d failed, %d released",
            result.succeeded,
            result.rescheduled,
            result.exhausted,
            result.released,
        )
        return result

    def _process(self, publication: Publication, claimant: str, result: RetryRunResult) -> None:
        """Send one publication and record the outcome."""
        error: str | None = None
        response = None
        try:
            response = self._registry.apply(Operation(publication.operation), publication.snapshot)
            if not response.success:
                error = response.message or f"Registry refused the change ({response.code})"
        except Exception as e:
            error = str(e) or e.__class__.__name__

        now = self._clock()
        if error is None and response is not None:
            updated = self._db.record_attempt_success(
                publication.id,
                claimant,
                response_code=response.code,
                response_message=response.message,
                response_data=response.data,
                now=now,
            )
            if updated is not None:
                result.succeeded += 1
                logger.info("Publication %s (%s) accepted by the registry", publication.id, publication.address)
            return

        # Stored with the failed transition when the sink writes to this store
        in_transaction = self._sink.writes_to(self._db)
        updated = self._db.record_attempt_failure(
            publication.id,
            claimant,
            error or "Unknown error",
            self._max_attempts,
            now=now,
            backoff_unit=self._backoff_unit,
            response_code=response.code if response is not None else None,
            on_failed=self._exhausted_alert if in_transaction else None,
        )
        if updated is None:
            logger.warning("Lost claim on publication %s", publication.id)
            return

        if updated.status == PublicationStatus.FAILED.value:
            result.exhausted += 1
            logger.error(
                "Publication %s (%s) failed after %d attempts: %s",
                updated.id,
                updated.address,
                updated.retry_count,
                error,
            )
            if not in_transaction:
                self._notify(self._exhausted_alert(updated))
        else:
            result.rescheduled += 1
            logger.warning(
                "Attempt %d/%d for publication %s failed, next try at %s: %s",
                updated.retry_count,
                self._max_attempts,
                updated.id,
                updated.next_retry_at,
                error,
            )

    def _exhausted_alert(self, publication: Publication) -> notifications.Notification:
        return notifications.retries_exhausted(publication, self._max_attempts)

    def _notify(self, notification: notifications.Notification) -> None:
        try:
            self._sink.send(notification)
        except Exception:
            logger.exception("Failed to send %s notification", notification.type)
