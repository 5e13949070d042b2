"""Notification records for the external notifier.

This module provides:
- The Notification value object
- NotificationSink: abstract interface receiving alerts
- DatabaseNotificationSink: stores alerts in the notifications table
- Builders for each alert the engine emits
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from annuairesync.core.types import Severity

if TYPE_CHECKING:
    from annuairesync.engine.database import Database
    from annuairesync.engine.models import Publication

logger = logging.getLogger(__name__)

SUPER_ADMIN = "super_admin"
DOMAIN_ADMIN = "domain_admin"


@dataclass
class Notification:
    """Represents an alert for a human operator."""

    type: str
    severity: Severity
    title: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    target_roles: list[str] = field(default_factory=list)


class NotificationSink(ABC):
    """Abstract interface receiving engine alerts."""

    @abstractmethod
    def send(self, notification: Notification) -> None:
        """Hand a notification to the notifier.

        Args:
            notification: The notification to send.
        """

    def writes_to(self, db: Database) -> bool:
        """Check if notifications land in db's notifications table."""
        return False


class DatabaseNotificationSink(NotificationSink):
    """Stores notifications in the publication database."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def writes_to(self, db: Database) -> bool:
        return db is self._db

    def send(self, notification: Notification) -> None:
        """Insert a row in the notifications table."""
        self._db.add_notification(
            type=notification.type,
            severity=Severity(notification.severity).value,
            title=notification.title,
            message=notification.message,
            details=notification.metadata,
            target_roles=notification.target_roles,
        )
        logger.warning("Notification %s: %s", notification.type, notification.message)


def retries_exhausted(publication: Publication, max_attempts: int) -> Notification:
    """Build the alert for a publication that reached the retry bound."""
    return Notification(
        type="annuaire_failure",
        severity=Severity.HIGH,
        title="Directory publication failed",
        message=(
            f"Publication of {publication.address} failed after {max_attempts} attempts"
        ),
        metadata={
            "publication_id": publication.id,
            "mailbox_ref": publication.mailbox_ref,
            "email": publication.address,
            "operation": publication.operation,
            "last_error": publication.last_error,
        },
        target_roles=[SUPER_ADMIN, DOMAIN_ADMIN],
    )


def publication_rejected(
    address: str,
    error_code: str | None,
    error_message: str | None,
    report: str | None = None,
) -> Notification:
    """Build the alert for a registry-side rejection found in a report."""
    return Notification(
        type="annuaire_publication_error",
        severity=Severity.MEDIUM,
        title="Directory publication rejected",
        message=f"Publication of {address} was rejected: {error_message or error_code or 'no reason given'}",
        metadata={
            "email": address,
            "error_code": error_code,
            "error_message": error_message,
            "report": report,
        },
        target_roles=[SUPER_ADMIN, DOMAIN_ADMIN],
    )


def batch_export_failed(error: str, batch_file: str | None = None) -> Notification:
    """Build the alert for a batch file that could not be generated or sent."""
    return Notification(
        type="annuaire_batch_error",
        severity=Severity.CRITICAL,
        title="Directory batch export failed",
        message=error,
        metadata={"batch_file": batch_file} if batch_file else {},
        target_roles=[SUPER_ADMIN],
    )


def reports_download_failed(error: str) -> Notification:
    """Build the alert for confirmation reports that could not be fetched."""
    return Notification(
        type="reports_download_error",
        severity=Severity.MEDIUM,
        title="Confirmation report download failed",
        message=error,
        target_roles=[SUPER_ADMIN],
    )
