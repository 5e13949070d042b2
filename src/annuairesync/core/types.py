"""Shared types for annuairesync.

This module defines the enums and value objects used by the engine,
the admin API and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Operation(str, Enum):
    """Directory change requested for a mailbox."""

    PUBLISH = "publish"
    UNPUBLISH = "unpublish"
    UPDATE = "update"


class PublicationStatus(str, Enum):
    """Lifecycle state of a publication.

    CLAIMED is a transient marker written by an atomic claim. It always
    resolves to a forward state or back to the status it was claimed from.
    """

    PENDING = "pending"
    CLAIMED = "claimed"
    SUBMITTED = "submitted"
    SUCCESS = "success"
    ERROR = "error"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition is allowed."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({PublicationStatus.SUCCESS, PublicationStatus.FAILED})
RETRYABLE_STATUSES = frozenset({PublicationStatus.PENDING, PublicationStatus.ERROR})


class MailboxType(str, Enum):
    """Kind of mailbox, with its registry code."""

    PERSONAL = "personal"
    ORGANIZATIONAL = "organizational"
    APPLICATIVE = "applicative"

    @property
    def code(self) -> str:
        """Registry code used in batch files (PERS, ORG, APP)."""
        return _MAILBOX_TYPE_CODES[self]


_MAILBOX_TYPE_CODES = {
    MailboxType.PERSONAL: "PERS",
    MailboxType.ORGANIZATIONAL: "ORG",
    MailboxType.APPLICATIVE: "APP",
}


class ConfirmationOutcome(str, Enum):
    """Outcome reported by the registry for one mailbox."""

    SUCCESS = "success"
    ERROR = "error"

    @classmethod
    def from_status(cls, value: str) -> ConfirmationOutcome:
        """Map a report `statut` value to an outcome.

        Args:
            value: Raw status from the report (OK, SUCCESS, ERROR, ERREUR).

        Returns:
            The matching outcome.

        Raises:
            ValueError: If the status is not recognized.
        """
        normalized = value.strip().upper()
        if normalized in ("OK", "SUCCESS"):
            return cls.SUCCESS
        if normalized in ("ERROR", "ERREUR"):
            return cls.ERROR
        raise ValueError(f"Unknown report status: {value!r}")


class Severity(str, Enum):
    """Severity of a notification record."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class MailboxSnapshot:
    """Read-only copy of the mailbox attributes needed by the registry.

    Captured when a publication is enqueued so the engine never has to
    query the live mailbox store at export time.

    Attributes:
        ref: Opaque reference to the mailbox in the host platform.
        address: Mailbox e-mail address.
        mailbox_type: Kind of mailbox.
        national_id: RPPS/ADELI identifier of the owner (personal mailboxes).
        last_name: Owner last name.
        first_name: Owner first name.
        profession: Owner profession code.
        specialty: Owner specialty code.
        finess: Legal FINESS identifier of the organization.
        organization_name: Organization display name.
        hidden_from_directory: True if the mailbox is on the red list.
        created_at: Mailbox creation time.
    """

    ref: str
    address: str
    mailbox_type: MailboxType
    national_id: str | None = None
    last_name: str | None = None
    first_name: str | None = None
    profession: str | None = None
    specialty: str | None = None
    finess: str | None = None
    organization_name: str | None = None
    hidden_from_directory: bool = False
    created_at: datetime | None = None
