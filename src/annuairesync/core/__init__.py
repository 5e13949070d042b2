"""Core module - Shared types, configuration and registry file formats."""

from annuairesync.core.backoff import DEFAULT_MAX_RETRY_ATTEMPTS, backoff, next_retry_at
from annuairesync.core.config import SyncConfig
from annuairesync.core.formats import (
    BATCH_HEADER,
    REPORT_HEADER,
    ReportFormatError,
    batch_filename,
    parse_report,
    write_batch_file,
)
from annuairesync.core.types import (
    ConfirmationOutcome,
    MailboxSnapshot,
    MailboxType,
    Operation,
    PublicationStatus,
    Severity,
)

__all__ = [
    # Backoff
    "DEFAULT_MAX_RETRY_ATTEMPTS",
    "backoff",
    "next_retry_at",
    # Config
    "SyncConfig",
    # Formats
    "BATCH_HEADER",
    "REPORT_HEADER",
    "ReportFormatError",
    "batch_filename",
    "parse_report",
    "write_batch_file",
    # Types
    "ConfirmationOutcome",
    "MailboxSnapshot",
    "MailboxType",
    "Operation",
    "PublicationStatus",
    "Severity",
]
