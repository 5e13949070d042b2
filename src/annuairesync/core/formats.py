"""Registry file formats.

This module provides:
- The batch export format (one line per publication)
- The confirmation report parser (one outcome per mailbox address)

Both formats are semicolon-delimited UTF-8 files with a header row.
"""

from __future__ import annotations

import csv
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from annuairesync.core.types import ConfirmationOutcome, MailboxSnapshot, Operation

if TYPE_CHECKING:
    from annuairesync.engine.models import Publication

DELIMITER = ";"

BATCH_HEADER: tuple[str, ...] = (
    "type_operation",
    "adresse_bal",
    "type_bal",
    "identifiant_pp",
    "nom",
    "prenom",
    "profession",
    "specialite",
    "finess_rattachement",
    "liste_rouge",
    "date_creation",
)

REPORT_HEADER: tuple[str, ...] = ("adresse_bal", "statut", "code_erreur", "message_erreur")

# Report column names, with the legacy English aliases accepted by the registry
_REPORT_COLUMNS: dict[str, tuple[str, ...]] = {
    "address": ("adresse_bal", "email"),
    "status": ("statut", "status"),
    "error_code": ("code_erreur", "error_code"),
    "error_message": ("message_erreur", "error_message"),
}


class ReportFormatError(ValueError):
    """Raised when a confirmation report cannot be parsed at all."""


def batch_filename(operator_id: str, now: datetime) -> str:
    """Build the name of a batch file.

    Args:
        operator_id: Operator identifier.
        now: Generation time.

    Returns:
        File name such as flux_annuaire_OP1_20261018_020000.csv.
    """
    return f"flux_annuaire_{operator_id}_{now.astimezone(UTC):%Y%m%d_%H%M%S}.csv"


def format_timestamp(value: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def batch_row(
    operation: Operation,
    snapshot: MailboxSnapshot,
    fallback_created_at: datetime | None = None,
) -> list[str]:
    """Serialize one publication to the batch columns.

    Args:
        operation: Requested directory change.
        snapshot: Mailbox attributes captured at enqueue time.
        fallback_created_at: Date used when the snapshot has no creation date.

    Returns:
        Column values, in BATCH_HEADER order.
    """
    created_at = snapshot.created_at or fallback_created_at
    return [
        operation.value,
        snapshot.address,
        snapshot.mailbox_type.code,
        snapshot.national_id or "",
        snapshot.last_name or "",
        snapshot.first_name or "",
        snapshot.profession or "",
        snapshot.specialty or "",
        snapshot.finess or "",
        "OUI" if snapshot.hidden_from_directory else "NON",
        format_timestamp(created_at) if created_at else "",
    ]


def write_batch_file(path: Path, publications: Iterable[Publication]) -> int:
    """Write publications to a batch file.

    Args:
        path: Destination file (overwritten).
        publications: Records to serialize, in file order.

    Returns:
        Number of data lines written.
    """
    count = 0
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f, delimiter=DELIMITER, lineterminator="\n")
        writer.writerow(BATCH_HEADER)
        for publication in publications:
            writer.writerow(
                batch_row(
                    Operation(publication.operation),
                    publication.snapshot,
                    publication.created_at,
                )
            )
            count += 1
    return count


@dataclass
class ReportLine:
    """One confirmation parsed from a report.

    Attributes:
        line_number: 1-based line number in the file.
        address: Mailbox address the confirmation refers to.
        outcome: Registry outcome.
        error_code: Registry error code (errors only).
        error_message: Registry error message (errors only).
    """

    line_number: int
    address: str
    outcome: ConfirmationOutcome
    error_code: str | None = None
    error_message: str | None = None


@dataclass
class ParsedReport:
    """Result of parsing a confirmation report.

    Attributes:
        lines: Well-formed confirmations.
        invalid_lines: (line_number, reason) for each malformed line.
    """

    lines: list[ReportLine] = field(default_factory=list)
    invalid_lines: list[tuple[int, str]] = field(default_factory=list)

    @property
    def records_count(self) -> int:
        """Total number of data lines, valid or not."""
        return len(self.lines) + len(self.invalid_lines)


def _resolve_columns(header: list[str]) -> dict[str, int]:
    normalized = [name.strip().lower() for name in header]
    columns: dict[str, int] = {}
    for key, names in _REPORT_COLUMNS.items():
        for name in names:
            if name in normalized:
                columns[key] = normalized.index(name)
                break
    missing = [key for key in ("address", "status") if key not in columns]
    if missing:
        raise ReportFormatError(f"Report header is missing columns: {', '.join(missing)}")
    return columns


def _cell(row: list[str], columns: dict[str, int], key: str) -> str:
    index = columns.get(key)
    if index is None or index >= len(row):
        return ""
    return row[index].strip()


def parse_report(text: str) -> ParsedReport:
    """Parse a confirmation report.

    Each physical line is one record split on the delimiter. Quotes have
    no special meaning, so a quote inside a message never spans lines.
    Malformed data lines are collected in invalid_lines and never abort
    the parse.

    Args:
        text: File content (a leading BOM is ignored).

    Returns:
        Parsed confirmations and malformed lines.

    Raises:
        ReportFormatError: If the file is empty or its header is unusable.
    """
    columns: dict[str, int] | None = None
    report = ParsedReport()

    for line_number, line in enumerate(text.lstrip("\ufeff").split("\n"), start=1):
        row = line.rstrip("\r").split(DELIMITER)
        if not any(cell.strip() for cell in row):
            continue
        if columns is None:
            columns = _resolve_columns(row)
            continue

        address = _cell(row, columns, "address")
        if not address:
            report.invalid_lines.append((line_number, "missing mailbox address"))
            continue
        try:
            outcome = ConfirmationOutcome.from_status(_cell(row, columns, "status"))
        except ValueError as e:
            report.invalid_lines.append((line_number, str(e)))
            continue

        report.lines.append(
            ReportLine(
                line_number=line_number,
                address=address,
                outcome=outcome,
                error_code=_cell(row, columns, "error_code") or None,
                error_message=_cell(row, columns, "error_message") or None,
            )
        )

    if columns is None:
        raise ReportFormatError("Report is empty")
    return report
