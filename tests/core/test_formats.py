"""Tests for registry file formats."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from annuairesync.core.formats import (
    BATCH_HEADER,
    ReportFormatError,
    batch_filename,
    batch_row,
    format_timestamp,
    parse_report,
    write_batch_file,
)
from annuairesync.core.types import (
    ConfirmationOutcome,
    MailboxSnapshot,
    MailboxType,
    Operation,
)

PERSONAL = MailboxSnapshot(
    ref="mbx-1",
    address="dr.martin@chu.example",
    mailbox_type=MailboxType.PERSONAL,
    national_id="10001234567",
    last_name="Martin",
    first_name="Claire",
    profession="10",
    specialty="SM26",
    finess="750000001",
    created_at=datetime(2026, 1, 15, 9, 30, tzinfo=UTC),
)

ORGANIZATIONAL = MailboxSnapshot(
    ref="mbx-2",
    address="secretariat@chu.example",
    mailbox_type=MailboxType.ORGANIZATIONAL,
    finess="750000001",
    organization_name="CHU Example",
    hidden_from_directory=True,
)


class TestBatchFilename:
    """Tests for batch_filename function."""

    def test_format(self) -> None:
        """Name should contain operator, date and time."""
        now = datetime(2026, 10, 18, 2, 0, 0, tzinfo=UTC)
        assert batch_filename("OP1", now) == "flux_annuaire_OP1_20261018_020000.csv"

    def test_converted_to_utc(self) -> None:
        """Local times should be converted to UTC."""
        now = datetime(2026, 10, 18, 4, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert batch_filename("OP1", now) == "flux_annuaire_OP1_20261018_020000.csv"


class TestFormatTimestamp:
    """Tests for format_timestamp function."""

    def test_utc(self) -> None:
        """UTC times should use the Z suffix."""
        assert format_timestamp(datetime(2026, 1, 15, 9, 30, tzinfo=UTC)) == "2026-01-15T09:30:00Z"

    def test_naive_treated_as_utc(self) -> None:
        """Naive times should be read as UTC."""
        assert format_timestamp(datetime(2026, 1, 15, 9, 30)) == "2026-01-15T09:30:00Z"

    def test_offset_converted(self) -> None:
        """Offset times should be converted to UTC."""
        value = datetime(2026, 1, 15, 10, 30, 12, 500, tzinfo=timezone(timedelta(hours=1)))
        assert format_timestamp(value) == "2026-01-15T09:30:12Z"


class TestBatchRow:
    """Tests for batch_row function."""

    def test_personal_mailbox(self) -> None:
        """Personal mailbox should carry owner attributes."""
        row = batch_row(Operation.PUBLISH, PERSONAL)
        assert row == [
            "publish",
            "dr.martin@chu.example",
            "PERS",
            "10001234567",
            "Martin",
            "Claire",
            "10",
            "SM26",
            "750000001",
            "NON",
            "2026-01-15T09:30:00Z",
        ]
        assert len(row) == len(BATCH_HEADER)

    def test_organizational_mailbox_on_red_list(self) -> None:
        """Missing attributes should be empty and the red list flag OUI."""
        row = batch_row(
            Operation.UNPUBLISH,
            ORGANIZATIONAL,
            fallback_created_at=datetime(2026, 3, 1, 8, 0, tzinfo=UTC),
        )
        assert row[0] == "unpublish"
        assert row[2] == "ORG"
        assert row[3:8] == ["", "", "", "", ""]
        assert row[9] == "OUI"
        assert row[10] == "2026-03-01T08:00:00Z"

    def test_no_creation_date(self) -> None:
        """Without any date the column should be empty."""
        row = batch_row(Operation.UPDATE, ORGANIZATIONAL)
        assert row[10] == ""


class TestWriteBatchFile:
    """Tests for write_batch_file function."""

    def test_writes_header_and_rows(self, tmp_path: Path) -> None:
        """File should start with the header, one line per publication."""
        publications = [
            SimpleNamespace(operation="publish", snapshot=PERSONAL, created_at=None),
            SimpleNamespace(
                operation="update",
                snapshot=ORGANIZATIONAL,
                created_at=datetime(2026, 3, 1, 8, 0, tzinfo=UTC),
            ),
        ]
        path = tmp_path / "batch.csv"

        count = write_batch_file(path, publications)  # type: ignore[arg-type]

        assert count == 2
        lines = path.read_text(encoding="utf-8").splitlines()
        assert lines[0] == ";".join(BATCH_HEADER)
        assert lines[1].startswith("publish;dr.martin@chu.example;PERS;")
        assert lines[2] == (
            "update;secretariat@chu.example;ORG;;;;;;750000001;OUI;2026-03-01T08:00:00Z"
        )

    def test_empty_batch(self, tmp_path: Path) -> None:
        """An empty batch should only contain the header."""
        path = tmp_path / "batch.csv"
        assert write_batch_file(path, []) == 0
        assert path.read_text(encoding="utf-8") == ";".join(BATCH_HEADER) + "\n"


class TestParseReport:
    """Tests for parse_report function."""

    def test_success_and_error_lines(self) -> None:
        """Should parse outcomes and error details."""
        report = parse_report(
            "adresse_bal;statut;code_erreur;message_erreur\n"
            "dr.martin@chu.example;OK;;\n"
            "unknown@x.example;ERROR;E42;rejected\n"
        )
        assert report.records_count == 2
        assert report.invalid_lines == []
        ok, error = report.lines
        assert ok.address == "dr.martin@chu.example"
        assert ok.outcome is ConfirmationOutcome.SUCCESS
        assert ok.error_code is None
        assert ok.error_message is None
        assert ok.line_number == 2
        assert error.outcome is ConfirmationOutcome.ERROR
        assert error.error_code == "E42"
        assert error.error_message == "rejected"

    def test_bom_and_header_case(self) -> None:
        """A leading BOM and upper-case headers should be accepted."""
        report = parse_report("\ufeffADRESSE_BAL;Statut\na@chu.example;ERREUR\n")
        assert len(report.lines) == 1
        assert report.lines[0].outcome is ConfirmationOutcome.ERROR

    def test_legacy_column_names(self) -> None:
        """English column names should be accepted."""
        report = parse_report("email;status;error_code;error_message\na@chu.example;success;;\n")
        assert report.lines[0].address == "a@chu.example"
        assert report.lines[0].outcome is ConfirmationOutcome.SUCCESS

    def test_column_order_follows_header(self) -> None:
        """Columns should be located by name, not position."""
        report = parse_report("statut;message_erreur;adresse_bal\nERROR;bad finess;a@chu.example\n")
        line = report.lines[0]
        assert line.address == "a@chu.example"
        assert line.error_message == "bad finess"
        assert line.error_code is None

    def test_malformed_lines_counted(self) -> None:
        """Malformed lines should be collected without aborting."""
        report = parse_report(
            "adresse_bal;statut;code_erreur;message_erreur\n"
            ";OK;;\n"
            "a@chu.example;MAYBE;;\n"
            "b@chu.example;OK;;\n"
        )
        assert [line.address for line in report.lines] == ["b@chu.example"]
        assert [number for number, _ in report.invalid_lines] == [2, 3]
        assert report.records_count == 3

    def test_blank_lines_skipped(self) -> None:
        """Blank lines should be ignored."""
        report = parse_report("adresse_bal;statut\n\na@chu.example;OK\n\n")
        assert report.records_count == 1

    def test_header_only(self) -> None:
        """A header-only report should be valid and empty."""
        report = parse_report("adresse_bal;statut;code_erreur;message_erreur\n")
        assert report.lines == []
        assert report.records_count == 0

    def test_empty_file_rejected(self) -> None:
        """An empty file should raise ReportFormatError."""
        with pytest.raises(ReportFormatError):
            parse_report("")

    def test_missing_status_column_rejected(self) -> None:
        """A header without a status column should raise ReportFormatError."""
        with pytest.raises(ReportFormatError, match="status"):
            parse_report("adresse_bal;code_erreur\na@chu.example;E1\n")

    def test_quotes_are_literal(self) -> None:
        """A quote in a message should stay on its own line."""
        report = parse_report(
            "adresse_bal;statut;code_erreur;message_erreur\n"
            'a@chu.example;ERROR;E1;"bad value\n'
            "b@chu.example;OK;;\n"
        )
        assert report.records_count == 2
        error, ok = report.lines
        assert error.error_message == '"bad value'
        assert ok.address == "b@chu.example"
        assert ok.line_number == 3

    def test_oversized_field(self) -> None:
        """A very long message should not stop the lines after it."""
        message = "x" * 200_000
        report = parse_report(
            "adresse_bal;statut;code_erreur;message_erreur\n"
            f"a@chu.example;ERROR;E1;{message}\n"
            "b@chu.example;OK;;\n"
        )
        assert report.invalid_lines == []
        assert report.lines[0].error_message == message
        assert report.lines[1].address == "b@chu.example"

    def test_crlf_line_endings(self) -> None:
        """Windows line endings should be stripped."""
        report = parse_report("adresse_bal;statut;code_erreur\r\na@chu.example;ERROR;E1\r\n")
        assert report.lines[0].error_code == "E1"
        assert report.lines[0].line_number == 2
