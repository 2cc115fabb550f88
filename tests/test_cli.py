"""
Tests for the command-line interface.
"""

import json

import pytest
from typer.testing import CliRunner

from einvoice_core import __version__
from einvoice_core.cli import app

runner = CliRunner()


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def records_file(tmp_path, xrechnung_record, inv1_record, ksef_record):
    minimal = {**inv1_record, "invoiceNumber": "INV-2"}
    path = tmp_path / "records.json"
    path.write_text(json.dumps([xrechnung_record, minimal, ksef_record]), encoding="utf-8")
    return path


@pytest.fixture
def single_record_file(tmp_path, xrechnung_record):
    path = tmp_path / "record.json"
    path.write_text(json.dumps(xrechnung_record), encoding="utf-8")
    return path


# ============================================================================
# Commands
# ============================================================================

class TestValidateCommand:
    """Tests for the validate command."""

    def test_writes_report(self, records_file, tmp_path):
        report = tmp_path / "report.json"
        result = runner.invoke(app, ["validate", "-i", str(records_file), "-r", str(report)])

        assert result.exit_code == 0, result.output
        assert "VALIDATION SUMMARY" in result.output
        assert "BR-DE-15" in result.output

        data = json.loads(report.read_text(encoding="utf-8"))
        assert data["summary"]["total_records"] == 3
        assert data["summary"]["valid_records"] == 2
        assert data["results"][0]["invoice"]["invoice_number"] == "INV-1"

    def test_fail_on_invalid(self, records_file, tmp_path):
        report = tmp_path / "report.json"
        result = runner.invoke(
            app, ["validate", "-i", str(records_file), "-r", str(report), "--fail-on-invalid"]
        )
        assert result.exit_code == 1

    def test_single_record(self, single_record_file, tmp_path):
        report = tmp_path / "report.json"
        result = runner.invoke(
            app, ["validate", "-i", str(single_record_file), "-r", str(report), "--fail-on-invalid"]
        )
        assert result.exit_code == 0, result.output

    def test_invalid_json(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        result = runner.invoke(app, ["validate", "-i", str(bad), "-r", str(tmp_path / "r.json")])
        assert result.exit_code == 1
        assert "Invalid JSON" in result.output

    def test_missing_input(self, tmp_path):
        result = runner.invoke(app, ["validate", "-i", str(tmp_path / "nope.json")])
        assert result.exit_code != 0


class TestConvertCommand:
    """Tests for the convert command."""

    def test_writes_documents(self, single_record_file, tmp_path):
        out = tmp_path / "out"
        result = runner.invoke(app, ["convert", "-i", str(single_record_file), "-o", str(out)])

        assert result.exit_code == 0, result.output
        files = list(out.iterdir())
        assert len(files) == 1
        assert files[0].suffix == ".xml"
        assert "INV-1" in files[0].read_text(encoding="utf-8")

    def test_facturx_writes_pdf(self, single_record_file, tmp_path):
        out = tmp_path / "out"
        result = runner.invoke(
            app, ["convert", "-i", str(single_record_file), "-f", "facturx-en16931", "-o", str(out)]
        )

        assert result.exit_code == 0, result.output
        pdf = next(out.iterdir())
        assert pdf.suffix == ".pdf"
        assert pdf.read_bytes().startswith(b"%PDF")

    def test_unknown_format_fails(self, single_record_file, tmp_path):
        result = runner.invoke(
            app, ["convert", "-i", str(single_record_file), "-f", "edifact", "-o", str(tmp_path)]
        )
        assert result.exit_code == 1
        assert "FAILED" in result.output


class TestBatchCommand:
    """Tests for the batch command."""

    def test_generate(self, records_file, tmp_path):
        report = tmp_path / "batch.json"
        out = tmp_path / "docs"
        result = runner.invoke(
            app, ["batch", "-i", str(records_file), "-r", str(report), "-g", "-o", str(out)]
        )

        assert result.exit_code == 0, result.output
        assert len(list(out.iterdir())) == 3

        data = json.loads(report.read_text(encoding="utf-8"))
        generation = data["results"][0]["generation"]
        assert generation["file_name"].endswith(".xml")
        assert "xml_content" not in generation
        assert data["summary"]["format_counts"] == {"xrechnung-cii": 2, "ksef": 1}

    def test_empty_batch(self, tmp_path):
        empty = tmp_path / "empty.json"
        empty.write_text("[]", encoding="utf-8")
        result = runner.invoke(app, ["batch", "-i", str(empty), "-r", str(tmp_path / "r.json")])
        assert result.exit_code == 1
        assert "No records found" in result.output


class TestLookupCommands:
    """Tests for the registry and profile lookups."""

    def test_formats(self):
        result = runner.invoke(app, ["formats"])
        assert result.exit_code == 0
        assert "xrechnung-cii" in result.output
        assert "cius-ro" in result.output

    def test_formats_by_country(self):
        result = runner.invoke(app, ["formats", "-c", "IT"])
        assert "fatturapa" in result.output
        assert "ksef" not in result.output

    def test_detect(self, records_file):
        result = runner.invoke(app, ["detect", "-i", str(records_file)])
        assert result.exit_code == 0
        assert "#2 FV/2024/03/001: ksef" in result.output

    def test_missing_fields(self, records_file):
        result = runner.invoke(app, ["missing-fields", "-i", str(records_file)])
        assert result.exit_code == 0
        assert "#0 [xrechnung-cii] complete" in result.output
        assert "buyerReference" in result.output

    def test_rules(self):
        result = runner.invoke(app, ["rules", "-p", "ksef"])
        assert result.exit_code == 0
        assert "KSeF FA(2)" in result.output
        assert "KSEF-08" in result.output
        assert "warning" in result.output

    def test_rules_unknown_profile(self):
        result = runner.invoke(app, ["rules", "-p", "edifact"])
        assert result.exit_code == 1

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert f"E-Invoice Core v{__version__}" in result.output
