"""
Tests for the record processing pipeline.

These tests verify per-record error capture, batch aggregation and the
summary text shown by the CLI.
"""

import pytest

from einvoice_core.pipeline import (
    create_batch_report,
    format_summary_text,
    get_top_errors,
    process_batch,
    process_record,
)
from einvoice_core.schemas import BatchSummary


# ============================================================================
# Single Records
# ============================================================================

class TestProcessRecord:
    """Tests for processing one record."""

    def test_valid_record(self, xrechnung_record):
        result = process_record(xrechnung_record)

        assert result.success
        assert result.is_valid
        assert result.invoice_number == "INV-1"
        assert result.output_format == "xrechnung-cii"
        assert result.missing_fields == []
        assert result.generation is None

    def test_generate(self, xrechnung_record):
        result = process_record(xrechnung_record, generate=True)
        assert result.generation is not None
        assert "INV-1" in result.generation.xml_content

    def test_invalid_record_still_succeeds(self, inv1_record):
        result = process_record(inv1_record)
        assert result.success
        assert not result.is_valid
        assert "BR-DE-15" in result.validation.error_ids
        assert "buyerReference" in result.missing_fields

    def test_unknown_format_captured(self, inv1_record):
        result = process_record(inv1_record, output_format="edifact", index=4)

        assert not result.success
        assert not result.is_valid
        assert result.index == 4
        assert result.invoice_number == "INV-1"
        assert "edifact" in result.error

    def test_non_mapping_captured(self):
        result = process_record(["not", "a", "record"])
        assert not result.success
        assert result.invoice_number is None
        assert "mapping" in result.error

    def test_out_of_range_amount_captured(self, inv1_record):
        raw = {**inv1_record, "lineItems": [{"description": "Huge", "unitPrice": "1e30", "taxRate": 19}]}
        result = process_record(raw)

        assert not result.success
        assert result.invoice_number == "INV-1"
        assert "lineItems.unitPrice" in result.error
        assert "Unexpected error" not in result.error

    def test_generation_error_captured(self, xrechnung_record):
        raw = {**xrechnung_record, "invoiceDate": "01/02/2024"}
        result = process_record(raw, generate=True)
        assert not result.success
        assert result.error


# ============================================================================
# Batches
# ============================================================================

class TestProcessBatch:
    """Tests for batch processing and summaries."""

    def test_mixed_batch(self, xrechnung_record, inv1_record, ksef_record):
        records = [xrechnung_record, inv1_record, "garbage", ksef_record]
        results, summary = process_batch(records)

        assert [r.index for r in results] == [0, 1, 2, 3]
        assert summary.total_records == 4
        assert summary.valid_records == 2
        assert summary.invalid_records == 1
        assert summary.failed_records == 1
        assert summary.format_counts == {"xrechnung-cii": 2, "ksef": 1}
        assert summary.error_counts["BR-DE-15"] == 1
        assert summary.warning_counts == {"KSEF-08": 1}

    def test_failed_record_does_not_abort_batch(self, xrechnung_record):
        results, summary = process_batch([None, xrechnung_record])
        assert not results[0].success
        assert results[1].is_valid
        assert summary.valid_records == 1

    def test_output_format_applies_to_every_record(self, xrechnung_record):
        results, summary = process_batch([xrechnung_record, xrechnung_record], output_format="xrechnung-ubl")
        assert {r.output_format for r in results} == {"xrechnung-ubl"}
        assert summary.format_counts == {"xrechnung-ubl": 2}

    def test_empty_batch(self):
        results, summary = process_batch([])
        assert results == []
        assert summary.total_records == 0
        assert summary.valid_records == 0
        assert summary.invalid_records == 0

    def test_batch_report(self, xrechnung_record):
        report = create_batch_report([xrechnung_record], generate=True)
        assert report.summary.valid_records == 1
        assert report.results[0].generation.file_name.endswith(".xml")


# ============================================================================
# Summary Text
# ============================================================================

class TestFormatSummaryText:
    """Tests for summary text formatting."""

    def test_format_with_errors(self):
        summary = BatchSummary(
            total_records=10,
            valid_records=7,
            invalid_records=2,
            failed_records=1,
            error_counts={"BR-DE-15": 2, "BR-CO-15": 1},
            warning_counts={"KSEF-08": 3},
            format_counts={"xrechnung-cii": 6, "ksef": 3},
        )

        text = format_summary_text(summary)

        assert "Total records processed:  10" in text
        assert "Failed records:           1" in text
        assert "xrechnung-cii: 6" in text
        assert "BR-DE-15: 2" in text
        assert "KSEF-08: 3" in text

    def test_format_no_errors(self):
        summary = BatchSummary(total_records=5, valid_records=5, invalid_records=0)

        text = format_summary_text(summary)

        assert "Total records processed:  5" in text
        assert "Failed records" not in text
        assert "Top Error Types" not in text

    @pytest.mark.parametrize("n,expected", [
        (1, [("B", 5)]),
        (5, [("B", 5), ("A", 2), ("C", 1)]),
    ])
    def test_top_errors(self, n, expected):
        summary = BatchSummary(
            total_records=3,
            valid_records=0,
            invalid_records=3,
            error_counts={"A": 2, "B": 5, "C": 1},
        )
        assert get_top_errors(summary, n) == expected
