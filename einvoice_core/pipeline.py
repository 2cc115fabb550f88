"""
Record processing pipeline.

This module turns raw extraction records into canonical invoices, validates
them against their format's profile and optionally generates the documents.
It produces both per-record results and aggregated batch summaries.
"""

from collections import Counter
from collections.abc import Mapping
from typing import Any, Optional

from .config import logger
from .exceptions import EInvoiceError
from .field_config import compute_missing_fields
from .generators import GeneratorFactory
from .mapper import to_canonical_invoice
from .schemas import BatchReport, BatchSummary, RecordResult
from .validator import validate_invoice


def _record_number(raw: Any) -> Optional[str]:
    if isinstance(raw, Mapping):
        value = raw.get("invoiceNumber") or raw.get("invoice_number")
        if value is not None:
            return str(value)
    return None


def process_record(
    raw: Any,
    output_format: Optional[str] = None,
    generate: bool = False,
    index: int = 0,
) -> RecordResult:
    """
    Process a single raw extraction record.

    Errors are captured in the returned RecordResult and never raised, so one
    bad record cannot abort a batch.

    Args:
        raw: Raw key/value record from the extraction step
        output_format: Target format id (detected from the record if omitted)
        generate: Also produce the XML/PDF document
        index: Position of the record in its batch

    Returns:
        RecordResult with the invoice, validation, missing fields and document
    """
    try:
        invoice = to_canonical_invoice(raw, output_format)
        validation = validate_invoice(invoice, invoice.output_format)
        missing = compute_missing_fields(raw, invoice.output_format)
        generation = None
        if generate:
            generation = GeneratorFactory.create(invoice.output_format).generate(invoice)
    except EInvoiceError as e:
        logger.error(f"Record {index} ({_record_number(raw)}) could not be processed: {e}")
        return RecordResult(
            index=index,
            invoice_number=_record_number(raw),
            output_format=output_format,
            success=False,
            error=str(e),
        )
    except Exception as e:
        logger.exception(f"Unexpected error processing record {index}")
        return RecordResult(
            index=index,
            invoice_number=_record_number(raw),
            output_format=output_format,
            success=False,
            error=f"Unexpected error: {e}",
        )

    return RecordResult(
        index=index,
        invoice_number=invoice.invoice_number or None,
        output_format=invoice.output_format,
        success=True,
        invoice=invoice,
        validation=validation,
        generation=generation,
        missing_fields=missing,
    )


def process_batch(
    records: list[Any],
    output_format: Optional[str] = None,
    generate: bool = False,
) -> tuple[list[RecordResult], BatchSummary]:
    """
    Process a batch of records and produce an aggregated summary.

    Each record is processed independently; a failing record is counted in
    failed_records and the rest of the batch continues.

    Args:
        records: Raw extraction records
        output_format: Target format id applied to every record
        generate: Also produce the documents

    Returns:
        Tuple of (list of per-record results, batch summary)
    """
    logger.info(f"Processing batch of {len(records)} records")

    results: list[RecordResult] = []
    all_errors: list[str] = []
    all_warnings: list[str] = []
    formats: list[str] = []

    for i, raw in enumerate(records):
        result = process_record(raw, output_format, generate, index=i)
        results.append(result)
        if result.validation is not None:
            all_errors.extend(result.validation.error_ids)
            all_warnings.extend(result.validation.warning_ids)
        if result.success and result.output_format:
            formats.append(result.output_format)

    valid_count = sum(1 for r in results if r.is_valid)
    failed_count = sum(1 for r in results if not r.success)
    invalid_count = len(results) - valid_count - failed_count

    summary = BatchSummary(
        total_records=len(records),
        valid_records=valid_count,
        invalid_records=invalid_count,
        failed_records=failed_count,
        error_counts=dict(Counter(all_errors)),
        warning_counts=dict(Counter(all_warnings)),
        format_counts=dict(Counter(formats)),
    )

    logger.info(
        f"Batch complete: {valid_count} valid, {invalid_count} invalid, {failed_count} failed"
    )

    return results, summary


def create_batch_report(
    records: list[Any],
    output_format: Optional[str] = None,
    generate: bool = False,
) -> BatchReport:
    """
    Create a complete report for a batch of records.

    Returns:
        BatchReport containing summary and per-record results
    """
    results, summary = process_batch(records, output_format, generate)
    return BatchReport(summary=summary, results=results)


def get_top_errors(summary: BatchSummary, n: int = 5) -> list[tuple[str, int]]:
    """
    Get the top N most frequent rule violations from a summary.

    Args:
        summary: BatchSummary to analyze
        n: Number of top errors to return

    Returns:
        List of (rule_id, count) tuples, sorted by count descending
    """
    sorted_errors = sorted(
        summary.error_counts.items(),
        key=lambda x: x[1],
        reverse=True
    )
    return sorted_errors[:n]


def format_summary_text(summary: BatchSummary) -> str:
    """
    Format a BatchSummary as human-readable text for CLI output.

    Args:
        summary: BatchSummary to format

    Returns:
        Formatted string for display
    """
    lines = [
        "=" * 50,
        "VALIDATION SUMMARY",
        "=" * 50,
        f"Total records processed:  {summary.total_records}",
        f"Valid records:            {summary.valid_records}",
        f"Invalid records:          {summary.invalid_records}",
    ]

    if summary.failed_records > 0:
        lines.append(f"Failed records:           {summary.failed_records}")
    lines.append("")

    if summary.format_counts:
        lines.append("Formats:")
        lines.append("-" * 40)
        for format_id, count in sorted(summary.format_counts.items()):
            lines.append(f"  {format_id}: {count}")
        lines.append("")

    if summary.error_counts:
        lines.append("Top Error Types:")
        lines.append("-" * 40)
        for rule_id, count in get_top_errors(summary):
            lines.append(f"  {rule_id}: {count}")
        lines.append("")

    if summary.warning_counts:
        lines.append("Warnings:")
        lines.append("-" * 40)
        for rule_id, count in sorted(summary.warning_counts.items(), key=lambda x: -x[1]):
            lines.append(f"  {rule_id}: {count}")
        lines.append("")

    lines.append("=" * 50)

    return "\n".join(lines)
