"""
Command-line interface for the e-invoice core.

Provides these commands:
- convert: Generate e-invoice documents from extraction records
- validate: Validate extraction records against their format's profile
- batch: Validate (and optionally generate) a batch with a summary report
- formats, detect, missing-fields, rules: Registry and profile lookups
"""

import json
from pathlib import Path
from typing import Any, Optional

import typer

from .config import logger
from .exceptions import EInvoiceError
from .field_config import compute_missing_fields
from .pipeline import create_batch_report, format_summary_text, process_record
from .registry import detect_format_from_data, get_all_formats, get_formats_by_country
from .schemas import BatchReport, RecordResult
from .validator import get_profile_validator


# Create Typer app
app = typer.Typer(
    name="einvoice",
    help="Multi-format e-invoice conversion and validation CLI",
    add_completion=False,
)

# Large document payloads are written as files, not into JSON reports
_REPORT_EXCLUDE = {"results": {"__all__": {"generation": {"xml_content", "pdf_content"}}}}


def _input_option() -> Any:
    return typer.Option(
        ...,
        "--input",
        "-i",
        help="Input JSON file with one extraction record or a list of records",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    )


def _format_option(help_text: str = "Output format id (detected per record if omitted)") -> Any:
    return typer.Option(None, "--format", "-f", help=help_text)


def _load_records(input_file: Path) -> list[Any]:
    """Read a JSON file holding a record or a list of records."""
    with open(input_file, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        data = [data]
    return data


def _write_document(result: RecordResult, output_dir: Path) -> Path:
    """Write the generated document of a record; hybrid formats write the PDF."""
    generation = result.generation
    path = output_dir / generation.file_name
    if generation.pdf_content is not None:
        path.write_bytes(generation.pdf_content)
    else:
        path.write_text(generation.xml_content, encoding="utf-8")
    return path


def _write_report(report: BatchReport, path: Path) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report.model_dump(mode="json", exclude=_REPORT_EXCLUDE), f, indent=2)


def _echo_record_issues(results: list[RecordResult], limit: int = 5) -> None:
    """Print the errors of the first invalid or failed records."""
    invalid_results = [r for r in results if not r.is_valid]
    if not invalid_results:
        return
    typer.echo("\nInvalid Records:")
    for r in invalid_results[:limit]:
        typer.echo(f"  #{r.index} {r.invoice_number or '(no number)'} [{r.output_format or '?'}]:")
        if r.error:
            typer.echo(f"    - {r.error}")
            continue
        for violation in r.validation.errors:
            typer.echo(f"    - {violation.rule_id}: {violation.message}")
    if len(invalid_results) > limit:
        typer.echo(f"  ... and {len(invalid_results) - limit} more invalid records")


@app.command()
def convert(
    input_file: Path = _input_option(),
    output_format: Optional[str] = _format_option(),
    output_dir: Path = typer.Option(
        Path("."),
        "--output-dir",
        "-o",
        help="Directory for the generated documents",
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
) -> None:
    """
    Convert extraction records into e-invoice documents.

    Documents are generated even when business rules fail; the violations
    are listed so they can be fixed in the source data.
    """
    typer.echo(f"Converting records from: {input_file}")

    try:
        records = _load_records(input_file)
        output_dir.mkdir(parents=True, exist_ok=True)

        failures = 0
        for i, raw in enumerate(records):
            result = process_record(raw, output_format, generate=True, index=i)
            if not result.success:
                failures += 1
                typer.echo(f"  [FAILED] #{i}: {result.error}", err=True)
                continue

            path = _write_document(result, output_dir)
            status = "OK" if result.validation.valid else "INVALID"
            typer.echo(f"  [{status}] {result.invoice_number} -> {path.name}")
            for violation in result.validation.errors:
                typer.echo(f"    - {violation.rule_id}: {violation.message}")
            for note in result.generation.validation_warnings:
                typer.echo(f"    ! {note}")

        typer.echo(f"\n[OK] Wrote {len(records) - failures} document(s) to: {output_dir}")
        if failures:
            raise typer.Exit(code=1)

    except typer.Exit:
        raise
    except json.JSONDecodeError as e:
        typer.echo(f"Error: Invalid JSON in input file: {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"Error during conversion: {e}", err=True)
        logger.exception("Conversion failed")
        raise typer.Exit(code=1)


@app.command()
def validate(
    input_file: Path = _input_option(),
    output_format: Optional[str] = _format_option(),
    report: Path = typer.Option(
        "validation_report.json",
        "--report",
        "-r",
        help="Output validation report JSON file path",
    ),
    fail_on_invalid: bool = typer.Option(
        False,
        "--fail-on-invalid",
        help="Exit with non-zero status if any records are invalid",
    ),
) -> None:
    """
    Validate extraction records from a JSON file.

    Each record is mapped to a canonical invoice and checked against the
    rules of its output format's profile.
    """
    typer.echo(f"Validating records from: {input_file}")
    _run_batch(input_file, output_format, report, fail_on_invalid)


@app.command()
def batch(
    input_file: Path = _input_option(),
    output_format: Optional[str] = _format_option(),
    report: Path = typer.Option(
        "batch_report.json",
        "--report",
        "-r",
        help="Output batch report JSON file path",
    ),
    generate: bool = typer.Option(
        False,
        "--generate",
        "-g",
        help="Also generate the documents",
    ),
    output_dir: Path = typer.Option(
        Path("."),
        "--output-dir",
        "-o",
        help="Directory for generated documents (with --generate)",
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    fail_on_invalid: bool = typer.Option(
        False,
        "--fail-on-invalid",
        help="Exit with non-zero status if any records are invalid",
    ),
) -> None:
    """
    Process a batch of records and write a summary report.

    Each record is processed independently; a failing record does not stop
    the rest of the batch.
    """
    typer.echo(f"Processing batch from: {input_file}")
    _run_batch(input_file, output_format, report, fail_on_invalid, generate, output_dir)


def _run_batch(
    input_file: Path,
    output_format: Optional[str],
    report: Path,
    fail_on_invalid: bool,
    generate: bool = False,
    output_dir: Optional[Path] = None,
) -> None:
    try:
        records = _load_records(input_file)
        if not records:
            typer.echo("No records found in input file.", err=True)
            raise typer.Exit(code=1)

        batch_report = create_batch_report(records, output_format, generate)
        _write_report(batch_report, report)

        if generate:
            output_dir.mkdir(parents=True, exist_ok=True)
            written = [
                _write_document(r, output_dir)
                for r in batch_report.results
                if r.generation is not None
            ]
            typer.echo(f"Wrote {len(written)} document(s) to: {output_dir}")

        summary = batch_report.summary
        typer.echo("\n" + format_summary_text(summary))
        typer.echo(f"\n[OK] Report saved to: {report}")
        _echo_record_issues(batch_report.results)

        if fail_on_invalid and (summary.invalid_records > 0 or summary.failed_records > 0):
            raise typer.Exit(code=1)

    except typer.Exit:
        raise
    except json.JSONDecodeError as e:
        typer.echo(f"Error: Invalid JSON in input file: {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"Error during validation: {e}", err=True)
        logger.exception("Batch processing failed")
        raise typer.Exit(code=1)


@app.command()
def formats(
    country: Optional[str] = typer.Option(
        None,
        "--country",
        "-c",
        help="Only list formats used in this ISO country code",
    ),
) -> None:
    """List the supported output formats."""
    metas = get_formats_by_country(country) if country else get_all_formats()
    if not metas:
        typer.echo(f"No e-invoice formats registered for country: {country}")
        return
    for meta in metas:
        typer.echo(f"  {meta.id:<16} {meta.display_name:<28} {meta.syntax_type:<10} {', '.join(meta.countries)}")


@app.command()
def detect(input_file: Path = _input_option()) -> None:
    """Detect the most likely output format of each record."""
    try:
        records = _load_records(input_file)
    except json.JSONDecodeError as e:
        typer.echo(f"Error: Invalid JSON in input file: {e}", err=True)
        raise typer.Exit(code=1)

    for i, raw in enumerate(records):
        detected = detect_format_from_data(raw)
        number = raw.get("invoiceNumber", "") if isinstance(raw, dict) else ""
        typer.echo(f"  #{i} {number}: {detected or 'not a record'}")


@app.command("missing-fields")
def missing_fields(
    input_file: Path = _input_option(),
    output_format: Optional[str] = _format_option("Format id to check against (detected if omitted)"),
) -> None:
    """List the fields a record must still provide for its format."""
    try:
        records = _load_records(input_file)
        for i, raw in enumerate(records):
            format_id = output_format or detect_format_from_data(raw)
            missing = compute_missing_fields(raw, format_id)
            if missing:
                typer.echo(f"  #{i} [{format_id}] missing: {', '.join(missing)}")
            else:
                typer.echo(f"  #{i} [{format_id}] complete")
    except json.JSONDecodeError as e:
        typer.echo(f"Error: Invalid JSON in input file: {e}", err=True)
        raise typer.Exit(code=1)
    except EInvoiceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


@app.command()
def rules(
    profile: str = typer.Option(..., "--profile", "-p", help="Profile (format) id"),
) -> None:
    """List the business rules of a validation profile."""
    try:
        validator = get_profile_validator(profile)
    except EInvoiceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"{validator.profile_name} ({len(validator.rules)} rules)")
    for rule in validator.rules:
        typer.echo(f"  {rule.rule_id:<28} {rule.severity.value:<8} {rule.category.value:<16} {rule.description}")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__
    typer.echo(f"E-Invoice Core v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
