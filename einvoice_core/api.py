"""
FastAPI application for the e-invoice core.

Provides REST API endpoints for:
- Health check and format registry lookups
- Format detection and missing-field analysis
- Conversion of extraction records into e-invoice documents
- Single and batch validation against format profiles
"""

from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import API_HOST, API_PORT, MAX_BATCH_SIZE, RuleCategory, logger
from .exceptions import GenerationError, MappingError, UnknownFormatError
from .field_config import compute_missing_fields
from .generators import GeneratorFactory
from .mapper import to_canonical_invoice
from .pipeline import create_batch_report
from .registry import detect_format_from_data, get_all_formats, get_format_metadata, get_formats_by_country
from .schemas import BatchReport, FormatMetadata, GenerationResult, ValidationResult
from .validator import get_profile_validator, validate_invoice


# ============================================================================
# FastAPI App Configuration
# ============================================================================

app = FastAPI(
    title="E-Invoice Core API",
    description="""
    Multi-format e-invoice conversion and validation API.

    Extraction records (loose key/value invoice data) are normalized into a
    canonical invoice, validated against the business rules of the target
    format and serialized as XRechnung, PEPPOL BIS, Factur-X, FatturaPA,
    KSeF, NLCIUS or CIUS-RO documents.

    ## Features

    - **Convert**: Generate the XML (or Factur-X PDF) for a record
    - **Validate**: Check a record against a format profile
    - **Batch Processing**: Validate many records in a single request
    """,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
        "*",  # Allow all origins for development
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Request/Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    formats: int


class RecordRequest(BaseModel):
    """Request body carrying one extraction record."""
    record: dict[str, Any]
    output_format: Optional[str] = Field(None, description="Format id; detected from the record if omitted")

    model_config = {
        "json_schema_extra": {
            "examples": [{
                "record": {
                    "invoiceNumber": "INV-1",
                    "invoiceDate": "2024-01-15",
                    "sellerName": "S GmbH",
                    "sellerCountryCode": "DE",
                    "buyerName": "B AG",
                    "lineItems": [
                        {"description": "Widget", "quantity": 2, "unitPrice": 100, "taxRate": 19}
                    ],
                },
                "output_format": "xrechnung-cii",
            }]
        }
    }


class BatchRequest(BaseModel):
    """Request body for batch validation."""
    records: List[dict[str, Any]]
    output_format: Optional[str] = None
    generate: bool = False


class DetectResponse(BaseModel):
    """Detected format of a record."""
    format: str
    metadata: FormatMetadata


class ValidateResponse(BaseModel):
    """Validation outcome of one record."""
    output_format: str
    validation: ValidationResult
    missing_fields: List[str]


class ConvertResponse(BaseModel):
    """Generated document with the validation outcome of its invoice."""
    invoice_number: str
    output_format: str
    generation: GenerationResult
    validation: ValidationResult
    missing_fields: List[str]


class MissingFieldsResponse(BaseModel):
    """Required fields a record does not yet provide."""
    output_format: str
    missing_fields: List[str]


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns the service status, version and number of supported formats.
    """
    from . import __version__
    return HealthResponse(status="ok", version=__version__, formats=len(get_all_formats()))


@app.get("/formats", response_model=List[FormatMetadata], tags=["Formats"])
async def list_formats(country: Optional[str] = None) -> List[FormatMetadata]:
    """List the supported formats, optionally only those used in a country."""
    if country:
        return get_formats_by_country(country)
    return get_all_formats()


@app.get("/formats/{format_id}", response_model=FormatMetadata, tags=["Formats"])
async def get_format(format_id: str) -> FormatMetadata:
    """Get the metadata of one format."""
    return get_format_metadata(format_id)


@app.post("/detect-format", response_model=DetectResponse, tags=["Formats"])
async def detect_format(request: RecordRequest) -> DetectResponse:
    """
    Detect the most likely output format of a record.

    An explicit output_format in the request is returned unchanged.
    """
    format_id = request.output_format or detect_format_from_data(request.record)
    return DetectResponse(format=format_id, metadata=get_format_metadata(format_id))


@app.post(
    "/convert",
    response_model=ConvertResponse,
    tags=["Conversion"],
    summary="Generate an e-invoice document",
)
async def convert(request: RecordRequest) -> ConvertResponse:
    """
    Convert an extraction record into an e-invoice document.

    The document is generated even when business rules fail; the violations
    are returned alongside it. Factur-X PDFs are returned base64-encoded in
    generation.pdf_content.
    """
    invoice = to_canonical_invoice(request.record, request.output_format)
    logger.info(f"Converting invoice {invoice.invoice_number} to {invoice.output_format}")

    validation = validate_invoice(invoice)
    generation = GeneratorFactory.create(invoice.output_format).generate(invoice)

    return ConvertResponse(
        invoice_number=invoice.invoice_number,
        output_format=invoice.output_format,
        generation=generation,
        validation=validation,
        missing_fields=compute_missing_fields(request.record, invoice.output_format),
    )


@app.post(
    "/validate",
    response_model=ValidateResponse,
    tags=["Validation"],
    summary="Validate a record",
)
async def validate(request: RecordRequest) -> ValidateResponse:
    """
    Validate one extraction record against its format profile.

    **Rules Applied:**
    - EN 16931 core rules (mandatory fields, totals consistency, code lists)
    - Profile rules of the output format (BR-DE, PEPPOL, FX, FPA, KSEF, ...)
    """
    invoice = to_canonical_invoice(request.record, request.output_format)
    return ValidateResponse(
        output_format=invoice.output_format,
        validation=validate_invoice(invoice),
        missing_fields=compute_missing_fields(request.record, invoice.output_format),
    )


@app.post(
    "/validate-batch",
    response_model=BatchReport,
    tags=["Validation"],
    summary="Validate a batch of records",
)
async def validate_batch(request: BatchRequest) -> BatchReport:
    """
    Validate a list of extraction records.

    Each record is processed independently; records that cannot be mapped
    are reported as failed without affecting the others.
    """
    if not request.records:
        raise HTTPException(status_code=400, detail="No records submitted")
    if len(request.records) > MAX_BATCH_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"Batch too large: {len(request.records)} records (max {MAX_BATCH_SIZE})",
        )

    logger.info(f"Received batch validation request for {len(request.records)} records")
    return create_batch_report(request.records, request.output_format, request.generate)


@app.post("/missing-fields", response_model=MissingFieldsResponse, tags=["Validation"])
async def missing_fields(request: RecordRequest) -> MissingFieldsResponse:
    """List the required fields of the format that the record does not fill."""
    format_id = request.output_format or detect_format_from_data(request.record)
    return MissingFieldsResponse(
        output_format=format_id,
        missing_fields=compute_missing_fields(request.record, format_id),
    )


@app.get("/rules/{profile_id}", tags=["Validation"])
async def list_rules(profile_id: str):
    """
    List the validation rules of a profile.

    Returns the rule ids, severities and descriptions, organized by category.
    """
    validator = get_profile_validator(profile_id)

    rules_by_category = {}
    for category in RuleCategory:
        category_rules = validator.get_rules_by_category(category)
        if category_rules:
            rules_by_category[category.value] = [
                {"rule_id": rule.rule_id, "severity": rule.severity.value, "description": rule.description}
                for rule in category_rules
            ]

    return {
        "profile": profile_id,
        "name": validator.profile_name,
        "total_rules": len(validator.rules),
        "rules_by_category": rules_by_category,
    }


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(UnknownFormatError)
async def unknown_format_handler(request: Request, exc: UnknownFormatError):
    """Unknown format or profile ids are not found."""
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(MappingError)
async def mapping_error_handler(request: Request, exc: MappingError):
    """Records that cannot be mapped are unprocessable."""
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError):
    """Invoices missing an element the format cannot omit are unprocessable."""
    return JSONResponse(status_code=422, content={"detail": str(exc), "field": exc.field})


@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# ============================================================================
# Startup/Shutdown Events
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Log startup information."""
    logger.info(f"E-Invoice Core API starting on {API_HOST}:{API_PORT}")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("E-Invoice Core API shutting down")


# ============================================================================
# Main Entry Point
# ============================================================================

def run_server():
    """Run the API server using uvicorn."""
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    run_server()
