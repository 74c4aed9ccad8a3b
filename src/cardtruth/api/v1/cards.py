"""Card truth endpoints: ingestion paths, confirmation, ledger and merged truth."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, Request, status

from cardtruth.api.deps import get_truth_service
from cardtruth.config import Settings, get_settings
from cardtruth.core.exceptions import StatementProcessingError
from cardtruth.schemas.card import CardStatus, ConvergentTruth
from cardtruth.schemas.ingestion import ConfirmationData, ParseResult
from cardtruth.schemas.layers import InferredData, StructuredData
from cardtruth.schemas.requests import LedgerRequest, SummaryRequest
from cardtruth.services.truth import CardTruthService

router = APIRouter(prefix="/cards", tags=["cards"])


async def _read_upload(request: Request, settings: Settings) -> bytes:
    """Read the raw request body with a strict size cap (no disk spooling)."""
    max_bytes = settings.upload_max_size_mb * 1024 * 1024
    buf = bytearray()
    async for chunk in request.stream():
        if not chunk:
            continue
        if len(buf) + len(chunk) > max_bytes:
            raise StatementProcessingError(
                "API_002",
                {"max_size_mb": settings.upload_max_size_mb},
                http_status=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            )
        buf.extend(chunk)

    if not buf:
        raise StatementProcessingError("API_001", http_status=status.HTTP_400_BAD_REQUEST)
    return bytes(buf)


def _mime_type(request: Request) -> str | None:
    content_type = (request.headers.get("content-type") or "").split(";")[0].strip().lower()
    return content_type or None


@router.post(
    "/{card_id}/summary",
    response_model=ParseResult,
    summary="Paste statement summary",
)
async def ingest_summary(
    card_id: str,
    body: SummaryRequest,
    service: CardTruthService = Depends(get_truth_service),
) -> ParseResult:
    """Parse pasted summary text into the summary layer."""
    return await service.ingest_summary(card_id, body.text)


@router.post(
    "/{card_id}/structured",
    response_model=StructuredData,
    summary="Upload CSV/OFX export",
    description="""
    Raw body upload of a CSV/TSV or OFX/QFX statement export.

    ## Headers
    - `X-Filename`: original file name, used to detect the format

    ## Error Codes
    - FMT_001: Not a CSV or OFX/QFX file
    - API_001: Empty body
    - API_002: File too large
    """,
)
async def ingest_structured(
    card_id: str,
    request: Request,
    filename: Annotated[str | None, Header(alias="X-Filename")] = None,
    service: CardTruthService = Depends(get_truth_service),
    settings: Settings = Depends(get_settings),
) -> StructuredData:
    """Parse a structured export into the structured layer."""
    data = await _read_upload(request, settings)
    return await service.ingest_structured(card_id, data, filename)


@router.post(
    "/{card_id}/statements",
    response_model=ConfirmationData,
    summary="Upload statement for confirmation",
    description="""
    Raw body upload of a PDF or image statement. Nothing is stored: the
    extracted values are returned for the user to confirm via `/confirm`.

    ## Headers
    - `X-Filename`: original file name
    - `X-PDF-Password`: optional password for encrypted PDFs

    ## Error Codes
    - EXT_003: Too little text extracted
    - EXT_004 / EXT_005: Password required / incorrect
    - VAL_001: No balance, minimum or due date found
    - FEAT_001: Statement ingestion disabled
    """,
)
async def ingest_statement(
    card_id: str,
    request: Request,
    filename: Annotated[str | None, Header(alias="X-Filename")] = None,
    password: Annotated[
        str | None,
        Header(alias="X-PDF-Password", description="Optional password for encrypted PDFs."),
    ] = None,
    service: CardTruthService = Depends(get_truth_service),
    settings: Settings = Depends(get_settings),
) -> ConfirmationData:
    """Extract a statement and return the values awaiting confirmation."""
    data = await _read_upload(request, settings)
    return await service.ingest_statement(card_id, data, filename, _mime_type(request), password)


@router.post(
    "/{card_id}/confirm",
    response_model=ConvergentTruth,
    summary="Confirm extracted statement values",
)
async def confirm_statement(
    card_id: str,
    confirmation: ConfirmationData,
    service: CardTruthService = Depends(get_truth_service),
) -> ConvergentTruth:
    """Store confirmed values as the PDF layer and re-merge."""
    return await service.apply_confirmed(card_id, confirmation)


@router.post(
    "/{card_id}/ledger",
    response_model=ConvergentTruth,
    summary="Record the card ledger",
)
async def record_ledger(
    card_id: str,
    body: LedgerRequest,
    service: CardTruthService = Depends(get_truth_service),
) -> ConvergentTruth:
    """Store ledger transactions and reconcile."""
    return await service.record_ledger(card_id, body.period_start, body.period_end, body.transactions)


@router.post(
    "/{card_id}/inferred",
    response_model=ConvergentTruth,
    summary="Record inferred estimates",
)
async def record_inferred(
    card_id: str,
    inferred: InferredData,
    service: CardTruthService = Depends(get_truth_service),
) -> ConvergentTruth:
    return await service.record_inferred(card_id, inferred)


@router.post(
    "/{card_id}/accuracy",
    response_model=ConvergentTruth,
    summary="Apply the monthly accuracy bump",
)
async def update_accuracy(
    card_id: str,
    month: Annotated[date | None, Query(description="Any date in the month to credit")] = None,
    service: CardTruthService = Depends(get_truth_service),
) -> ConvergentTruth:
    return await service.update_monthly_accuracy(card_id, month)


@router.get(
    "/{card_id}/truth",
    response_model=ConvergentTruth,
    summary="Get merged card truth",
    responses={404: {"description": "No truth merged for this card yet (CARD_001)"}},
)
async def get_truth(
    card_id: str,
    service: CardTruthService = Depends(get_truth_service),
) -> ConvergentTruth:
    return await service.get_truth(card_id)


@router.get(
    "/{card_id}/status",
    response_model=CardStatus,
    summary="Get card status",
)
async def get_status(
    card_id: str,
    service: CardTruthService = Depends(get_truth_service),
) -> CardStatus:
    return await service.get_status(card_id)
