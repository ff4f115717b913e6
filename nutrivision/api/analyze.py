"""REST API endpoints for food photo analysis and history.

Thin layer over PipelineOrchestrator.analyze and the record store's
history query.
"""

from datetime import date
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, File, Path, Query, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from nutrivision.domain.analysis.outcome import (
    AnalysisOutcome,
    Completed,
    Failed,
    NoConfidentDetection,
)
from nutrivision.domain.shared.errors import ErrorKind, StoreError
from nutrivision.infrastructure.factory import Services

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["analysis"])


class CandidateOut(BaseModel):
    label: str
    score: float


class AnalyzeResponse(BaseModel):
    """Response body for POST /analyze."""

    status: str
    record: Optional[dict[str, Any]] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    image_address: Optional[str] = None
    candidates: Optional[list[CandidateOut]] = None


class HistoryResponse(BaseModel):
    records: list[dict[str, Any]]


def get_services(request: Request) -> Services:
    services: Optional[Services] = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized")
    return services


def status_code_for(outcome: AnalysisOutcome) -> int:
    """HTTP status for an outcome.

    NoConfidentDetection and Completed are 200, validation failures 400,
    supersession 409, every other failure 502.
    """
    if isinstance(outcome, Failed):
        if outcome.kind is ErrorKind.VALIDATION:
            return 400
        if outcome.kind is ErrorKind.SUPERSEDED:
            return 409
        return 502
    return 200


def to_response(outcome: AnalysisOutcome) -> AnalyzeResponse:
    if isinstance(outcome, Completed):
        return AnalyzeResponse(
            status="completed",
            record=outcome.record.to_document(),
            image_address=outcome.record.image_address,
            candidates=[
                CandidateOut(label=c.label, score=c.score)
                for c in (outcome.candidates.candidates if outcome.candidates else ())
            ],
        )
    if isinstance(outcome, NoConfidentDetection):
        return AnalyzeResponse(
            status="no_confident_detection",
            image_address=outcome.image_address,
            message="No food recognized with enough confidence. Try a clearer photo.",
        )
    return AnalyzeResponse(
        status="failed",
        error_kind=outcome.kind.value,
        message=outcome.message,
    )


@router.post("/analyze/{user_id}", response_model=AnalyzeResponse)
async def analyze_image(
    user_id: str = Path(..., description="Owner of the analysis"),
    file: UploadFile = File(..., description="Food photo"),
    session_id: Optional[str] = Query(None, description="Supersession scope"),
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Analyze a food photo.

    Example:
        ```bash
        curl -X POST http://localhost:8080/api/v1/analyze/user123 \\
          -F "file=@/path/to/burrito.jpg"
        ```
    """
    content = await file.read()
    outcome = await services.orchestrator.analyze(
        user_id,
        content,
        file.filename or "image",
        content_type=file.content_type,
        session_id=session_id,
    )
    body = to_response(outcome)
    return JSONResponse(
        status_code=status_code_for(outcome),
        content=body.model_dump(mode="json", exclude_none=True),
    )


@router.get("/history/{user_id}", response_model=HistoryResponse)
async def history(
    user_id: str = Path(..., description="Owner of the records"),
    on_date: Optional[date] = Query(None, alias="date", description="YYYY-MM-DD"),
    services: Services = Depends(get_services),
) -> Any:
    """User's analysis records, newest first."""
    try:
        records = await services.record_store.list_by_user(user_id, on_date=on_date)
    except StoreError as e:
        logger.error("History query failed", user_id=user_id, error=e.message)
        return JSONResponse(
            status_code=502,
            content={"error_kind": e.kind.value, "message": e.message},
        )
    return HistoryResponse(records=[r.to_document() for r in records])
