"""Extraction run and extracted report routes."""

from datetime import datetime

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session

from broker_reports.db.dependencies import get_db
from broker_reports.routers.dependencies import get_orchestrator, get_user_id
from broker_reports.schemas.common import ApiResponse
from broker_reports.schemas.extraction import (
    AbortRunRequest,
    AbortRunResult,
    ExtractedReportListResponse,
    ExtractedReportRead,
    ExtractionRunListResponse,
    ExtractionRunRead,
    ExtractionRunTriggerRequest,
)
from broker_reports.services.extraction_runs import ExtractionOrchestrator, ExtractionRequestError
from broker_reports.services.reports import get_report

router = APIRouter()


@router.post("/extraction/runs", response_model=ApiResponse[ExtractionRunRead], status_code=202)
def trigger_extraction_run(
    payload: ExtractionRunTriggerRequest | None = Body(default=None),
    user_id: str = Depends(get_user_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> ApiResponse[ExtractionRunRead]:
    """Queue a run; progress is observed by polling the run status."""

    request = payload or ExtractionRunTriggerRequest()
    try:
        run = orchestrator.trigger_run(
            user_id,
            archive_ids=request.archive_ids,
            broker=request.broker,
            limit=request.limit,
            include_already_extracted=request.include_already_extracted,
            trigger=request.trigger,
        )
    except ExtractionRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ApiResponse(data=run)


@router.get("/extraction/runs", response_model=ApiResponse[ExtractionRunListResponse])
def get_extraction_runs(
    status: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user_id: str = Depends(get_user_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> ApiResponse[ExtractionRunListResponse]:
    try:
        payload = orchestrator.list_runs(user_id, status=status, limit=limit, offset=offset)
    except ExtractionRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ApiResponse(data=payload)


@router.get("/extraction/runs/{run_id}", response_model=ApiResponse[ExtractionRunRead])
def get_extraction_run(
    run_id: str = Path(..., min_length=1),
    user_id: str = Depends(get_user_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> ApiResponse[ExtractionRunRead]:
    try:
        run = orchestrator.get_run_status(user_id, run_id)
    except ExtractionRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if run is None:
        raise HTTPException(status_code=404, detail="Extraction run not found")
    return ApiResponse(data=run)


@router.post("/extraction/runs/{run_id}/abort", response_model=ApiResponse[AbortRunResult])
def abort_extraction_run(
    run_id: str = Path(..., min_length=1),
    payload: AbortRunRequest | None = Body(default=None),
    user_id: str = Depends(get_user_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> ApiResponse[AbortRunResult]:
    """Abort a queued run immediately or ask a running run to stop."""

    try:
        result = orchestrator.abort_run(user_id, run_id, reason=payload.reason if payload else None)
    except ExtractionRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if result is None:
        raise HTTPException(status_code=404, detail="Extraction run not found")
    return ApiResponse(data=result)


@router.get("/extracted-reports", response_model=ApiResponse[ExtractedReportListResponse])
def get_extracted_reports(
    broker: str | None = Query(default=None),
    report_type: str | None = Query(default=None, alias="reportType"),
    run_id: str | None = Query(default=None, alias="runId"),
    company: str | None = Query(default=None),
    q: str | None = Query(default=None),
    published_from: datetime | None = Query(default=None, alias="publishedFrom"),
    published_to: datetime | None = Query(default=None, alias="publishedTo"),
    include_duplicates: bool = Query(default=True, alias="includeDuplicates"),
    limit: int = Query(default=30, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user_id: str = Depends(get_user_id),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> ApiResponse[ExtractedReportListResponse]:
    """List extracted reports, newest published first."""

    try:
        payload = orchestrator.list_reports(
            user_id,
            broker=broker,
            report_type=report_type,
            run_id=run_id,
            company=company,
            query=q,
            published_from=published_from,
            published_to=published_to,
            include_duplicates=include_duplicates,
            limit=limit,
            offset=offset,
        )
    except ExtractionRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ApiResponse(data=payload)


@router.get("/extracted-reports/{report_id}", response_model=ApiResponse[ExtractedReportRead])
def get_extracted_report(
    report_id: str = Path(...),
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> ApiResponse[ExtractedReportRead]:
    try:
        report = get_report(db, user_id, report_id)
    except ExtractionRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if report is None:
        raise HTTPException(status_code=404, detail="Extracted report not found")
    return ApiResponse(data=report)
