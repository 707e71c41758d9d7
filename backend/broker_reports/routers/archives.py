"""Archived email routes."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from broker_reports.db.dependencies import get_db
from broker_reports.routers.dependencies import get_user_id
from broker_reports.schemas.archive import EmailArchiveBatchCreate, EmailArchiveListResponse, EmailArchiveRead
from broker_reports.schemas.common import ApiResponse
from broker_reports.services.archives import create_archives, list_archives
from broker_reports.services.validation import ExtractionRequestError

router = APIRouter(prefix="/archives")


@router.post("", response_model=ApiResponse[list[EmailArchiveRead]], status_code=201)
def post_archives(
    payload: EmailArchiveBatchCreate,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> ApiResponse[list[EmailArchiveRead]]:
    """Store archived broker emails handed over by the mailbox ingester."""

    try:
        created = create_archives(db, user_id, payload.archives)
    except ExtractionRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return ApiResponse(data=created)


@router.get("", response_model=ApiResponse[EmailArchiveListResponse])
def get_archives(
    broker: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> ApiResponse[EmailArchiveListResponse]:
    try:
        payload = list_archives(db, user_id, broker=broker or None, limit=limit, offset=offset)
    except ExtractionRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ApiResponse(data=payload)
