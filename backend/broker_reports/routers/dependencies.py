"""Shared router dependencies."""

from fastapi import Header, HTTPException, Request

from broker_reports.services.extraction_runs import ExtractionOrchestrator


def get_user_id(x_user_id: str = Header(..., alias="X-User-Id", min_length=1, max_length=255)) -> str:
    """Caller identity; authentication happens upstream of this service."""

    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="X-User-Id header is required")
    return user_id


def get_orchestrator(request: Request) -> ExtractionOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Extraction orchestrator is not running")
    return orchestrator
