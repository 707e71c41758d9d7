"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from broker_reports.config import get_settings
from broker_reports.db.session import get_session_factory
from broker_reports.extraction.llm_adapter import LLMExtractionError
from broker_reports.routers import archives, extraction
from broker_reports.schemas.common import ApiResponse
from broker_reports.services.extraction_runs import ExtractionOrchestrator

logger = logging.getLogger(__name__)


def _start_orchestrator() -> ExtractionOrchestrator | None:
    """Build the orchestrator and pick up runs interrupted by the last shutdown."""

    try:
        orchestrator = ExtractionOrchestrator(get_session_factory(), settings=get_settings())
    except LLMExtractionError:
        logger.exception("Extraction adapter is misconfigured; extraction routes will return 503.")
        return None
    try:
        resumed = orchestrator.resume_incomplete_runs()
    except Exception:
        logger.exception("Resuming incomplete extraction runs failed; continuing without resume.")
    else:
        if resumed:
            logger.info("extraction.runs_resumed count=%d", resumed)
    return orchestrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.orchestrator = _start_orchestrator()
    try:
        yield
    finally:
        orchestrator = app.state.orchestrator
        if orchestrator is not None:
            orchestrator.close(wait=False)


app = FastAPI(title=get_settings().app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(archives.router, tags=["archives"])
app.include_router(extraction.router, tags=["extraction"])


@app.get("/health", response_model=ApiResponse[dict[str, str]])
def health() -> ApiResponse[dict[str, str]]:
    """Simple health check endpoint."""

    return ApiResponse(data={"status": "ok"})
