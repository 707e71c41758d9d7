"""Extraction run lifecycle: trigger, per-user scheduling, processing and abort."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from time import perf_counter
from typing import Any
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from broker_reports.config import Settings, get_settings
from broker_reports.dedupe.similarity import SemanticDedupeConfig, find_semantic_duplicate
from broker_reports.extraction.archive_to_report import ArchiveToReportAdapter
from broker_reports.extraction.extractor_interface import ExtractionAdapter
from broker_reports.extraction.fallback_adapter import FallbackReportAdapter
from broker_reports.extraction.llm_adapter import build_llm_adapter
from broker_reports.models.email_archive import EmailArchive
from broker_reports.models.extracted_report import ExtractedReport
from broker_reports.models.extraction_run import ExtractionRun
from broker_reports.normalization.dates import ensure_utc
from broker_reports.normalization.text import normalize_whitespace
from broker_reports.schemas.extraction import (
    AbortRunResult,
    ExtractedReportListResponse,
    ExtractionFailureSample,
    ExtractionRunFilters,
    ExtractionRunListResponse,
    ExtractionRunRead,
    ExtractionRunStats,
)
from broker_reports.services.archives import to_archive_record
from broker_reports.services.report_normalization import build_extracted_report, key_points_search_text
from broker_reports.services.reports import list_reports
from broker_reports.services.run_queue import UserRunQueue
from broker_reports.services.validation import (
    ExtractionRequestError,
    bounded_int,
    optional_text,
    require_text,
)

logger = logging.getLogger(__name__)

RUN_STATUS_QUEUED = "queued"
RUN_STATUS_RUNNING = "running"
RUN_STATUS_COMPLETED = "completed"
RUN_STATUS_FAILED = "failed"
RUN_STATUS_ABORTED = "aborted"
RUN_STATUSES = frozenset(
    {RUN_STATUS_QUEUED, RUN_STATUS_RUNNING, RUN_STATUS_COMPLETED, RUN_STATUS_FAILED, RUN_STATUS_ABORTED}
)
TERMINAL_RUN_STATUSES = frozenset({RUN_STATUS_COMPLETED, RUN_STATUS_FAILED, RUN_STATUS_ABORTED})

DEDUPE_EXACT_KEY = "exact_key"
DEDUPE_SEMANTIC_OVERLAP = "semantic_overlap"

MAX_FAILURE_SAMPLES = 25
MAX_RUN_LIMIT = 1000
MAX_ARCHIVE_IDS = 1000
RUN_LIST_DEFAULT_LIMIT = 20
RUN_LIST_MAX_LIMIT = 100
MAX_OFFSET = 10_000
DEFAULT_TRIGGER = "manual_api"
DEFAULT_ABORT_REASON = "Aborted by user"
ABORTED_BEFORE_START = "Aborted before start"
NO_REPORT_MESSAGE = "Extraction adapter returned no report"

__all__ = [
    "ExtractionOrchestrator",
    "ExtractionRequestError",
    "get_default_adapter",
    "serialize_run",
]


def get_default_adapter(settings: Settings | None = None) -> ExtractionAdapter:
    """Pick the configured extraction adapter once, at orchestrator construction."""

    active = settings or get_settings()
    if active.extraction_adapter == "llm":
        return build_llm_adapter(
            api_key=active.openai_api_key,
            model=active.openai_model,
            base_url=active.openai_base_url,
            timeout_seconds=active.openai_timeout_seconds,
        )
    if active.extraction_adapter == "rule_based":
        return ArchiveToReportAdapter()
    return FallbackReportAdapter()


def _utc_clock() -> datetime:
    return datetime.now(timezone.utc)


def _default_id_factory(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex}"


def _optional_utc(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


def serialize_run(run: ExtractionRun) -> ExtractionRunRead:
    return ExtractionRunRead(
        id=run.id,
        user_id=run.user_id,
        status=run.status,
        trigger=run.trigger,
        adapter_source=run.adapter_source,
        filters=ExtractionRunFilters(
            broker=run.broker_filter,
            requested_archive_ids=list(run.requested_archive_ids_json)
            if run.requested_archive_ids_json is not None
            else None,
            limit=run.requested_limit,
            include_already_extracted=bool(run.include_already_extracted),
        ),
        stats=ExtractionRunStats(
            candidate_archives=run.candidate_archives,
            processed_archives=run.processed_archives,
            extracted_reports=run.extracted_reports,
            skipped_archives=run.skipped_archives,
            failed_archives=run.failed_archives,
            duplicate_reports=run.duplicate_reports,
        ),
        error=run.error,
        failure_samples=[ExtractionFailureSample(**sample) for sample in (run.failure_samples_json or [])],
        created_at=ensure_utc(run.created_at),
        started_at=_optional_utc(run.started_at),
        abort_requested_at=_optional_utc(run.abort_requested_at),
        aborted_at=_optional_utc(run.aborted_at),
        abort_reason=run.abort_reason,
        abort_pending=bool(
            run.abort_requested_at is not None and run.aborted_at is None and run.status == RUN_STATUS_RUNNING
        ),
        completed_at=_optional_utc(run.completed_at),
        updated_at=ensure_utc(run.updated_at),
    )


def _mark_aborted(run: ExtractionRun, timestamp: datetime, reason: str | None) -> None:
    normalized_reason = normalize_whitespace(reason) or DEFAULT_ABORT_REASON
    run.status = RUN_STATUS_ABORTED
    run.abort_requested_at = run.abort_requested_at or timestamp
    run.abort_reason = normalized_reason
    run.error = normalized_reason
    run.aborted_at = timestamp
    run.completed_at = timestamp
    run.updated_at = timestamp


def _refresh_canonical(canonical: ExtractedReport, report: ExtractedReport, run_id: str, now: datetime) -> None:
    canonical.run_id = run_id
    canonical.archive_id = report.archive_id or canonical.archive_id
    canonical.broker = report.broker or canonical.broker
    canonical.company_canonical = report.company_canonical or canonical.company_canonical
    canonical.company_raw = report.company_raw or canonical.company_raw
    canonical.report_type = report.report_type or canonical.report_type
    canonical.title = report.title or canonical.title
    canonical.summary = report.summary or canonical.summary
    canonical.key_points_json = list(report.key_points_json) if report.key_points_json else canonical.key_points_json
    canonical.key_points_text = key_points_search_text(list(canonical.key_points_json or []))
    canonical.confidence = report.confidence if report.confidence is not None else canonical.confidence
    canonical.published_at = report.published_at or canonical.published_at
    canonical.updated_at = now


class ExtractionOrchestrator:
    """Owns extraction runs for every user of one store.

    Public methods only read or write run metadata and return immediately.
    Processing happens on the per-user run queue: runs of one user execute one
    at a time in submission order, runs of different users in parallel. State
    is committed after every archive so a crash leaves an inspectable,
    resumable run.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        adapter: ExtractionAdapter | None = None,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[str], str] | None = None,
        dedupe_config: SemanticDedupeConfig | None = None,
        max_workers: int | None = None,
    ) -> None:
        active_settings = settings or get_settings()
        self._session_factory = session_factory
        self._adapter = adapter or get_default_adapter(active_settings)
        self._clock = clock or _utc_clock
        self._new_id = id_factory or _default_id_factory
        self._dedupe_config = dedupe_config or SemanticDedupeConfig.from_settings(active_settings)
        self._default_run_limit = active_settings.default_run_limit
        self._state_lock = threading.Lock()
        self._queue = UserRunQueue(
            self._process_run,
            max_workers=max_workers or active_settings.extraction_max_workers,
        )

    @property
    def adapter(self) -> ExtractionAdapter:
        return self._adapter

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    # Public API

    def trigger_run(
        self,
        user_id: str,
        *,
        archive_ids: Iterable[str] | None = None,
        broker: str | None = None,
        limit: int | None = None,
        include_already_extracted: bool = False,
        trigger: str | None = None,
    ) -> ExtractionRunRead:
        """Create a queued run over the selected archives and schedule it.

        ``archive_ids=None`` selects every archive of the user; an empty list
        selects none. Archives are taken oldest-ingested first, then cut to
        ``limit``.
        """

        owner = require_text(user_id, "user_id")
        run_limit = bounded_int(limit, "limit", minimum=1, maximum=MAX_RUN_LIMIT, default=self._default_run_limit)
        broker_filter = optional_text(broker, "broker")
        requested_ids = self._validate_archive_ids(archive_ids)
        trigger_name = normalize_whitespace(trigger) or DEFAULT_TRIGGER

        with self._session_factory() as db:
            selected_ids = self._select_archive_ids(db, owner, requested_ids, broker_filter, run_limit)
            now = self._now()
            run = ExtractionRun(
                id=self._new_id("xrun"),
                user_id=owner,
                status=RUN_STATUS_QUEUED,
                trigger=trigger_name,
                adapter_source=self._adapter.source,
                broker_filter=broker_filter,
                requested_archive_ids_json=requested_ids,
                requested_limit=run_limit,
                include_already_extracted=bool(include_already_extracted),
                archive_ids_json=selected_ids,
                candidate_archives=len(selected_ids),
                processed_archives=0,
                extracted_reports=0,
                skipped_archives=0,
                failed_archives=0,
                duplicate_reports=0,
                failure_samples_json=[],
                created_at=now,
                updated_at=now,
            )
            db.add(run)
            db.commit()
            snapshot = serialize_run(run)

        logger.info(
            "extraction.run_queued run_id=%s user_id=%s candidate_archives=%d adapter=%s",
            snapshot.id,
            owner,
            snapshot.stats.candidate_archives,
            snapshot.adapter_source,
        )
        self._queue.submit(owner, snapshot.id)
        return snapshot

    def list_runs(
        self,
        user_id: str,
        *,
        status: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> ExtractionRunListResponse:
        """Return a user's runs, newest created first."""

        owner = require_text(user_id, "user_id")
        status_filter = normalize_whitespace(status).lower() or None
        if status_filter is not None and status_filter not in RUN_STATUSES:
            raise ExtractionRequestError("Invalid run status filter")
        page_limit = bounded_int(limit, "limit", minimum=1, maximum=RUN_LIST_MAX_LIMIT, default=RUN_LIST_DEFAULT_LIMIT)
        page_offset = bounded_int(offset, "offset", minimum=0, maximum=MAX_OFFSET, default=0)

        filters = [ExtractionRun.user_id == owner]
        if status_filter is not None:
            filters.append(ExtractionRun.status == status_filter)

        with self._session_factory() as db:
            total = int(db.scalar(select(func.count(ExtractionRun.id)).where(*filters)) or 0)
            rows = db.scalars(
                select(ExtractionRun)
                .where(*filters)
                .order_by(ExtractionRun.created_at.desc(), ExtractionRun.id.desc())
                .limit(page_limit)
                .offset(page_offset)
            ).all()
            items = [serialize_run(row) for row in rows]
        return ExtractionRunListResponse(items=items, total=total, limit=page_limit, offset=page_offset)

    def get_run_status(self, user_id: str, run_id: str) -> ExtractionRunRead | None:
        owner = require_text(user_id, "user_id")
        key = require_text(run_id, "run_id")
        with self._session_factory() as db:
            run = self._get_user_run(db, owner, key)
            return serialize_run(run) if run is not None else None

    def abort_run(self, user_id: str, run_id: str, reason: str | None = None) -> AbortRunResult | None:
        """Abort a queued run now, or ask a running run to stop at its next archive.

        Returns ``None`` when the run does not exist for the user. Terminal runs
        and repeated requests are reported without changing anything.
        """

        owner = require_text(user_id, "user_id")
        key = require_text(run_id, "run_id")
        abort_reason = normalize_whitespace(reason) or DEFAULT_ABORT_REASON

        with self._state_lock, self._session_factory() as db:
            run = self._get_user_run(db, owner, key)
            if run is None:
                return None
            if run.status in TERMINAL_RUN_STATUSES:
                return AbortRunResult(accepted=False, immediate=False, already_terminal=True, run=serialize_run(run))
            if run.status == RUN_STATUS_RUNNING and run.abort_requested_at is not None:
                return AbortRunResult(accepted=False, immediate=False, already_terminal=False, run=serialize_run(run))

            now = self._now()
            immediate = run.status == RUN_STATUS_QUEUED
            if immediate:
                _mark_aborted(run, now, abort_reason)
            else:
                run.abort_requested_at = now
                run.abort_reason = abort_reason
                run.updated_at = now
            db.commit()
            snapshot = serialize_run(run)

        if immediate:
            logger.info("extraction.run_aborted run_id=%s user_id=%s immediate=true", key, owner)
        else:
            logger.info("extraction.run_abort_requested run_id=%s user_id=%s", key, owner)
        return AbortRunResult(accepted=True, immediate=immediate, already_terminal=False, run=snapshot)

    def list_reports(self, user_id: str, **filters: Any) -> ExtractedReportListResponse:
        """Query stored reports; see :func:`broker_reports.services.reports.list_reports`."""

        with self._session_factory() as db:
            return list_reports(db, user_id, **filters)

    def resume_incomplete_runs(self) -> int:
        """Re-schedule persisted queued and running runs, oldest first."""

        with self._session_factory() as db:
            rows = db.execute(
                select(ExtractionRun.id, ExtractionRun.user_id)
                .where(ExtractionRun.status.in_((RUN_STATUS_QUEUED, RUN_STATUS_RUNNING)))
                .order_by(ExtractionRun.created_at.asc(), ExtractionRun.id.asc())
            ).all()
        for row in rows:
            self._queue.submit(row.user_id, row.id)
        return len(rows)

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        return self._queue.wait_until_idle(timeout)

    def close(self, *, wait: bool = True) -> None:
        self._queue.close(wait=wait)

    # Selection helpers

    @staticmethod
    def _validate_archive_ids(archive_ids: Iterable[str] | None) -> list[str] | None:
        if archive_ids is None:
            return None
        if isinstance(archive_ids, (str, bytes)) or not isinstance(archive_ids, (list, tuple, set, frozenset)):
            raise ExtractionRequestError("archive_ids must be a list of archive ids")
        if len(archive_ids) > MAX_ARCHIVE_IDS:
            raise ExtractionRequestError(f"archive_ids accepts at most {MAX_ARCHIVE_IDS} ids")
        cleaned: list[str] = []
        for entry in archive_ids:
            text = normalize_whitespace(entry)
            if text and text not in cleaned:
                cleaned.append(text)
        return cleaned

    @staticmethod
    def _select_archive_ids(
        db: Session,
        user_id: str,
        requested_ids: list[str] | None,
        broker_filter: str | None,
        limit: int,
    ) -> list[str]:
        if requested_ids is not None and not requested_ids:
            return []
        stmt = select(EmailArchive.id).where(EmailArchive.user_id == user_id)
        if requested_ids:
            stmt = stmt.where(EmailArchive.id.in_(requested_ids))
        if broker_filter:
            stmt = stmt.where(func.lower(func.trim(EmailArchive.broker)) == broker_filter.lower())
        stmt = stmt.order_by(EmailArchive.ingested_at.asc(), EmailArchive.id.asc()).limit(limit)
        return list(db.scalars(stmt).all())

    @staticmethod
    def _get_user_run(db: Session, user_id: str, run_id: str) -> ExtractionRun | None:
        return db.scalar(select(ExtractionRun).where(ExtractionRun.id == run_id, ExtractionRun.user_id == user_id))

    # Worker side

    def _process_run(self, run_id: str) -> None:
        total_started = perf_counter()
        try:
            started = self._start_run(run_id)
        except Exception as exc:
            logger.exception("extraction.run_failed run_id=%s stage=start", run_id)
            self._finalize_failed(run_id, exc)
            return
        if started is None:
            return
        user_id, archive_ids, start_index, include_already_extracted, resumed = started

        logger.info(
            "extraction.%s run_id=%s user_id=%s archives=%d start_index=%d",
            "run_resumed" if resumed else "run_started",
            run_id,
            user_id,
            len(archive_ids),
            start_index,
        )

        try:
            for archive_id in archive_ids[start_index:]:
                if not self._process_archive(run_id, user_id, archive_id, include_already_extracted):
                    self._finalize_aborted(run_id, total_started)
                    return
            self._finalize_completed(run_id, total_started)
        except Exception as exc:
            logger.exception(
                "extraction.run_failed run_id=%s user_id=%s elapsed_ms=%.2f",
                run_id,
                user_id,
                (perf_counter() - total_started) * 1000.0,
            )
            self._finalize_failed(run_id, exc)

    def _start_run(self, run_id: str) -> tuple[str, list[str], int, bool, bool] | None:
        """Move a run to ``running``; ``None`` means there is nothing to process.

        A resumed run restarts after the last archive with a recorded outcome
        (extracted, skipped or failed), so an archive interrupted mid-extraction
        is processed again.
        """

        with self._state_lock, self._session_factory() as db:
            run = db.get(ExtractionRun, run_id)
            if run is None or run.status in TERMINAL_RUN_STATUSES:
                return None
            now = self._now()
            if run.abort_requested_at is not None:
                _mark_aborted(run, now, run.abort_reason or ABORTED_BEFORE_START)
                db.commit()
                logger.info("extraction.run_aborted run_id=%s user_id=%s processed=0", run_id, run.user_id)
                return None
            resumed = run.status == RUN_STATUS_RUNNING
            start_index = 0
            if resumed:
                start_index = run.extracted_reports + run.skipped_archives + run.failed_archives
                run.processed_archives = start_index
            else:
                run.status = RUN_STATUS_RUNNING
                run.started_at = now
            run.updated_at = now
            db.commit()
            return (
                run.user_id,
                list(run.archive_ids_json or []),
                start_index,
                bool(run.include_already_extracted),
                resumed,
            )

    def _process_archive(self, run_id: str, user_id: str, archive_id: str, include_already_extracted: bool) -> bool:
        """Process one archive; ``False`` means an abort was observed before starting it."""

        with self._session_factory() as db:
            run = db.get(ExtractionRun, run_id)
            if run is None:
                raise RuntimeError(f"Extraction run {run_id} disappeared while processing")
            if run.abort_requested_at is not None or run.status in TERMINAL_RUN_STATUSES:
                return False

            now = self._now()
            run.processed_archives += 1
            run.updated_at = now
            archive = db.scalar(
                select(EmailArchive).where(EmailArchive.id == archive_id, EmailArchive.user_id == user_id)
            )
            if archive is None:
                run.skipped_archives += 1
                db.commit()
                return True
            if not include_already_extracted:
                already_extracted = db.scalar(
                    select(ExtractedReport.id)
                    .where(ExtractedReport.user_id == user_id, ExtractedReport.archive_id == archive_id)
                    .limit(1)
                )
                if already_extracted is not None:
                    run.skipped_archives += 1
                    db.commit()
                    return True
            record = to_archive_record(archive)
            db.commit()

        try:
            raw_report = self._adapter.extract(record, user_id, run_id)
            if raw_report is None:
                self._record_failure(run_id, archive_id, NO_REPORT_MESSAGE)
                return True
            report = build_extracted_report(
                raw_report,
                archive=record,
                run_id=run_id,
                user_id=user_id,
                report_id=self._new_id("xrep"),
                now=self._now(),
            )
        except Exception as exc:
            self._record_failure(run_id, archive_id, str(exc) or exc.__class__.__name__)
            return True

        self._store_report(run_id, report, include_already_extracted)
        return True

    def _store_report(self, run_id: str, report: ExtractedReport, include_already_extracted: bool) -> None:
        with self._session_factory() as db:
            run = db.get(ExtractionRun, run_id)
            if run is None:
                raise RuntimeError(f"Extraction run {run_id} disappeared while processing")
            now = self._now()
            exact_match = db.scalar(
                select(ExtractedReport)
                .where(
                    ExtractedReport.user_id == report.user_id,
                    ExtractedReport.duplicate_key == report.duplicate_key,
                    ExtractedReport.duplicate_of_report_id.is_(None),
                )
                .order_by(ExtractedReport.created_at.asc(), ExtractedReport.id.asc())
                .limit(1)
            )

            if exact_match is not None and include_already_extracted:
                _refresh_canonical(exact_match, report, run_id, now)
                run.extracted_reports += 1
                run.updated_at = now
                db.commit()
                return

            canonical = exact_match
            method = DEDUPE_EXACT_KEY
            if canonical is None:
                canonical = find_semantic_duplicate(
                    self._semantic_candidates(db, report),
                    report,
                    self._dedupe_config,
                )
                method = DEDUPE_SEMANTIC_OVERLAP
            if canonical is not None:
                report.duplicate_of_report_id = canonical.id
                report.duplicate_key = canonical.duplicate_key or report.duplicate_key
                report.dedupe_method = method
                run.duplicate_reports += 1

            db.add(report)
            run.extracted_reports += 1
            run.updated_at = now
            db.commit()

    def _semantic_candidates(self, db: Session, report: ExtractedReport) -> list[ExtractedReport]:
        window = timedelta(days=self._dedupe_config.window_days)
        published_at = ensure_utc(report.published_at)
        return list(
            db.scalars(
                select(ExtractedReport)
                .where(
                    ExtractedReport.user_id == report.user_id,
                    ExtractedReport.duplicate_of_report_id.is_(None),
                    ExtractedReport.published_at >= published_at - window,
                    ExtractedReport.published_at <= published_at + window,
                )
                .order_by(ExtractedReport.created_at.asc(), ExtractedReport.id.asc())
            ).all()
        )

    def _record_failure(self, run_id: str, archive_id: str, message: str) -> None:
        logger.warning("extraction.archive_failed run_id=%s archive_id=%s error=%s", run_id, archive_id, message)
        with self._session_factory() as db:
            run = db.get(ExtractionRun, run_id)
            if run is None:
                raise RuntimeError(f"Extraction run {run_id} disappeared while processing")
            run.failed_archives += 1
            samples = list(run.failure_samples_json or [])
            if len(samples) < MAX_FAILURE_SAMPLES:
                samples.append({"archive_id": archive_id, "message": message})
                run.failure_samples_json = samples
            run.updated_at = self._now()
            db.commit()

    def _finalize_completed(self, run_id: str, total_started: float) -> None:
        with self._state_lock, self._session_factory() as db:
            run = db.get(ExtractionRun, run_id)
            if run is None or run.status in TERMINAL_RUN_STATUSES:
                return
            now = self._now()
            if run.abort_requested_at is not None:
                _mark_aborted(run, now, run.abort_reason)
                status = RUN_STATUS_ABORTED
            else:
                run.status = RUN_STATUS_COMPLETED
                run.completed_at = now
                run.updated_at = now
                status = RUN_STATUS_COMPLETED
            db.commit()
            logger.info(
                (
                    "extraction.run_%s run_id=%s user_id=%s processed=%d extracted=%d "
                    "skipped=%d failed=%d duplicates=%d total_ms=%.2f"
                ),
                status,
                run_id,
                run.user_id,
                run.processed_archives,
                run.extracted_reports,
                run.skipped_archives,
                run.failed_archives,
                run.duplicate_reports,
                (perf_counter() - total_started) * 1000.0,
            )

    def _finalize_aborted(self, run_id: str, total_started: float) -> None:
        with self._state_lock, self._session_factory() as db:
            run = db.get(ExtractionRun, run_id)
            if run is None or run.status in TERMINAL_RUN_STATUSES:
                return
            _mark_aborted(run, self._now(), run.abort_reason)
            db.commit()
            logger.info(
                "extraction.run_aborted run_id=%s user_id=%s processed=%d total_ms=%.2f",
                run_id,
                run.user_id,
                run.processed_archives,
                (perf_counter() - total_started) * 1000.0,
            )

    def _finalize_failed(self, run_id: str, exc: Exception) -> None:
        with self._state_lock, self._session_factory() as db:
            run = db.get(ExtractionRun, run_id)
            if run is None or run.status in TERMINAL_RUN_STATUSES:
                return
            now = self._now()
            if run.abort_requested_at is not None:
                _mark_aborted(run, now, run.abort_reason)
            else:
                run.status = RUN_STATUS_FAILED
                run.error = str(exc) or exc.__class__.__name__
                run.completed_at = now
                run.updated_at = now
            db.commit()
