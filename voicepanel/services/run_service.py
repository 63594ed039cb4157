# voicepanel/services/run_service.py
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from voicepanel.core.errors import InvalidRunStateError, NotFoundError
from voicepanel.models.run_model import RunStatus, TestRun, VariantResponse
from voicepanel.schemas.run_schema import RunCreate
from voicepanel.services.aggregation import ScoredResponse, benchmark_label, benchmark_score, segment, summarize
from voicepanel.services.progress import ProgressStore, RunProgressState
from voicepanel.services.record_store import RecordStore, SqlRecordStore
from voicepanel.services.run_orchestrator import RunOrchestrator, RunOutcome
from voicepanel.services.run_supervisor import RunJob, RunSupervisor

logger = logging.getLogger(__name__)

RunExecutor = Callable[[UUID], Awaitable[Any]]


def _require_run(store: RecordStore, run_id: UUID) -> TestRun:
    run = store.get_run(run_id)
    if not run:
        raise NotFoundError("Test", run_id)
    return run


# ---------- Create / read / delete ----------

def create_run(store: RecordStore, payload: RunCreate) -> TestRun:
    """Create a draft test; every referenced persona must exist."""
    found = {p.id for p in store.get_personas(payload.persona_ids)}
    missing = [pid for pid in payload.persona_ids if pid not in found]
    if missing:
        raise NotFoundError("Persona", ", ".join(str(m) for m in missing))

    run = TestRun(
        project_id=payload.project_id,
        name=payload.name,
        test_type=payload.test_type,
        concept_text=payload.concept_text,
        attachments=[a.model_dump() for a in payload.attachments],
        persona_ids=list(payload.persona_ids),
        variants_per_persona=payload.variants_per_persona,
        variant_config=payload.variant_config.model_dump(),
        status=RunStatus.DRAFT,
        responses_completed=0,
        responses_total=0,
    )
    run = store.add_run(run)
    logger.info(f"Created test {run.id} ({payload.test_type}) for {len(payload.persona_ids)} persona(s)")
    return run


def get_run(store: RecordStore, run_id: UUID) -> TestRun:
    return _require_run(store, run_id)


def list_runs(store: RecordStore, project_id: Optional[UUID] = None) -> List[TestRun]:
    return store.list_runs(project_id)


def delete_run(store: RecordStore, progress: ProgressStore, run_id: UUID) -> None:
    if not store.delete_run(run_id):
        raise NotFoundError("Test", run_id)
    progress.remove(run_id)
    logger.info(f"Deleted test {run_id}")


# ---------- Execution ----------

async def execute_run(
    run_id: UUID,
    respondent: Any,
    progress: ProgressStore,
    session_factory: Callable[[], Session],
) -> RunOutcome:
    """Background entry point: runs on its own session, independent of the request that started it."""
    db = session_factory()
    try:
        orchestrator = RunOrchestrator(SqlRecordStore(db), respondent, progress)
        return await orchestrator.execute(run_id)
    finally:
        db.close()


def start_run(
    store: RecordStore,
    respondent: Any,
    progress: ProgressStore,
    supervisor: RunSupervisor,
    run_id: UUID,
    executor: RunExecutor,
) -> Tuple[TestRun, RunJob]:
    """
    Move a draft test to running and hand its execution to the supervisor.

    Validation happens synchronously so the caller sees rejections; the
    batches themselves run after this returns.
    """
    run = RunOrchestrator(store, respondent, progress).start(run_id)
    job = supervisor.submit(run_id, lambda: executor(run_id))
    return run, job


# ---------- Progress ----------

def get_progress(store: RecordStore, progress: ProgressStore, run_id: UUID) -> RunProgressState:
    """
    Progress from the in-process channel, or from the persisted run when the
    channel has no entry (e.g. after a restart). Stored row count wins over
    the denormalized counter in that case.
    """
    current = progress.get(run_id)
    if current is not None:
        return current

    run = _require_run(store, run_id)
    status = RunStatus(run.status)
    completed = run.responses_completed or 0
    if status != RunStatus.DRAFT:
        completed = store.count_responses(run_id)
    return RunProgressState(completed=completed, total=run.responses_total or 0, status=status.value)


# ---------- Results ----------

def _scored(store: RecordStore, run_id: UUID) -> List[ScoredResponse]:
    return [ScoredResponse.from_row(r) for r in store.list_responses(run_id)]


def get_aggregate(store: RecordStore, run_id: UUID) -> Dict[str, Any]:
    run = _require_run(store, run_id)
    status = RunStatus(run.status)
    if status != RunStatus.COMPLETE:
        raise InvalidRunStateError(run_id, status.value, f"Test {run_id} is {status.value}; results are available once complete")

    result = store.get_aggregate(run_id)
    if not result:
        raise NotFoundError("Results for test", run_id)

    score = benchmark_score(result.summary)
    return {
        "test_id": run_id,
        "summary": result.summary,
        "segments": result.segments,
        "themes": result.themes,
        "benchmark_score": score,
        "benchmark_label": benchmark_label(score),
        "created_at": result.created_at,
    }


def get_live_summary(store: RecordStore, run_id: UUID) -> Dict[str, Any]:
    """Summary, segments and benchmark over whatever responses are stored so far."""
    run = _require_run(store, run_id)
    responses = _scored(store, run_id)
    summary = summarize(responses)
    score = benchmark_score(summary)
    return {
        "test_id": run_id,
        "status": RunStatus(run.status).value,
        "summary": summary,
        "segments": segment(responses),
        "benchmark_score": score,
        "benchmark_label": benchmark_label(score),
    }


def _response_out(response: VariantResponse) -> Dict[str, Any]:
    variant = response.variant
    return {
        "id": response.id,
        "test_id": response.test_id,
        "variant_id": response.variant_id,
        "response_text": response.response_text,
        "sentiment_score": response.sentiment_score,
        "engagement_likelihood": response.engagement_likelihood,
        "share_likelihood": response.share_likelihood,
        "comprehension_score": response.comprehension_score,
        "reaction_tags": list(response.reaction_tags or []),
        "scores_parsed": bool(response.scores_parsed),
        "processing_time_ms": response.processing_time_ms,
        "model_used": response.model_used,
        "created_at": response.created_at,
        "variant_name": getattr(variant, "variant_name", None),
        "age_actual": getattr(variant, "age_actual", None),
        "primary_platform": getattr(variant, "primary_platform", None),
        "attitude_score": getattr(variant, "attitude_score", None),
        "engagement_level": getattr(variant, "engagement_level", None),
        "location_variant": getattr(variant, "location_variant", None),
    }


def list_responses(
    store: RecordStore,
    run_id: UUID,
    sentiment: Optional[str] = None,
    platform: Optional[str] = None,
    attitude: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, Any]:
    _require_run(store, run_id)
    rows, total = store.query_responses(
        run_id, sentiment=sentiment, platform=platform, attitude=attitude, limit=limit, offset=offset
    )
    return {
        "responses": [_response_out(r) for r in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
