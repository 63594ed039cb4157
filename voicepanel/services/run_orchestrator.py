# voicepanel/services/run_orchestrator.py
"""
Batch pipeline that collects one reaction per variant for a test run.

Variants are drained in batches of `batch_size` concurrent calls. A batch is
awaited in full before the next one starts, and `batch_delay_ms` is slept
between batches; that pause is the only rate limiter against the provider.
Every reaction is persisted as soon as it arrives. After the last batch the
stored responses are aggregated and the run is marked complete.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional, Sequence
from uuid import UUID

from openai import OpenAIError

from voicepanel.core.config import settings
from voicepanel.core.errors import GenerationUnavailableError, InvalidRunStateError, NotFoundError
from voicepanel.models.persona_model import PersonaVariant
from voicepanel.models.run_model import FailureKind, RunStatus, TestRun
from voicepanel.services.aggregation import ScoredResponse, build_aggregate
from voicepanel.services.progress import ProgressStore, RunProgressState
from voicepanel.services.record_store import RecordStore

logger = logging.getLogger(__name__)

PROVIDER_ERRORS = (OpenAIError, GenerationUnavailableError)


@dataclass
class RunOutcome:
    run_id: UUID
    status: str
    completed: int
    total: int
    batches: int
    failure_kind: Optional[str] = None
    error: Optional[str] = None


def plan_batches(items: Sequence[Any], batch_size: int) -> List[List[Any]]:
    size = max(1, batch_size)
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunOrchestrator:
    def __init__(
        self,
        store: RecordStore,
        respondent: Any,
        progress: ProgressStore,
        batch_size: Optional[int] = None,
        batch_delay_ms: Optional[int] = None,
        theme_mode: Optional[str] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.respondent = respondent
        self.progress = progress
        self.batch_size = batch_size or settings.RUN_BATCH_SIZE
        self.batch_delay_ms = settings.RUN_BATCH_DELAY_MS if batch_delay_ms is None else batch_delay_ms
        self.theme_mode = theme_mode
        self._sleep = sleep

    # ---------- Start ----------

    def start(self, run_id: UUID) -> TestRun:
        """
        Validate a draft run and move it to running.

        Rejects runs that are not in draft, carry no concept, or whose personas
        have no variants. On success the progress entry is created with
        completed=0 and total=number of variants.
        """
        run = self.store.get_run(run_id)
        if not run:
            raise NotFoundError("Test", run_id)
        if RunStatus(run.status) != RunStatus.DRAFT:
            raise InvalidRunStateError(run_id, RunStatus(run.status).value,
                                       f"Test {run_id} is {RunStatus(run.status).value}; only draft tests can be started")
        if not (run.concept_text or "").strip() and not run.attachments:
            raise InvalidRunStateError(run_id, RunStatus.DRAFT.value, f"Test {run_id} has no concept to evaluate")

        variants = self.store.list_variants_for_personas(run.persona_ids or [])
        if not variants:
            raise InvalidRunStateError(run_id, RunStatus.DRAFT.value,
                                       f"Test {run_id} has no persona variants; generate variants first")

        total = len(variants)
        run = self.store.update_run(
            run_id,
            status=RunStatus.RUNNING,
            responses_total=total,
            responses_completed=0,
            started_at=_utcnow(),
            failure_kind=None,
            failure_message=None,
        )
        self.progress.set(run_id, RunProgressState(completed=0, total=total, status=RunStatus.RUNNING.value))
        logger.info(f"Test {run_id} started with {total} variants")
        return run

    # ---------- Execute ----------

    async def execute(self, run_id: UUID) -> RunOutcome:
        """Drain all variants of a running test; never raises for provider failures."""
        run = self.store.get_run(run_id)
        if not run:
            raise NotFoundError("Test", run_id)
        if RunStatus(run.status) != RunStatus.RUNNING:
            raise InvalidRunStateError(run_id, RunStatus(run.status).value)

        variants = self.store.list_variants_for_personas(run.persona_ids or [])
        total = len(variants)
        batches = plan_batches(variants, self.batch_size)
        attachments = run.attachments or []
        focus_modifier = (run.variant_config or {}).get("focus_modifier") or ""
        completed = 0
        batches_run = 0

        try:
            for index, batch in enumerate(batches):
                logger.info(f"Test {run_id}: batch {index + 1}/{len(batches)} ({len(batch)} variants)")
                await self._run_batch(run, batch, attachments, focus_modifier)
                batches_run += 1
                completed += len(batch)

                self.store.update_run(run_id, responses_completed=completed)
                self.progress.set(run_id, RunProgressState(completed=completed, total=total,
                                                           status=RunStatus.RUNNING.value))

                if index < len(batches) - 1 and self.batch_delay_ms > 0:
                    await self._sleep(self.batch_delay_ms / 1000)

            await self._finish(run, total)
        except Exception as e:
            kind = FailureKind.PROVIDER_ERROR if isinstance(e, PROVIDER_ERRORS) else FailureKind.INTERNAL
            completed = self.mark_failed(run_id, kind, str(e), total)
            return RunOutcome(run_id=run_id, status=RunStatus.FAILED.value, completed=completed, total=total,
                              batches=batches_run, failure_kind=kind.value, error=str(e))

        return RunOutcome(run_id=run_id, status=RunStatus.COMPLETE.value, completed=total, total=total,
                          batches=batches_run)

    async def _run_batch(self, run: TestRun, batch: Sequence[PersonaVariant], attachments: List[Any],
                         focus_modifier: str) -> None:
        tasks = [
            asyncio.create_task(self._collect_one(run, variant, attachments, focus_modifier))
            for variant in batch
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _collect_one(self, run: TestRun, variant: PersonaVariant, attachments: List[Any],
                           focus_modifier: str) -> None:
        started = time.perf_counter()
        reaction = await self.respondent.react_to_concept(
            variant, variant.persona, run.concept_text or "", attachments, focus_modifier
        )
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        if not reaction.scores_parsed:
            logger.warning(f"Test {run.id}: variant {variant.id} returned no usable score block")

        self.store.add_response(
            run.id,
            variant.id,
            response_text=reaction.response_text,
            sentiment_score=reaction.sentiment_score,
            engagement_likelihood=reaction.engagement_likelihood,
            share_likelihood=reaction.share_likelihood,
            comprehension_score=reaction.comprehension_score,
            reaction_tags=list(reaction.reaction_tags),
            scores_parsed=reaction.scores_parsed,
            processing_time_ms=elapsed_ms,
            model_used=getattr(self.respondent, "model", None),
        )

    async def _finish(self, run: TestRun, total: int) -> None:
        responses = self.store.list_responses(run.id)
        scored = [ScoredResponse.from_row(r) for r in responses]
        summarizer = self.respondent.summarize_themes if getattr(self.respondent, "available", False) else None

        aggregate = await build_aggregate(scored, run.concept_text or "", summarizer, mode=self.theme_mode)
        self.store.save_aggregate(run.id, aggregate["summary"], aggregate["segments"], aggregate["themes"])

        self.store.update_run(
            run.id,
            status=RunStatus.COMPLETE,
            responses_completed=len(responses),
            completed_at=_utcnow(),
        )
        self.progress.set(run.id, RunProgressState(completed=len(responses), total=total,
                                                   status=RunStatus.COMPLETE.value))
        logger.info(f"Test {run.id} complete: {len(responses)}/{total} responses aggregated")

    # ---------- Failure ----------

    def mark_failed(self, run_id: UUID, kind: FailureKind, message: str, total: Optional[int] = None) -> int:
        """
        Flip the run to failed and freeze its progress.

        responses_completed is reconciled to the number of stored rows, which
        may exceed the last batch boundary when a batch failed part way.
        Returns that count.

        The progress entry is frozen even when the store itself is what
        failed, so observers always see a terminal state.
        """
        logger.error(f"Test {run_id} failed ({kind.value}): {message}")
        persisted = 0
        try:
            self.store.rollback()
            persisted = self.store.count_responses(run_id)
            self.store.update_run(
                run_id,
                status=RunStatus.FAILED,
                responses_completed=persisted,
                failure_kind=kind.value,
                failure_message=message,
                completed_at=_utcnow(),
            )
        finally:
            current = self.progress.get(run_id)
            if current is not None:
                self.progress.set(run_id, RunProgressState(completed=current.completed, total=current.total,
                                                           status=RunStatus.FAILED.value))
            else:
                self.progress.set(run_id, RunProgressState(completed=persisted, total=total or 0,
                                                           status=RunStatus.FAILED.value))
        return persisted
