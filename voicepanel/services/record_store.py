# voicepanel/services/record_store.py
"""
Record store used by the panel engine.

The engine only depends on RecordStore; SqlRecordStore is the SQLAlchemy
implementation bound to one Session. Each write commits on its own, there are
no cross-row transactions. A write that fails is rolled back before the
error propagates so the session stays usable for the failure bookkeeping.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select, func, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from voicepanel.core.errors import NotFoundError
from voicepanel.models.persona_model import Persona, PersonaVariant
from voicepanel.models.run_model import TestRun, VariantResponse, AggregateResult
from voicepanel.schemas.persona_schema import VariantCandidate

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    # ---------- Runs ----------
    @abstractmethod
    def get_run(self, run_id: UUID) -> Optional[TestRun]: ...

    @abstractmethod
    def list_runs(self, project_id: Optional[UUID] = None) -> List[TestRun]: ...

    @abstractmethod
    def add_run(self, run: TestRun) -> TestRun: ...

    @abstractmethod
    def update_run(self, run_id: UUID, **fields: Any) -> TestRun: ...

    @abstractmethod
    def delete_run(self, run_id: UUID) -> bool: ...

    # ---------- Personas & variants ----------
    @abstractmethod
    def get_persona(self, persona_id: UUID) -> Optional[Persona]: ...

    @abstractmethod
    def get_personas(self, persona_ids: Sequence[UUID]) -> List[Persona]: ...

    @abstractmethod
    def list_variants(self, persona_id: UUID) -> List[PersonaVariant]: ...

    @abstractmethod
    def list_variants_for_personas(self, persona_ids: Sequence[UUID]) -> List[PersonaVariant]: ...

    @abstractmethod
    def replace_variants(self, persona_id: UUID, candidates: Sequence[VariantCandidate]) -> List[PersonaVariant]: ...

    # ---------- Responses ----------
    @abstractmethod
    def add_response(self, run_id: UUID, variant_id: UUID, **fields: Any) -> VariantResponse: ...

    @abstractmethod
    def list_responses(self, run_id: UUID) -> List[VariantResponse]: ...

    @abstractmethod
    def count_responses(self, run_id: UUID) -> int: ...

    @abstractmethod
    def query_responses(
        self,
        run_id: UUID,
        *,
        sentiment: Optional[str] = None,
        platform: Optional[str] = None,
        attitude: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[VariantResponse], int]: ...

    # ---------- Aggregates ----------
    @abstractmethod
    def get_aggregate(self, run_id: UUID) -> Optional[AggregateResult]: ...

    @abstractmethod
    def save_aggregate(self, run_id: UUID, summary: Dict[str, Any], segments: Dict[str, Any],
                       themes: Dict[str, Any]) -> AggregateResult: ...

    def rollback(self) -> None:
        """Discard a unit of work left unusable by a failed write. Non-transactional stores have nothing to do."""


def candidate_to_variant(persona_id: UUID, index: int, candidate: VariantCandidate) -> PersonaVariant:
    return PersonaVariant(
        persona_id=persona_id,
        variant_index=index,
        variant_name=candidate.variant_name,
        age_actual=candidate.age_actual,
        location_variant=candidate.location_variant,
        attitude_score=candidate.attitude_score,
        primary_platform=candidate.primary_platform,
        engagement_level=candidate.engagement_level,
        full_profile={
            "distinguishing_trait": candidate.distinguishing_trait,
            "voice_modifier": candidate.voice_modifier,
        },
    )


class SqlRecordStore(RecordStore):
    def __init__(self, db: Session):
        self.db = db

    # ---------- Runs ----------

    def get_run(self, run_id: UUID) -> Optional[TestRun]:
        return self.db.get(TestRun, run_id)

    def list_runs(self, project_id: Optional[UUID] = None) -> List[TestRun]:
        stmt = select(TestRun).order_by(TestRun.created_at.desc())
        if project_id:
            stmt = stmt.where(TestRun.project_id == project_id)
        return list(self.db.scalars(stmt).all())

    def add_run(self, run: TestRun) -> TestRun:
        try:
            self.db.add(run)
            self.db.commit()
            self.db.refresh(run)
        except SQLAlchemyError:
            logger.exception(f"Create test DB error for name={run.name!r}")
            self.db.rollback()
            raise
        return run

    def update_run(self, run_id: UUID, **fields: Any) -> TestRun:
        run = self.db.get(TestRun, run_id)
        if not run:
            raise NotFoundError("Test", run_id)
        try:
            for name, value in fields.items():
                setattr(run, name, value)
            self.db.commit()
            self.db.refresh(run)
        except SQLAlchemyError:
            logger.exception(f"Update test DB error for test_id={run_id} fields={sorted(fields)}")
            self.db.rollback()
            raise
        return run

    def delete_run(self, run_id: UUID) -> bool:
        run = self.db.get(TestRun, run_id)
        if not run:
            return False
        try:
            self.db.delete(run)
            self.db.commit()
        except SQLAlchemyError:
            logger.exception(f"Delete test DB error for test_id={run_id}")
            self.db.rollback()
            raise
        return True

    # ---------- Personas & variants ----------

    def get_persona(self, persona_id: UUID) -> Optional[Persona]:
        return self.db.get(Persona, persona_id)

    def get_personas(self, persona_ids: Sequence[UUID]) -> List[Persona]:
        if not persona_ids:
            return []
        stmt = select(Persona).where(Persona.id.in_(list(persona_ids)))
        return list(self.db.scalars(stmt).all())

    def list_variants(self, persona_id: UUID) -> List[PersonaVariant]:
        stmt = (
            select(PersonaVariant)
            .where(PersonaVariant.persona_id == persona_id)
            .order_by(PersonaVariant.variant_index)
        )
        return list(self.db.scalars(stmt).all())

    def list_variants_for_personas(self, persona_ids: Sequence[UUID]) -> List[PersonaVariant]:
        if not persona_ids:
            return []
        stmt = (
            select(PersonaVariant)
            .options(selectinload(PersonaVariant.persona))
            .where(PersonaVariant.persona_id.in_(list(persona_ids)))
            .order_by(PersonaVariant.persona_id, PersonaVariant.variant_index)
        )
        return list(self.db.scalars(stmt).all())

    def replace_variants(self, persona_id: UUID, candidates: Sequence[VariantCandidate]) -> List[PersonaVariant]:
        """Destructive replace: the persona's previous variants are deleted in the same commit."""
        variants = [
            candidate_to_variant(persona_id, index, candidate)
            for index, candidate in enumerate(candidates, start=1)
        ]
        try:
            self.db.execute(delete(PersonaVariant).where(PersonaVariant.persona_id == persona_id))
            self.db.add_all(variants)
            self.db.commit()
            for variant in variants:
                self.db.refresh(variant)
        except SQLAlchemyError:
            logger.exception(f"Replace variants DB error for persona_id={persona_id}")
            self.db.rollback()
            raise
        return variants

    # ---------- Responses ----------

    def add_response(self, run_id: UUID, variant_id: UUID, **fields: Any) -> VariantResponse:
        response = VariantResponse(test_id=run_id, variant_id=variant_id, **fields)
        try:
            self.db.add(response)
            self.db.commit()
        except SQLAlchemyError:
            logger.exception(f"Store response DB error for test_id={run_id} variant_id={variant_id}")
            self.db.rollback()
            raise
        return response

    def list_responses(self, run_id: UUID) -> List[VariantResponse]:
        stmt = (
            select(VariantResponse)
            .options(selectinload(VariantResponse.variant))
            .where(VariantResponse.test_id == run_id)
            .order_by(VariantResponse.created_at, VariantResponse.id)
        )
        return list(self.db.scalars(stmt).all())

    def count_responses(self, run_id: UUID) -> int:
        stmt = select(func.count()).select_from(VariantResponse).where(VariantResponse.test_id == run_id)
        return int(self.db.scalar(stmt) or 0)

    def query_responses(
        self,
        run_id: UUID,
        *,
        sentiment: Optional[str] = None,
        platform: Optional[str] = None,
        attitude: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[VariantResponse], int]:
        stmt = (
            select(VariantResponse)
            .join(PersonaVariant, VariantResponse.variant_id == PersonaVariant.id)
            .where(VariantResponse.test_id == run_id)
        )

        # Apply filters
        if sentiment == "positive":
            stmt = stmt.where(VariantResponse.sentiment_score >= 7)
        elif sentiment == "neutral":
            stmt = stmt.where(VariantResponse.sentiment_score.between(4, 6))
        elif sentiment == "negative":
            stmt = stmt.where(VariantResponse.sentiment_score < 4)

        if platform:
            stmt = stmt.where(PersonaVariant.primary_platform == platform)

        if attitude == "enthusiasts":
            stmt = stmt.where(PersonaVariant.attitude_score >= 7)
        elif attitude == "skeptics":
            stmt = stmt.where(PersonaVariant.attitude_score <= 3)
        elif attitude == "neutral":
            stmt = stmt.where(PersonaVariant.attitude_score.between(4, 6))

        total = int(self.db.scalar(select(func.count()).select_from(stmt.subquery())) or 0)
        page = stmt.order_by(VariantResponse.created_at.desc()).limit(limit).offset(offset)
        return list(self.db.scalars(page).all()), total

    # ---------- Aggregates ----------

    def get_aggregate(self, run_id: UUID) -> Optional[AggregateResult]:
        stmt = select(AggregateResult).where(AggregateResult.test_id == run_id)
        return self.db.scalars(stmt).first()

    def save_aggregate(self, run_id: UUID, summary: Dict[str, Any], segments: Dict[str, Any],
                       themes: Dict[str, Any]) -> AggregateResult:
        """Insert the aggregate once; an existing row is returned untouched."""
        existing = self.get_aggregate(run_id)
        if existing:
            logger.warning(f"Aggregate for test {run_id} already exists; keeping the stored one")
            return existing

        result = AggregateResult(test_id=run_id, summary=summary, segments=segments, themes=themes)
        try:
            self.db.add(result)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.get_aggregate(run_id)
            if existing is None:
                raise
            return existing
        except SQLAlchemyError:
            logger.exception(f"Store aggregate DB error for test_id={run_id}")
            self.db.rollback()
            raise
        self.db.refresh(result)
        return result

    def rollback(self) -> None:
        self.db.rollback()
