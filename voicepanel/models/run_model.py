# voicepanel/models/run_model.py
from sqlalchemy import (
    Column, String, Integer, Text, Boolean, DateTime, ForeignKey, Index, CheckConstraint, Enum
)
from sqlalchemy.dialects.postgresql import UUID, JSONB, ARRAY
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from voicepanel.db.base import Base
import uuid
import enum


class RunStatus(str, enum.Enum):
    DRAFT = "draft"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETE, RunStatus.FAILED)


class FailureKind(str, enum.Enum):
    PROVIDER_ERROR = "provider_error"
    INTERNAL = "internal"


# ---------- Test Run Table ----------
class TestRun(Base):
    """One execution of a concept against the variants of the selected personas."""
    __tablename__ = "tests"
    __test__ = False  # keep pytest from collecting the model

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    project_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    test_type = Column(String(50), nullable=False, server_default="concept")

    # Concept payload
    concept_text = Column(Text, nullable=True)
    attachments = Column(JSONB, nullable=True)  # [{name, mime_type, kind, data_url, extracted_text}]

    # Panel configuration
    persona_ids = Column(ARRAY(UUID(as_uuid=True)), nullable=False)
    variants_per_persona = Column(Integer, nullable=False, default=20)
    variant_config = Column(JSONB, nullable=True)  # includes focus_preset / focus_modifier

    status = Column(
        Enum(RunStatus, name="run_status_enum", native_enum=False, create_constraint=False,
             values_callable=lambda e: [m.value for m in e]),
        default=RunStatus.DRAFT,
        nullable=False,
    )

    # Progress counters (denormalized; response rows are the source of truth)
    responses_completed = Column(Integer, nullable=False, default=0)
    responses_total = Column(Integer, nullable=False, default=0)

    # Failure context
    failure_kind = Column(String(50), nullable=True)
    failure_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    responses = relationship("VariantResponse", back_populates="run", cascade="all, delete-orphan", passive_deletes=True)
    result = relationship("AggregateResult", back_populates="run", uselist=False, cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index("idx_tests_status", "status"),
    )


# ---------- Variant Response Table ----------
class VariantResponse(Base):
    """One reaction of one variant within a run. Append-only."""
    __tablename__ = "test_responses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    test_id = Column(UUID(as_uuid=True), ForeignKey('tests.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_id = Column(UUID(as_uuid=True), ForeignKey('persona_variants.id', ondelete='CASCADE'), nullable=False, index=True)

    response_text = Column(Text, nullable=False)

    # Structured scores (1-10 scale)
    sentiment_score = Column(Integer, nullable=False)
    engagement_likelihood = Column(Integer, nullable=False)
    share_likelihood = Column(Integer, nullable=False)
    comprehension_score = Column(Integer, nullable=False)

    reaction_tags = Column(ARRAY(String(50)), nullable=False, default=list)
    scores_parsed = Column(Boolean, nullable=False, default=True)  # False when neutral defaults were used

    # Processing metadata
    processing_time_ms = Column(Integer, nullable=True)
    model_used = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    run = relationship("TestRun", back_populates="responses")
    variant = relationship("PersonaVariant", lazy="joined")

    __table_args__ = (
        CheckConstraint("sentiment_score BETWEEN 1 AND 10", name="ck_response_sentiment_range"),
        CheckConstraint("engagement_likelihood BETWEEN 1 AND 10", name="ck_response_engagement_range"),
        CheckConstraint("share_likelihood BETWEEN 1 AND 10", name="ck_response_share_range"),
        CheckConstraint("comprehension_score BETWEEN 1 AND 10", name="ck_response_comprehension_range"),
        Index("idx_responses_test_variant", "test_id", "variant_id"),
    )


# ---------- Aggregate Result Table ----------
class AggregateResult(Base):
    """Summary, segments and themes of a completed run, written exactly once."""
    __tablename__ = "test_results"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    test_id = Column(UUID(as_uuid=True), ForeignKey('tests.id', ondelete='CASCADE'), nullable=False, unique=True, index=True)

    summary = Column(JSONB, nullable=False)
    segments = Column(JSONB, nullable=False)
    themes = Column(JSONB, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    run = relationship("TestRun", back_populates="result")
