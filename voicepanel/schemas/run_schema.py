# voicepanel/schemas/run_schema.py
from __future__ import annotations

from typing import List, Optional, Dict, Any, Literal
from uuid import UUID
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, model_validator

from voicepanel.models.run_model import RunStatus
from voicepanel.schemas.persona_schema import AttitudeDistribution, DEFAULT_PLATFORMS

TestType = Literal["concept", "asset", "strategic", "ab"]
RunStatusLiteral = Literal["draft", "running", "complete", "failed"]

# ---------- Run Input Schemas ----------

class Attachment(BaseModel):
    """
    Concept attachment, already decoded by the upload layer.

    Images travel as data URLs to the vision path; PDFs only contribute their
    extracted text.
    """
    name: str
    mime_type: str
    kind: Literal["image", "pdf"]
    data_url: Optional[str] = None
    extracted_text: Optional[str] = None

    @model_validator(mode="after")
    def check_payload(self):
        if self.kind == "image" and not self.data_url:
            raise ValueError("image attachments require data_url")
        return self


class RunVariantConfig(BaseModel):
    age_spread: int = Field(default=5, ge=0, le=20)
    attitude_distribution: AttitudeDistribution = "normal"
    platforms_to_include: List[str] = Field(default_factory=lambda: list(DEFAULT_PLATFORMS))
    focus_preset: str = "baseline"
    focus_modifier: str = ""


class RunCreate(BaseModel):
    project_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=255)
    test_type: TestType = "concept"
    concept_text: Optional[str] = None
    attachments: List[Attachment] = Field(default_factory=list)
    persona_ids: List[UUID] = Field(..., min_length=1)
    variants_per_persona: int = Field(default=20, ge=1, le=100)
    variant_config: RunVariantConfig = Field(default_factory=RunVariantConfig)


# ---------- Run Output Schemas ----------

class RunOut(BaseModel):
    id: UUID
    project_id: Optional[UUID] = None
    name: str
    test_type: str
    concept_text: Optional[str] = None
    persona_ids: List[UUID]
    variants_per_persona: int
    variant_config: Optional[Dict[str, Any]] = None
    status: RunStatus
    responses_completed: int
    responses_total: int
    failure_kind: Optional[str] = None
    failure_message: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class StartRunResponse(BaseModel):
    accepted: bool
    run_id: UUID
    total_variants: int
    message: str = "Test started"


class RunProgress(BaseModel):
    completed: int
    total: int
    status: RunStatusLiteral


# ---------- Aggregate Schemas ----------

class SentimentBreakdown(BaseModel):
    positive: int
    neutral: int
    negative: int


class Summary(BaseModel):
    total_responses: int
    sentiment: SentimentBreakdown
    avg_engagement: float
    avg_share_likelihood: float
    avg_comprehension: float


class SegmentStats(BaseModel):
    count: int
    avg_sentiment: float
    avg_engagement: float


class Segments(BaseModel):
    by_age: Dict[str, SegmentStats]
    by_platform: Dict[str, SegmentStats]
    by_attitude: Dict[str, SegmentStats]


class ThemeItem(BaseModel):
    theme: str
    frequency: int


class Themes(BaseModel):
    positive_themes: List[ThemeItem] = Field(default_factory=list)
    concerns: List[ThemeItem] = Field(default_factory=list)
    unexpected: List[ThemeItem] = Field(default_factory=list)
    key_quotes: List[str] = Field(default_factory=list)
    source: str = "llm"
    sampled_responses: Optional[int] = None
    error: Optional[str] = None


class AggregateOut(BaseModel):
    test_id: UUID
    summary: Summary
    segments: Segments
    themes: Themes
    benchmark_score: int
    benchmark_label: str
    created_at: Optional[datetime] = None


class LiveSummaryOut(BaseModel):
    test_id: UUID
    status: RunStatusLiteral
    summary: Summary
    segments: Segments
    benchmark_score: int
    benchmark_label: str


# ---------- Response Schemas ----------

class VariantResponseOut(BaseModel):
    id: UUID
    test_id: UUID
    variant_id: UUID
    response_text: str
    sentiment_score: int
    engagement_likelihood: int
    share_likelihood: int
    comprehension_score: int
    reaction_tags: List[str]
    scores_parsed: bool
    processing_time_ms: Optional[int] = None
    model_used: Optional[str] = None
    created_at: Optional[datetime] = None

    # Variant demographics joined in for display
    variant_name: Optional[str] = None
    age_actual: Optional[int] = None
    primary_platform: Optional[str] = None
    attitude_score: Optional[int] = None
    engagement_level: Optional[str] = None
    location_variant: Optional[str] = None


class VariantResponseList(BaseModel):
    responses: List[VariantResponseOut]
    total: int
    limit: int
    offset: int
