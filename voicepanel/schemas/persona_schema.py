# voicepanel/schemas/persona_schema.py
from __future__ import annotations

from typing import List, Optional, Dict, Any, Literal
from uuid import UUID
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

EngagementLevel = Literal["heavy", "moderate", "light", "lapsed"]
AttitudeDistribution = Literal["normal", "skew_positive", "skew_negative"]

DEFAULT_PLATFORMS = ["TikTok", "Instagram", "YouTube", "Twitter/X"]


class VariantConfig(BaseModel):
    """Diversity controls for one variant generation batch."""
    count: int = Field(default=20, ge=1, le=100)
    age_spread: int = Field(default=5, ge=0, le=20)
    attitude_distribution: AttitudeDistribution = "normal"
    platforms_to_include: List[str] = Field(default_factory=lambda: list(DEFAULT_PLATFORMS))


class VariantCandidate(BaseModel):
    """Canonical variant record produced by the normalizer, before it is stored."""
    variant_name: str
    age_actual: int = Field(..., ge=13, le=100)
    location_variant: Optional[str] = None
    attitude_score: int = Field(default=5, ge=1, le=10)
    primary_platform: str
    engagement_level: EngagementLevel = "moderate"
    distinguishing_trait: str = ""
    voice_modifier: str = ""


class PersonaVariantOut(BaseModel):
    id: UUID
    persona_id: UUID
    variant_index: int
    variant_name: Optional[str] = None
    age_actual: Optional[int] = None
    location_variant: Optional[str] = None
    attitude_score: Optional[int] = None
    primary_platform: Optional[str] = None
    engagement_level: Optional[str] = None
    full_profile: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class VariantGenerationResult(BaseModel):
    persona_id: UUID
    variants_generated: int
    variants: List[PersonaVariantOut]
