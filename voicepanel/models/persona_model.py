# voicepanel/models/persona_model.py
from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from voicepanel.db.base import Base
import uuid


ENGAGEMENT_LEVELS = ("heavy", "moderate", "light", "lapsed")


class Persona(Base):
    """
    Core persona template. Variants are generated from it and the panel
    engine reads its profile and voice sample when prompting a variant.
    """
    __tablename__ = "personas"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    project_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    name = Column(String(255), nullable=False)

    # Identity
    age_base = Column(Integer, nullable=True)
    location = Column(String(255), nullable=True)
    occupation = Column(String(255), nullable=True)
    household = Column(String(255), nullable=True)

    # Nested profile blocks
    psychographics = Column(JSONB, nullable=True)
    media_habits = Column(JSONB, nullable=True)
    brand_context = Column(JSONB, nullable=True)
    cultural_context = Column(JSONB, nullable=True)

    # Calibration text showing how this persona talks
    voice_sample = Column(Text, nullable=True)

    source_type = Column(String(50), nullable=False, server_default="builder")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    variants = relationship(
        "PersonaVariant",
        back_populates="persona",
        cascade="all, delete-orphan",
        order_by="PersonaVariant.variant_index",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Persona(id={self.id}, name='{self.name}')>"


class PersonaVariant(Base):
    """One synthetic individual derived from a persona. Never updated in place."""
    __tablename__ = "persona_variants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    persona_id = Column(UUID(as_uuid=True), ForeignKey('personas.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_index = Column(Integer, nullable=False)

    # Deviation from base persona
    variant_name = Column(String(255), nullable=True)
    age_actual = Column(Integer, nullable=True)
    location_variant = Column(String(255), nullable=True)
    attitude_score = Column(Integer, nullable=True)  # 1=skeptic, 10=enthusiast
    primary_platform = Column(String(100), nullable=True)
    engagement_level = Column(String(50), nullable=True)

    # distinguishing_trait + voice_modifier
    full_profile = Column(JSONB, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    persona = relationship("Persona", back_populates="variants")

    __table_args__ = (
        CheckConstraint("attitude_score BETWEEN 1 AND 10", name="ck_variant_attitude_range"),
        Index("idx_variants_persona_index", "persona_id", "variant_index"),
    )

    @property
    def distinguishing_trait(self) -> str:
        return (self.full_profile or {}).get("distinguishing_trait") or ""

    @property
    def voice_modifier(self) -> str:
        return (self.full_profile or {}).get("voice_modifier") or ""
