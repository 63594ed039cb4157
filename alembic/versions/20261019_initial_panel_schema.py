"""initial panel schema

Revision ID: 20261019_panel_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = '20261019_panel_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'personas',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('age_base', sa.Integer(), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('occupation', sa.String(length=255), nullable=True),
        sa.Column('household', sa.String(length=255), nullable=True),
        sa.Column('psychographics', postgresql.JSONB(), nullable=True),
        sa.Column('media_habits', postgresql.JSONB(), nullable=True),
        sa.Column('brand_context', postgresql.JSONB(), nullable=True),
        sa.Column('cultural_context', postgresql.JSONB(), nullable=True),
        sa.Column('voice_sample', sa.Text(), nullable=True),
        sa.Column('source_type', sa.String(length=50), server_default='builder', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_personas_id', 'personas', ['id'])
    op.create_index('ix_personas_project_id', 'personas', ['project_id'])

    op.create_table(
        'persona_variants',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('persona_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('personas.id', ondelete='CASCADE'), nullable=False),
        sa.Column('variant_index', sa.Integer(), nullable=False),
        sa.Column('variant_name', sa.String(length=255), nullable=True),
        sa.Column('age_actual', sa.Integer(), nullable=True),
        sa.Column('location_variant', sa.String(length=255), nullable=True),
        sa.Column('attitude_score', sa.Integer(), nullable=True),
        sa.Column('primary_platform', sa.String(length=100), nullable=True),
        sa.Column('engagement_level', sa.String(length=50), nullable=True),
        sa.Column('full_profile', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('attitude_score BETWEEN 1 AND 10', name='ck_variant_attitude_range'),
    )
    op.create_index('ix_persona_variants_id', 'persona_variants', ['id'])
    op.create_index('ix_persona_variants_persona_id', 'persona_variants', ['persona_id'])
    op.create_index('idx_variants_persona_index', 'persona_variants', ['persona_id', 'variant_index'])

    op.create_table(
        'tests',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('test_type', sa.String(length=50), server_default='concept', nullable=False),
        sa.Column('concept_text', sa.Text(), nullable=True),
        sa.Column('attachments', postgresql.JSONB(), nullable=True),
        sa.Column('persona_ids', postgresql.ARRAY(postgresql.UUID(as_uuid=True)), nullable=False),
        sa.Column('variants_per_persona', sa.Integer(), nullable=False),
        sa.Column('variant_config', postgresql.JSONB(), nullable=True),
        sa.Column('status', sa.String(length=8), nullable=False),
        sa.Column('responses_completed', sa.Integer(), nullable=False),
        sa.Column('responses_total', sa.Integer(), nullable=False),
        sa.Column('failure_kind', sa.String(length=50), nullable=True),
        sa.Column('failure_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_tests_id', 'tests', ['id'])
    op.create_index('ix_tests_project_id', 'tests', ['project_id'])
    op.create_index('idx_tests_status', 'tests', ['status'])

    op.create_table(
        'test_responses',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('test_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('tests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('variant_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('persona_variants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('response_text', sa.Text(), nullable=False),
        sa.Column('sentiment_score', sa.Integer(), nullable=False),
        sa.Column('engagement_likelihood', sa.Integer(), nullable=False),
        sa.Column('share_likelihood', sa.Integer(), nullable=False),
        sa.Column('comprehension_score', sa.Integer(), nullable=False),
        sa.Column('reaction_tags', postgresql.ARRAY(sa.String(length=50)), nullable=False),
        sa.Column('scores_parsed', sa.Boolean(), nullable=False),
        sa.Column('processing_time_ms', sa.Integer(), nullable=True),
        sa.Column('model_used', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('sentiment_score BETWEEN 1 AND 10', name='ck_response_sentiment_range'),
        sa.CheckConstraint('engagement_likelihood BETWEEN 1 AND 10', name='ck_response_engagement_range'),
        sa.CheckConstraint('share_likelihood BETWEEN 1 AND 10', name='ck_response_share_range'),
        sa.CheckConstraint('comprehension_score BETWEEN 1 AND 10', name='ck_response_comprehension_range'),
    )
    op.create_index('ix_test_responses_id', 'test_responses', ['id'])
    op.create_index('ix_test_responses_test_id', 'test_responses', ['test_id'])
    op.create_index('ix_test_responses_variant_id', 'test_responses', ['variant_id'])
    op.create_index('idx_responses_test_variant', 'test_responses', ['test_id', 'variant_id'])

    op.create_table(
        'test_results',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('test_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('tests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('summary', postgresql.JSONB(), nullable=False),
        sa.Column('segments', postgresql.JSONB(), nullable=False),
        sa.Column('themes', postgresql.JSONB(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_test_results_id', 'test_results', ['id'])
    op.create_index('ix_test_results_test_id', 'test_results', ['test_id'], unique=True)


def downgrade() -> None:
    op.drop_table('test_results')
    op.drop_table('test_responses')
    op.drop_table('tests')
    op.drop_table('persona_variants')
    op.drop_table('personas')
