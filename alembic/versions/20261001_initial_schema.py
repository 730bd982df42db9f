"""Initial monitoring schema

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01

Creates profiles, sources, raw content, insights, alerts and notifications.
Requires the pgvector extension for insight embeddings.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision: str = '20261001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIMENSIONS = 1536


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        'monitoring_profiles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('keywords', JSONB(), nullable=True),
        sa.Column('frequency_hours', sa.Integer(), nullable=False, server_default='24'),
        sa.Column('last_run_at', sa.DateTime(), nullable=True),
        sa.Column('next_run_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('source_discovery_enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('alert_sensitivity', sa.String(), nullable=False, server_default='medium'),
        sa.Column('notification_channels', JSONB(), nullable=True),
        sa.Column('notification_email', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_monitoring_profiles_user_id', 'monitoring_profiles', ['user_id'])
    op.create_index('ix_monitoring_profiles_next_run_at', 'monitoring_profiles', ['next_run_at'])

    op.create_table(
        'data_sources',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('url', sa.String(2000), nullable=False),
        sa.Column('source_type', sa.String(), nullable=False, server_default='other'),
        sa.Column('scrape_config', JSONB(), nullable=True),
        sa.Column('frequency_hours', sa.Integer(), nullable=False, server_default='24'),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('last_scraped_at', sa.DateTime(), nullable=True),
        sa.Column('next_scrape_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('discovered_at', sa.DateTime(), nullable=True),
        sa.Column('relevance_score', sa.Float(), nullable=True),
        sa.Column('relevance_notes', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['profile_id'], ['monitoring_profiles.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_data_sources_profile_id', 'data_sources', ['profile_id'])
    op.create_index('ix_data_sources_enabled', 'data_sources', ['enabled'])
    op.create_index('ix_data_sources_next_scrape_at', 'data_sources', ['next_scrape_at'])

    # (source_id, content_hash) is the dedup gate for concurrent scrapes
    op.create_table(
        'raw_contents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('source_id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('content_url', sa.String(2000), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('content_hash', sa.String(32), nullable=False),
        sa.Column('extracted_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('snapshot_ref', sa.String(), nullable=True),
        sa.Column('screenshot_ref', sa.String(), nullable=True),
        sa.Column('similarity_to_previous', sa.Float(), nullable=True),
        sa.Column('ai_processed', sa.Boolean(), nullable=False, server_default='false'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['source_id'], ['data_sources.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['profile_id'], ['monitoring_profiles.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('source_id', 'content_hash', name='uq_raw_contents_source_hash'),
    )
    op.create_index('ix_raw_contents_source_id', 'raw_contents', ['source_id'])
    op.create_index('ix_raw_contents_profile_id', 'raw_contents', ['profile_id'])
    op.create_index('ix_raw_contents_ai_processed', 'raw_contents', ['ai_processed'])

    op.create_table(
        'insights',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('raw_content_id', sa.Integer(), nullable=False),
        sa.Column('source_id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('summary', sa.Text(), nullable=False),
        sa.Column('sentiment', sa.String(), nullable=False),
        sa.Column('sentiment_score', sa.Float(), nullable=False),
        sa.Column('entities', JSONB(), nullable=True),
        sa.Column('topics', JSONB(), nullable=True),
        sa.Column('is_crisis', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_opportunity', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('crisis_explanation', sa.Text(), nullable=True),
        sa.Column('opportunity_explanation', sa.Text(), nullable=True),
        sa.Column('impact_assessment', JSONB(), nullable=True),
        sa.Column('key_insights', JSONB(), nullable=True),
        sa.Column('embedding', Vector(EMBEDDING_DIMENSIONS), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['raw_content_id'], ['raw_contents.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['source_id'], ['data_sources.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['profile_id'], ['monitoring_profiles.id'], ondelete='CASCADE'),
        sa.CheckConstraint('sentiment_score >= -1 AND sentiment_score <= 1', name='ck_insights_sentiment_score'),
    )
    op.create_index('ix_insights_raw_content_id', 'insights', ['raw_content_id'], unique=True)
    op.create_index('ix_insights_source_id', 'insights', ['source_id'])
    op.create_index('ix_insights_profile_id', 'insights', ['profile_id'])
    op.create_index('ix_insights_is_crisis', 'insights', ['is_crisis'])
    op.create_index('ix_insights_is_opportunity', 'insights', ['is_opportunity'])

    # Approximate nearest-neighbour search over embeddings (cosine distance)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_insights_embedding_hnsw "
        "ON insights USING hnsw (embedding vector_cosine_ops)"
    )

    op.create_table(
        'alerts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('insight_id', sa.Integer(), nullable=False),
        sa.Column('severity', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='new'),
        sa.Column('user_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['profile_id'], ['monitoring_profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['insight_id'], ['insights.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_alerts_profile_id', 'alerts', ['profile_id'])
    op.create_index('ix_alerts_insight_id', 'alerts', ['insight_id'], unique=True)
    op.create_index('ix_alerts_severity', 'alerts', ['severity'])
    op.create_index('ix_alerts_status', 'alerts', ['status'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('type', sa.String(), nullable=False, server_default='alert'),
        sa.Column('payload', JSONB(), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_read', 'notifications', ['read'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('alerts')
    op.execute("DROP INDEX IF EXISTS ix_insights_embedding_hnsw")
    op.drop_table('insights')
    op.drop_table('raw_contents')
    op.drop_table('data_sources')
    op.drop_table('monitoring_profiles')
