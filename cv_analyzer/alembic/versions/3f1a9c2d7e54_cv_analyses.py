"""cv_analyses

Revision ID: 3f1a9c2d7e54
Revises:
Create Date: 2026-10-18 10:12:41.518204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7e54'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the analysis table and the portal tables it reads."""
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'jobs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('company', sa.String(200), nullable=True),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('requirements', sa.JSON, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'cv_analyses',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('original_filename', sa.String(255), nullable=False),
        sa.Column('file_ref', sa.String(255), nullable=False),
        sa.Column('file_size', sa.Integer, nullable=False),
        sa.Column('extracted_text', sa.Text, nullable=True),
        sa.Column('experience_level', sa.String(20), nullable=False),
        sa.Column('major', sa.String(100), nullable=False),
        sa.Column('target_job_title', sa.String(200), nullable=True),
        sa.Column('target_jobs', sa.JSON, nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('version', sa.Integer, nullable=False),
        sa.Column('overall_score', sa.Integer, nullable=True),
        sa.Column('summary', sa.JSON, nullable=True),
        sa.Column('sections', sa.JSON, nullable=True),
        sa.Column('recommendations', sa.JSON, nullable=False),
        sa.Column('job_matching', sa.JSON, nullable=True),
        sa.Column('market_insights', sa.JSON, nullable=True),
        sa.Column('ai_usage', sa.JSON, nullable=True),
        sa.Column('processing_stages', sa.JSON, nullable=False),
        sa.Column('error_message', sa.String(500), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_cv_analyses_user_id', 'cv_analyses', ['user_id'])
    op.create_index('ix_cv_analyses_user_created', 'cv_analyses', ['user_id', 'created_at'])
    op.create_index('ix_cv_analyses_user_status', 'cv_analyses', ['user_id', 'status'])


def downgrade() -> None:
    """Drop all application tables."""
    op.drop_index('ix_cv_analyses_user_status', table_name='cv_analyses')
    op.drop_index('ix_cv_analyses_user_created', table_name='cv_analyses')
    op.drop_index('ix_cv_analyses_user_id', table_name='cv_analyses')
    op.drop_table('cv_analyses')
    op.drop_table('jobs')
    op.drop_table('users')
