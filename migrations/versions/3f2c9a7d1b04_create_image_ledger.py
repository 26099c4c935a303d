"""create image version ledger tables

Revision ID: 3f2c9a7d1b04
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f2c9a7d1b04'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'image_versions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('subject_id', sa.String(length=255), nullable=False),
        sa.Column('nft_id', sa.String(length=255), nullable=True),
        sa.Column('collection_id', sa.String(length=255), nullable=True),
        sa.Column('generation_request_id', sa.String(length=255), nullable=True),
        sa.Column('prompt_used', sa.Text(), nullable=False),
        sa.Column('model_used', sa.String(length=50), nullable=True),
        sa.Column('quality', sa.String(length=20), nullable=True),
        sa.Column('source_url', sa.Text(), nullable=False),
        sa.Column('source_url_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stored_url', sa.Text(), nullable=True),
        sa.Column('storage_path', sa.String(length=1024), nullable=True),
        sa.Column('storage_backend', sa.String(length=20), nullable=True),
        sa.Column('content_hash', sa.String(length=64), nullable=True),
        sa.Column('size_bytes', sa.Integer(), nullable=True),
        sa.Column('content_type', sa.String(length=50), nullable=True),
        sa.Column('width', sa.Integer(), nullable=True),
        sa.Column('height', sa.Integer(), nullable=True),
        sa.Column('metadata_snapshot', sa.JSON(), nullable=True),
        sa.Column('traits_snapshot', sa.JSON(), nullable=True),
        sa.Column('power_levels_snapshot', sa.JSON(), nullable=True),
        sa.Column('player_info_snapshot', sa.JSON(), nullable=True),
        sa.Column('rarity_score', sa.Numeric(precision=10, scale=4), nullable=True),
        sa.Column('is_current', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('downloaded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stored_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('marked_current_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('generation_duration_ms', sa.Integer(), nullable=True),
        sa.Column('download_duration_ms', sa.Integer(), nullable=True),
        sa.Column('storage_duration_ms', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_image_versions_subject_id', 'image_versions', ['subject_id'])
    op.create_index('ix_image_versions_collection_id', 'image_versions', ['collection_id'])
    op.create_index('ix_image_versions_content_hash', 'image_versions', ['content_hash'])
    op.create_index('ix_image_versions_is_current', 'image_versions', ['is_current'])
    op.create_index('ix_image_versions_status', 'image_versions', ['status'])
    op.create_index('ix_image_versions_generated_at', 'image_versions', ['generated_at'])
    op.create_index(
        'ix_image_versions_subject_hash', 'image_versions', ['subject_id', 'content_hash']
    )
    op.create_index(
        'uq_image_versions_current',
        'image_versions',
        ['subject_id'],
        unique=True,
        postgresql_where=sa.text('is_current'),
        sqlite_where=sa.text('is_current = 1'),
    )

    op.create_table(
        'image_subjects',
        sa.Column('subject_id', sa.String(length=255), nullable=False),
        sa.Column('current_version_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ['current_version_id'], ['image_versions.id'], ondelete='SET NULL'
        ),
        sa.PrimaryKeyConstraint('subject_id'),
    )

    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor', sa.String(length=100), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('subject_id', sa.String(length=255), nullable=True),
        sa.Column('image_version_id', sa.String(length=36), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ['image_version_id'], ['image_versions.id'], ondelete='SET NULL'
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_log_actor', 'audit_log', ['actor'])
    op.create_index('ix_audit_log_subject_id', 'audit_log', ['subject_id'])
    op.create_index('ix_audit_log_created_at', 'audit_log', ['created_at'])


def downgrade():
    op.drop_table('audit_log')
    op.drop_table('image_subjects')
    op.drop_index('uq_image_versions_current', table_name='image_versions')
    op.drop_table('image_versions')
