"""Initial schema: history, stats, audit, cache and quota lock tables

Revision ID: 001
Revises: 
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def upgrade() -> None:
    # Create members table
    op.create_table('members',
    sa.Column('member_name', sa.String(length=255), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('member_name')
    )

    # Create projects table
    op.create_table('projects',
    sa.Column('project_key', sa.String(length=255), nullable=False),
    sa.Column('workspace_id', sa.BigInteger(), nullable=False),
    sa.Column('project_id', sa.BigInteger(), nullable=False),
    sa.Column('project_name', sa.String(length=255), nullable=False),
    sa.Column('project_color', sa.String(length=7), nullable=True),
    sa.Column('project_type', sa.String(length=20), server_default='work', nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.CheckConstraint("project_type in ('work', 'non_work')", name='ck_projects_project_type'),
    sa.PrimaryKeyConstraint('project_key'),
    sa.UniqueConstraint('workspace_id', 'project_id', name='uq_projects_workspace_project')
    )

    # Create time_entries table
    op.create_table('time_entries',
    sa.Column('entry_id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('entry_source', sa.String(length=50), nullable=False),
    sa.Column('source_entry_id', sa.String(length=255), nullable=False),
    sa.Column('member_name', sa.String(length=255), nullable=False),
    sa.Column('project_key', sa.String(length=255), nullable=True),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('start_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('stop_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('duration_seconds', sa.Integer(), nullable=False),
    sa.Column('is_running', sa.Boolean(), nullable=False),
    sa.Column('tags', JSON, nullable=True),
    sa.Column('source_date', sa.Date(), nullable=False),
    sa.Column('synced_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('raw', JSON, nullable=True),
    sa.ForeignKeyConstraint(['member_name'], ['members.member_name'], onupdate='CASCADE'),
    sa.ForeignKeyConstraint(['project_key'], ['projects.project_key'], onupdate='CASCADE'),
    sa.PrimaryKeyConstraint('entry_id'),
    sa.UniqueConstraint('entry_source', 'source_entry_id', name='uq_time_entries_source')
    )
    op.create_index('idx_time_entries_member_start', 'time_entries', ['member_name', 'start_at'], unique=False)
    op.create_index('idx_time_entries_source_date', 'time_entries', ['source_date'], unique=False)
    op.create_index('idx_time_entries_project_key', 'time_entries', ['project_key'], unique=False)

    # Create daily_member_stats table
    op.create_table('daily_member_stats',
    sa.Column('stat_date', sa.Date(), nullable=False),
    sa.Column('member_name', sa.String(length=255), nullable=False),
    sa.Column('total_seconds', sa.Integer(), nullable=False),
    sa.Column('entry_count', sa.Integer(), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.ForeignKeyConstraint(['member_name'], ['members.member_name'], onupdate='CASCADE'),
    sa.PrimaryKeyConstraint('stat_date', 'member_name')
    )

    # Create sync_events table
    op.create_table('sync_events',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('scope', sa.String(length=50), nullable=False),
    sa.Column('member_name', sa.String(length=255), nullable=True),
    sa.Column('requested_date', sa.Date(), nullable=False),
    sa.Column('fetched_entries', sa.Integer(), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('error', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sync_events_created_at'), 'sync_events', ['created_at'], unique=False)
    op.create_index('idx_sync_events_scope_date', 'sync_events', ['scope', 'requested_date'], unique=False)

    # Create cache_snapshots table
    op.create_table('cache_snapshots',
    sa.Column('cache_key', sa.String(length=512), nullable=False),
    sa.Column('payload', JSON, nullable=False),
    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('cache_key')
    )
    op.create_index(op.f('ix_cache_snapshots_expires_at'), 'cache_snapshots', ['expires_at'], unique=False)

    # Create api_quota_locks table
    op.create_table('api_quota_locks',
    sa.Column('key', sa.String(length=100), nullable=False),
    sa.Column('locked_until', sa.DateTime(timezone=True), nullable=False),
    sa.Column('last_status', sa.Integer(), nullable=False),
    sa.Column('reason', sa.Text(), nullable=True),
    sa.Column('retry_hint_seconds', sa.Integer(), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('key')
    )


def downgrade() -> None:
    op.drop_table('api_quota_locks')
    op.drop_index(op.f('ix_cache_snapshots_expires_at'), table_name='cache_snapshots')
    op.drop_table('cache_snapshots')
    op.drop_index('idx_sync_events_scope_date', table_name='sync_events')
    op.drop_index(op.f('ix_sync_events_created_at'), table_name='sync_events')
    op.drop_table('sync_events')
    op.drop_table('daily_member_stats')
    op.drop_index('idx_time_entries_project_key', table_name='time_entries')
    op.drop_index('idx_time_entries_source_date', table_name='time_entries')
    op.drop_index('idx_time_entries_member_start', table_name='time_entries')
    op.drop_table('time_entries')
    op.drop_table('projects')
    op.drop_table('members')
