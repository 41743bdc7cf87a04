"""create tasks and segments

Revision ID: 001
Revises:
Create Date: 2026-10-17 09:12:44.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'tasks',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('original_filename', sa.String(length=255), nullable=False),
        sa.Column('client_webhook_url', sa.String(length=2048), nullable=True),
        sa.Column('source_path', sa.String(length=1024), nullable=True),
        sa.Column('estimated_duration', sa.Float(), nullable=True),
        sa.Column('total_segments', sa.Integer(), nullable=False),
        sa.Column('completed_segments', sa.Integer(), nullable=False),
        sa.Column('final_transcript', sa.Text(), nullable=True),
        sa.Column('language', sa.String(length=16), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('webhook_status', sa.String(length=20), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cleaned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('completed_segments <= total_segments', name=op.f('ck_tasks_completed_within_total')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_tasks')),
    )
    op.create_index(op.f('ix_tasks_status'), 'tasks', ['status'], unique=False)
    op.create_index(op.f('ix_tasks_updated_at'), 'tasks', ['updated_at'], unique=False)
    op.create_index('idx_tasks_status_completed_at', 'tasks', ['status', 'completed_at'], unique=False)

    op.create_table(
        'segments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('task_id', sa.String(length=36), nullable=False),
        sa.Column('start_time', sa.Float(), nullable=False),
        sa.Column('end_time', sa.Float(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('file_path', sa.String(length=1024), nullable=True),
        sa.Column('correlation_id', sa.String(length=128), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('transcription_text', sa.Text(), nullable=True),
        sa.Column('language', sa.String(length=16), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('start_time >= 0 AND start_time < end_time', name=op.f('ck_segments_valid_time_range')),
        sa.ForeignKeyConstraint(['task_id'], ['tasks.id'], name=op.f('fk_segments_task_id_tasks'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_segments')),
        sa.UniqueConstraint('correlation_id', name=op.f('uq_segments_correlation_id')),
    )
    op.create_index(op.f('ix_segments_task_id'), 'segments', ['task_id'], unique=False)
    op.create_index(op.f('ix_segments_status'), 'segments', ['status'], unique=False)
    op.create_index(op.f('ix_segments_updated_at'), 'segments', ['updated_at'], unique=False)
    op.create_index('idx_segments_status_updated', 'segments', ['status', 'updated_at'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_segments_status_updated', table_name='segments')
    op.drop_index(op.f('ix_segments_updated_at'), table_name='segments')
    op.drop_index(op.f('ix_segments_status'), table_name='segments')
    op.drop_index(op.f('ix_segments_task_id'), table_name='segments')
    op.drop_table('segments')
    op.drop_index('idx_tasks_status_completed_at', table_name='tasks')
    op.drop_index(op.f('ix_tasks_updated_at'), table_name='tasks')
    op.drop_index(op.f('ix_tasks_status'), table_name='tasks')
    op.drop_table('tasks')
