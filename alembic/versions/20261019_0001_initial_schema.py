"""Initial schema - resource hierarchy, artifacts and audit log

Revision ID: 0001
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns():
    return [
        sa.Column('created_on', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_on', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('created_by', sa.String(64), nullable=True),
        sa.Column('last_modified_by', sa.String(64), nullable=True),
    ]


def _lifecycle_columns():
    return [
        sa.Column('lifecycle', sa.String(20), nullable=False, server_default='active', index=True),
        sa.Column('lifecycle_changed_on', sa.DateTime(timezone=True), nullable=True),
        sa.Column('archived_by', sa.String(64), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('username', sa.String(64), primary_key=True),
        sa.Column('is_global_admin', sa.Boolean(), nullable=False, default=False),
        sa.Column('provider', sa.String(50), nullable=False, server_default='local'),
        sa.Column('password_hash', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('fname', sa.String(255), nullable=True),
        sa.Column('lname', sa.String(255), nullable=True),
        *_audit_columns(),
        *_lifecycle_columns(),
    )

    op.create_table(
        'organizations',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('custom', sa.JSON(), nullable=True),
        sa.Column('permissions', sa.JSON(), nullable=False),
        *_audit_columns(),
        *_lifecycle_columns(),
    )

    op.create_table(
        'projects',
        sa.Column('id', sa.String(130), primary_key=True),
        sa.Column('org_id', sa.String(64), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('visibility', sa.String(20), nullable=False, server_default='private'),
        sa.Column('custom', sa.JSON(), nullable=True),
        sa.Column('permissions', sa.JSON(), nullable=False),
        *_audit_columns(),
        *_lifecycle_columns(),
    )

    op.create_table(
        'branches',
        sa.Column('id', sa.String(200), primary_key=True),
        sa.Column('project_id', sa.String(130), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False, server_default=''),
        sa.Column('source_id', sa.String(200), sa.ForeignKey('branches.id', ondelete='SET NULL'), nullable=True),
        sa.Column('tag', sa.Boolean(), nullable=False, default=False),
        sa.Column('custom', sa.JSON(), nullable=True),
        sa.Column('permissions', sa.JSON(), nullable=False),
        *_audit_columns(),
        *_lifecycle_columns(),
    )

    op.create_table(
        'artifacts',
        sa.Column('id', sa.String(270), primary_key=True),
        sa.Column('project_id', sa.String(130), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('branch_id', sa.String(200), sa.ForeignKey('branches.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('filename', sa.String(255), nullable=True, index=True),
        sa.Column('content_type', sa.String(255), nullable=True),
        sa.Column('custom', sa.JSON(), nullable=False),
        *_audit_columns(),
        *_lifecycle_columns(),
    )

    op.create_table(
        'artifact_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('artifact_id', sa.String(270), sa.ForeignKey('artifacts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('hash', sa.String(64), nullable=True, index=True),
        sa.Column('user', sa.String(64), sa.ForeignKey('users.username'), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_artifact_history_artifact_position', 'artifact_history', ['artifact_id', 'position'], unique=True)

    op.create_table(
        'event_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False, index=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(270), nullable=False, index=True),
        sa.Column('username', sa.String(64), nullable=True, index=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, index=True),
    )
    op.create_index('ix_event_logs_entity', 'event_logs', ['entity_type', 'entity_id'])
    op.create_index('ix_event_logs_user_time', 'event_logs', ['username', 'created_at'])


def downgrade() -> None:
    op.drop_table('event_logs')
    op.drop_table('artifact_history')
    op.drop_table('artifacts')
    op.drop_table('branches')
    op.drop_table('projects')
    op.drop_table('organizations')
    op.drop_table('users')
