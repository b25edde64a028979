"""Elements - branch-scoped model tree

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "elements",
        sa.Column("id", sa.String(270), primary_key=True),
        sa.Column("project_id", sa.String(130), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("branch_id", sa.String(200), sa.ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("documentation", sa.Text(), nullable=False, server_default=""),
        sa.Column("parent_id", sa.String(270), sa.ForeignKey("elements.id", ondelete="CASCADE"), nullable=True, index=True),
        sa.Column("source_id", sa.String(270), sa.ForeignKey("elements.id", ondelete="SET NULL"), nullable=True),
        sa.Column("target_id", sa.String(270), sa.ForeignKey("elements.id", ondelete="SET NULL"), nullable=True),
        sa.Column("custom", sa.JSON(), nullable=False),
        sa.Column("created_on", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_on", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("last_modified_by", sa.String(64), nullable=True),
        sa.Column("lifecycle", sa.String(20), nullable=False, server_default="active", index=True),
        sa.Column("lifecycle_changed_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_by", sa.String(64), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("elements")
