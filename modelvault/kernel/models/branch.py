"""
Branch model.
"""

from typing import Any, Dict, Optional

from sqlalchemy import Boolean, ForeignKey, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from modelvault.kernel.models.base import Base, AuditMixin, LifecycleMixin
from modelvault.kernel.models.permissioned import PermissionedMixin

MASTER_BRANCH = "master"


class Branch(Base, AuditMixin, LifecycleMixin, PermissionedMixin):
    """
    A branch of a project. ID is ``org:project:branch``.

    Tag branches are read-only snapshots: artifacts under them cannot be
    created, updated or removed.
    """

    __tablename__ = "branches"

    kind = "Branch"

    id: Mapped[str] = mapped_column(
        String(200),
        primary_key=True,
    )
    project_id: Mapped[str] = mapped_column(
        String(130),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        default="",
        nullable=False,
    )
    source_id: Mapped[Optional[str]] = mapped_column(
        String(200),
        ForeignKey("branches.id", ondelete="SET NULL"),
        nullable=True,
    )
    tag: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    custom: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON,
        default=dict,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Branch {self.id}{' (tag)' if self.tag else ''}>"
