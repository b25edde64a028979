"""
Project model.
"""

from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import ForeignKey, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from modelvault.kernel.models.base import Base, AuditMixin, LifecycleMixin
from modelvault.kernel.models.permissioned import PermissionedMixin


class ProjectVisibility(str, Enum):
    """Who may see a project by default."""
    INTERNAL = "internal"
    PRIVATE = "private"


class Project(Base, AuditMixin, LifecycleMixin, PermissionedMixin):
    """A project scoped to one organization. ID is ``org:project``."""

    __tablename__ = "projects"

    kind = "Project"

    id: Mapped[str] = mapped_column(
        String(130),
        primary_key=True,
    )
    org_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    visibility: Mapped[ProjectVisibility] = mapped_column(
        String(20),
        default=ProjectVisibility.PRIVATE,
        nullable=False,
    )
    custom: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON,
        default=dict,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Project {self.id}>"
