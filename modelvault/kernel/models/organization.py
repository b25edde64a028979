"""
Organization model, the root of the resource hierarchy.
"""

from typing import Any, Dict, Optional

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from modelvault.kernel.models.base import Base, AuditMixin, LifecycleMixin
from modelvault.kernel.models.permissioned import PermissionedMixin


class Organization(Base, AuditMixin, LifecycleMixin, PermissionedMixin):
    """Top-level tenant container."""

    __tablename__ = "organizations"

    kind = "Organization"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    custom: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON,
        default=dict,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Organization {self.id}>"
