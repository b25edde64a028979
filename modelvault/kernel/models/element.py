"""
Element model - the structured records of a branch.

Elements form a containment tree through ``parent_id``; an element with a
``source_id``/``target_id`` pair is a relationship between two others.
"""

from typing import Any, Dict, Optional

from sqlalchemy import ForeignKey, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from modelvault.kernel.models.base import Base, AuditMixin, LifecycleMixin


class Element(Base, AuditMixin, LifecycleMixin):
    """A model element. ID is ``org:project:branch:element``."""

    __tablename__ = "elements"

    kind = "Element"

    id: Mapped[str] = mapped_column(
        String(270),
        primary_key=True,
    )
    project_id: Mapped[str] = mapped_column(
        String(130),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    branch_id: Mapped[str] = mapped_column(
        String(200),
        ForeignKey("branches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        default="",
        nullable=False,
    )
    documentation: Mapped[str] = mapped_column(
        Text,
        default="",
        nullable=False,
    )
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(270),
        ForeignKey("elements.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    source_id: Mapped[Optional[str]] = mapped_column(
        String(270),
        ForeignKey("elements.id", ondelete="SET NULL"),
        nullable=True,
    )
    target_id: Mapped[Optional[str]] = mapped_column(
        String(270),
        ForeignKey("elements.id", ondelete="SET NULL"),
        nullable=True,
    )
    custom: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )

    @property
    def is_relationship(self) -> bool:
        return self.source_id is not None

    def __repr__(self) -> str:
        return f"<Element {self.id}>"
