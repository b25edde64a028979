"""
Base model with common fields and utilities.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleState(str, Enum):
    """Soft-delete lifecycle of a record."""
    ACTIVE = "active"
    ARCHIVED = "archived"


class AuditMixin:
    """Mixin for creation/modification timestamps and actors."""

    created_on: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_on: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
    created_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    last_modified_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )


class LifecycleMixin:
    """
    Mixin holding a single lifecycle state with the time it last changed.

    ``archived_by`` is only meaningful while the state is ARCHIVED and is
    cleared on unarchive.
    """

    lifecycle: Mapped[LifecycleState] = mapped_column(
        String(20),
        default=LifecycleState.ACTIVE,
        nullable=False,
        index=True,
    )
    lifecycle_changed_on: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )
    archived_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        default=None,
    )

    @property
    def archived(self) -> bool:
        return self.lifecycle == LifecycleState.ARCHIVED

    @property
    def archived_on(self) -> Optional[datetime]:
        return self.lifecycle_changed_on if self.archived else None

    def archive(self, username: str) -> None:
        self.lifecycle = LifecycleState.ARCHIVED
        self.lifecycle_changed_on = utcnow()
        self.archived_by = username

    def unarchive(self) -> None:
        self.lifecycle = LifecycleState.ACTIVE
        self.lifecycle_changed_on = utcnow()
        self.archived_by = None
