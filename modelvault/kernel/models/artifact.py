"""
Artifact models - binary attachments with an append-only blob history.

Artifact metadata lives here; the blobs themselves live in the
content-addressable blob store and are referenced by SHA-256 hash.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from modelvault.kernel.models.base import Base, AuditMixin, LifecycleMixin, utcnow


class Artifact(Base, AuditMixin, LifecycleMixin):
    """
    One logical binary attachment. ID is ``org:project:branch:artifact``.

    The current blob is ``history[-1].hash``; a ``None`` hash means the
    artifact carries metadata only.
    """

    __tablename__ = "artifacts"

    kind = "Artifact"

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
    filename: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )
    content_type: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    custom: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )

    history: Mapped[List["ArtifactHistoryEntry"]] = relationship(
        "ArtifactHistoryEntry",
        back_populates="artifact",
        cascade="all, delete-orphan",
        order_by="ArtifactHistoryEntry.position",
        lazy="selectin",
    )

    @property
    def current_hash(self) -> Optional[str]:
        return self.history[-1].hash if self.history else None

    @property
    def hashes(self) -> List[str]:
        """Distinct non-null hashes referenced anywhere in the history."""
        seen: Dict[str, None] = {}
        for entry in self.history:
            if entry.hash is not None:
                seen.setdefault(entry.hash, None)
        return list(seen)

    def __repr__(self) -> str:
        return f"<Artifact {self.id}>"


class ArtifactHistoryEntry(Base):
    """Immutable record linking an artifact version to a blob hash."""

    __tablename__ = "artifact_history"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    artifact_id: Mapped[str] = mapped_column(
        String(270),
        ForeignKey("artifacts.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    hash: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )
    user: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.username"),
        nullable=False,
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    artifact: Mapped["Artifact"] = relationship(
        "Artifact",
        back_populates="history",
    )

    __table_args__ = (
        Index("ix_artifact_history_artifact_position", "artifact_id", "position", unique=True),
    )

    def __repr__(self) -> str:
        return f"<ArtifactHistoryEntry {self.artifact_id}#{self.position} {self.hash}>"
