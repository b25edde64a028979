"""
User (principal) model.
"""

from typing import Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from modelvault.kernel.models.base import Base, AuditMixin, LifecycleMixin

LOCAL_PROVIDER = "local"


class User(Base, AuditMixin, LifecycleMixin):
    """
    An authenticated actor.

    Users are never physically removed once created; they are archived.
    Credentials of users whose provider is not ``local`` are managed by an
    external directory service and no password hash is stored.
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    is_global_admin: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    provider: Mapped[str] = mapped_column(
        String(50),
        default=LOCAL_PROVIDER,
        nullable=False,
    )
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    fname: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    lname: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    @property
    def is_external(self) -> bool:
        return self.provider != LOCAL_PROVIDER

    def __repr__(self) -> str:
        return f"<User {self.username}{' (admin)' if self.is_global_admin else ''}>"
