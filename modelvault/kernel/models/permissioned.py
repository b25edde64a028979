"""
Permission sub-model shared by organizations, projects and branches.
"""

from typing import Dict, List

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column


class PermissionedMixin:
    """
    Mixin for resources carrying a ``permissions`` mapping.

    The mapping goes from username to the cumulative list of levels held,
    e.g. ``{"alice": ["read", "write"]}``. A username is either absent or
    maps to a non-empty list.
    """

    # Display name used in error messages ("Organization", "Project", ...)
    kind: str = "Resource"

    permissions: Mapped[Dict[str, List[str]]] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )
