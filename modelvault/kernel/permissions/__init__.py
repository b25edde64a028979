"""
Permission Core - effective permission resolution across the hierarchy.
"""

from modelvault.kernel.permissions.permission_service import (
    PermissionLevel,
    PERMISSION_HIERARCHY,
    resolve,
    require_at_least,
    check_permission,
    cumulative_levels,
    with_permission,
    without_permission,
)

__all__ = [
    "PermissionLevel",
    "PERMISSION_HIERARCHY",
    "resolve",
    "require_at_least",
    "check_permission",
    "cumulative_levels",
    "with_permission",
    "without_permission",
]
