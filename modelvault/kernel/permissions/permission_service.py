"""
Permission resolution for the organization -> project -> branch hierarchy.

Resolution is a pure function over already-fetched records. Callers fetch
the chain through the hierarchy validator and pass ancestors nearest-first:

    resolve(user, branch, project, org)
    resolve(user, project, org)
    resolve(user, org)
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol

from modelvault.errors import PermissionDeniedError
from modelvault.logging_config import get_logger

logger = get_logger(__name__)


class PermissionLevel(str, Enum):
    """Cumulative permission levels: admin implies write implies read."""
    NONE = "none"
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"


# Permission hierarchy - higher levels include all lower levels
PERMISSION_HIERARCHY = {
    PermissionLevel.NONE: 0,
    PermissionLevel.READ: 1,
    PermissionLevel.WRITE: 2,
    PermissionLevel.ADMIN: 3,
}

_GRANTABLE = [PermissionLevel.READ, PermissionLevel.WRITE, PermissionLevel.ADMIN]


class Principal(Protocol):
    username: str
    is_global_admin: bool


class PermissionedResource(Protocol):
    id: str
    kind: str
    permissions: Dict[str, List[str]]


def _highest(levels: Iterable[str]) -> PermissionLevel:
    best = PermissionLevel.NONE
    for raw in levels:
        try:
            level = PermissionLevel(raw)
        except ValueError:
            logger.warning("Ignoring unknown permission level %r", raw)
            continue
        if PERMISSION_HIERARCHY[level] > PERMISSION_HIERARCHY[best]:
            best = level
    return best


def resolve(
    principal: Principal,
    resource: PermissionedResource,
    *ancestors: PermissionedResource,
) -> PermissionLevel:
    """
    Compute the effective permission level of a principal on a resource.

    Permission sources (in order of precedence):
    1. Global admin - always admin
    2. The resource's own entry for the principal, when present
    3. The nearest ancestor's effective level (recursively)

    An explicit child entry wins over the inherited one even when it is
    lower: an org-level ``write`` does not lift a project-level ``read``.
    """
    if principal.is_global_admin:
        return PermissionLevel.ADMIN

    held = (resource.permissions or {}).get(principal.username)
    if held:
        return _highest(held)

    if ancestors:
        return resolve(principal, ancestors[0], *ancestors[1:])

    return PermissionLevel.NONE


def check_permission(
    principal: Principal,
    required_level: PermissionLevel,
    resource: PermissionedResource,
    *ancestors: PermissionedResource,
) -> bool:
    """Check if principal has at least the required level on a resource."""
    level = resolve(principal, resource, *ancestors)
    return PERMISSION_HIERARCHY[level] >= PERMISSION_HIERARCHY[required_level]


def require_at_least(
    principal: Principal,
    required_level: PermissionLevel,
    resource: PermissionedResource,
    *ancestors: PermissionedResource,
) -> PermissionLevel:
    """
    Gate an operation on a minimum permission level.

    Returns:
        The resolved level, when sufficient

    Raises:
        PermissionDeniedError: carrying the resource id and required level
    """
    level = resolve(principal, resource, *ancestors)
    if PERMISSION_HIERARCHY[level] < PERMISSION_HIERARCHY[required_level]:
        logger.info(
            "Permission denied",
            extra={
                "username": principal.username,
                "resource_id": resource.id,
                "required": required_level.value,
                "resolved": level.value,
            },
        )
        raise PermissionDeniedError(resource.id, required_level.value)
    return level


def cumulative_levels(level: PermissionLevel) -> List[str]:
    """``write`` -> ``["read", "write"]``; ``none`` -> ``[]``."""
    rank = PERMISSION_HIERARCHY[level]
    return [lvl.value for lvl in _GRANTABLE if PERMISSION_HIERARCHY[lvl] <= rank]


def with_permission(
    permissions: Optional[Dict[str, List[str]]],
    username: str,
    level: PermissionLevel,
) -> Dict[str, List[str]]:
    """
    Return a new permissions mapping with ``username`` set to ``level``.

    Setting NONE removes the key entirely so an empty grant never exists.
    """
    if level == PermissionLevel.NONE:
        return without_permission(permissions, username)
    updated = dict(permissions or {})
    updated[username] = cumulative_levels(level)
    return updated


def without_permission(
    permissions: Optional[Dict[str, List[str]]],
    username: str,
) -> Dict[str, List[str]]:
    """Return a new permissions mapping with ``username`` removed."""
    updated = dict(permissions or {})
    updated.pop(username, None)
    return updated
