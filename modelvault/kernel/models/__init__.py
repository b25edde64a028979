"""
Kernel Data Models

Core SQLAlchemy models: the resource hierarchy, users, elements, artifacts
with their blob history, and the audit event log.
"""

from modelvault.kernel.models.base import (
    Base,
    AuditMixin,
    LifecycleMixin,
    LifecycleState,
    utcnow,
)
from modelvault.kernel.models.permissioned import PermissionedMixin
from modelvault.kernel.models.user import User, LOCAL_PROVIDER
from modelvault.kernel.models.organization import Organization
from modelvault.kernel.models.project import Project, ProjectVisibility
from modelvault.kernel.models.branch import Branch, MASTER_BRANCH
from modelvault.kernel.models.element import Element
from modelvault.kernel.models.artifact import (
    Artifact,
    ArtifactHistoryEntry,
)
from modelvault.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "AuditMixin",
    "LifecycleMixin",
    "LifecycleState",
    "PermissionedMixin",
    "utcnow",
    # User
    "User",
    "LOCAL_PROVIDER",
    # Hierarchy
    "Organization",
    "Project",
    "ProjectVisibility",
    "Branch",
    "MASTER_BRANCH",
    # Elements
    "Element",
    # Artifacts
    "Artifact",
    "ArtifactHistoryEntry",
    # Event Log
    "EventLog",
    "EventType",
]
