"""
Kernel layer.

- Identifier composition for the org -> project -> branch -> artifact/element tree
- Permission resolution and hierarchy validation
- Content-addressable blob store and versioned artifact metadata
- Branch-scoped element trees
- Immutable event log of every mutation
- Identity core (users, passwords, tokens)

Services own their transaction: each mutating call commits once, and blob
garbage collection only runs after the metadata deletion has committed.
"""

from modelvault.kernel.models import (
    User,
    Organization,
    Project,
    ProjectVisibility,
    Branch,
    Element,
    Artifact,
    ArtifactHistoryEntry,
    EventLog,
    EventType,
    LifecycleState,
)

__all__ = [
    # Identity
    "User",
    # Hierarchy
    "Organization",
    "Project",
    "ProjectVisibility",
    "Branch",
    # Elements
    "Element",
    # Artifacts
    "Artifact",
    "ArtifactHistoryEntry",
    # Event Log
    "EventLog",
    "EventType",
    # Lifecycle
    "LifecycleState",
]
