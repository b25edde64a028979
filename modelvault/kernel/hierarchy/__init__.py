"""
Hierarchy validation - existence and archived-state checks up the chain.
"""

from modelvault.kernel.hierarchy.validator import (
    ChainIds,
    HierarchyValidator,
    ResolvedChain,
    require_mutable_branch,
)

__all__ = [
    "ChainIds",
    "HierarchyValidator",
    "ResolvedChain",
    "require_mutable_branch",
]
