"""
Elements: the branch-scoped model tree.
"""

from modelvault.kernel.elements.element_service import ElementService

__all__ = ["ElementService"]
