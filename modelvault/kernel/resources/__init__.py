"""
Resource hierarchy management: organizations, projects and branches.
"""

from modelvault.kernel.resources.resource_service import ResourceService

__all__ = ["ResourceService"]
