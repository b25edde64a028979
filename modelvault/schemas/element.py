"""
Element schemas.

``parent``, ``source`` and ``target`` name other elements of the same branch
by their leaf id.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ElementCreate(BaseModel):
    """Element creation request."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field("", max_length=255)
    documentation: str = ""
    parent: Optional[str] = Field(None, max_length=64)
    source: Optional[str] = Field(None, max_length=64)
    target: Optional[str] = Field(None, max_length=64)
    custom: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def relationship_has_both_ends(self) -> "ElementCreate":
        if (self.source is None) != (self.target is None):
            raise ValueError("A relationship needs both a source and a target")
        return self


class ElementUpdate(BaseModel):
    """
    Element patch. Unset fields are left alone.

    Setting ``parent`` to null moves the element to the top of the tree.
    """

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, max_length=255)
    documentation: Optional[str] = None
    parent: Optional[str] = Field(None, max_length=64)
    custom: Optional[Dict[str, Any]] = None
    archived: Optional[bool] = None


class ElementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    branch_id: str
    name: str
    documentation: str
    parent_id: Optional[str]
    source_id: Optional[str]
    target_id: Optional[str]
    custom: Dict[str, Any]
    archived: bool
    archived_on: Optional[datetime] = None
    archived_by: Optional[str] = None
    created_on: datetime
    updated_on: datetime
    created_by: Optional[str] = None
    last_modified_by: Optional[str] = None


class ElementRemoval(BaseModel):
    removed: List[str]
    count: int
