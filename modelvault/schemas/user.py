"""
User schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from modelvault.kernel.identifiers import PART_PATTERN
from modelvault.kernel.models.user import LOCAL_PROVIDER


class UserCreate(BaseModel):
    """User creation request (global admins only)."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(..., min_length=1, max_length=64)
    password: Optional[str] = Field(None, min_length=8, max_length=128)
    provider: str = Field(LOCAL_PROVIDER, min_length=1, max_length=50)
    is_global_admin: bool = False
    email: Optional[EmailStr] = None
    fname: Optional[str] = Field(None, max_length=255)
    lname: Optional[str] = Field(None, max_length=255)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        if not PART_PATTERN.fullmatch(v):
            raise ValueError("Username may only contain letters, digits, '_' and '-'")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not any(c.isupper() for c in v):
            raise ValueError("Password must contain at least one uppercase letter")
        if not any(c.islower() for c in v):
            raise ValueError("Password must contain at least one lowercase letter")
        if not any(c.isdigit() for c in v):
            raise ValueError("Password must contain at least one digit")
        return v

    @model_validator(mode="after")
    def check_credentials(self) -> "UserCreate":
        if self.provider == LOCAL_PROVIDER and not self.password:
            raise ValueError("Local users require a password")
        if self.provider != LOCAL_PROVIDER and self.password:
            raise ValueError("Externally managed users cannot have a local password")
        return self


class UserResponse(BaseModel):
    """User profile response."""

    model_config = ConfigDict(from_attributes=True)

    username: str
    is_global_admin: bool
    provider: str
    is_external: bool
    email: Optional[str] = None
    fname: Optional[str] = None
    lname: Optional[str] = None
    archived: bool
    created_on: datetime
    created_by: Optional[str] = None


class UserUpdate(BaseModel):
    """Profile update; the user themselves or a global admin."""

    model_config = ConfigDict(extra="forbid")

    email: Optional[EmailStr] = None
    fname: Optional[str] = Field(None, max_length=255)
    lname: Optional[str] = Field(None, max_length=255)


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1, max_length=128)
