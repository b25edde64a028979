"""
Identity Core - Authentication and user management.
"""

from modelvault.kernel.identity.password import PasswordHasher, verify_password, hash_password
from modelvault.kernel.identity.jwt import (
    JWTManager,
    TokenResponse,
    AccessTokenPayload,
    create_access_token,
    verify_access_token,
)
from modelvault.kernel.identity.user_service import UserService

__all__ = [
    "PasswordHasher",
    "verify_password",
    "hash_password",
    "JWTManager",
    "TokenResponse",
    "AccessTokenPayload",
    "create_access_token",
    "verify_access_token",
    "UserService",
]
