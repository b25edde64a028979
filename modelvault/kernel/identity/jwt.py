"""
JWT access tokens identifying a principal by username.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from modelvault.config import get_settings
from modelvault.logging_config import get_logger

logger = get_logger(__name__)


class AccessTokenPayload(BaseModel):
    """Decoded access token."""

    sub: str  # username
    exp: datetime
    iat: datetime
    jti: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class JWTManager:
    """Creates and verifies short-lived access tokens."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        access_token_expire_minutes: Optional[int] = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.secret_key
        self.algorithm = algorithm or settings.algorithm
        self.access_token_expire_minutes = (
            access_token_expire_minutes or settings.access_token_expire_minutes
        )

    def create_access_token(
        self,
        username: str,
        expires_delta: Optional[timedelta] = None,
    ) -> TokenResponse:
        now = datetime.now(timezone.utc)
        delta = expires_delta or timedelta(minutes=self.access_token_expire_minutes)
        payload = {
            "sub": username,
            "exp": now + delta,
            "iat": now,
            "jti": str(uuid.uuid4()),
            "type": "access",
        }
        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return TokenResponse(access_token=token, expires_in=int(delta.total_seconds()))

    def verify_access_token(self, token: str) -> Optional[AccessTokenPayload]:
        """
        Decode an access token.

        Returns:
            AccessTokenPayload if the token is valid and unexpired, None otherwise
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as exc:
            logger.debug("Rejected access token: %s", exc)
            return None

        if payload.get("type") != "access" or not payload.get("sub"):
            return None

        return AccessTokenPayload(
            sub=payload["sub"],
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            jti=payload["jti"],
        )


_jwt_manager: Optional[JWTManager] = None


def get_jwt_manager() -> JWTManager:
    """Get or create the default JWT manager."""
    global _jwt_manager
    if _jwt_manager is None:
        _jwt_manager = JWTManager()
    return _jwt_manager


def create_access_token(username: str, expires_delta: Optional[timedelta] = None) -> TokenResponse:
    return get_jwt_manager().create_access_token(username, expires_delta)


def verify_access_token(token: str) -> Optional[AccessTokenPayload]:
    return get_jwt_manager().verify_access_token(token)
