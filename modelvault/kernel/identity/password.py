"""
Password hashing for local users, using bcrypt.
"""

from typing import Optional

import bcrypt

from modelvault.config import get_settings

# bcrypt ignores everything past 72 bytes
BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """bcrypt hashing with a configurable work factor."""

    def __init__(self, rounds: Optional[int] = None):
        self.rounds = rounds or get_settings().bcrypt_rounds

    @staticmethod
    def _encode(password: str) -> bytes:
        return password.encode("utf-8")[:BCRYPT_MAX_BYTES]

    def hash(self, password: str) -> str:
        hashed = bcrypt.hashpw(self._encode(password), bcrypt.gensalt(rounds=self.rounds))
        return hashed.decode("utf-8")

    def verify(self, plain_password: str, hashed_password: Optional[str]) -> bool:
        """
        Check a password against a stored hash.

        A missing or malformed hash never verifies.
        """
        if not hashed_password:
            return False
        try:
            return bcrypt.checkpw(self._encode(plain_password), hashed_password.encode("utf-8"))
        except ValueError:
            return False

    def needs_rehash(self, hashed_password: str) -> bool:
        """True when the stored hash was made with a different work factor."""
        # Format: $2b$<rounds>$<salt+digest>
        parts = hashed_password.split("$")
        if len(parts) < 4 or not parts[2].isdigit():
            return True
        return int(parts[2]) != self.rounds


def hash_password(password: str) -> str:
    return PasswordHasher().hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    return PasswordHasher().verify(plain_password, hashed_password)
