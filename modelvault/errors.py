"""
Typed errors raised by the kernel.

Every failure that leaves a kernel service is one of these. Storage driver
exceptions are wrapped into OperationError with the original cause attached.
"""

from typing import Optional


class ModelVaultError(Exception):
    """Base class for all typed kernel errors."""

    status_code: int = 500
    default_level: str = "error"

    def __init__(self, message: str, level: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.level = level or self.default_level

    def body(self) -> dict:
        return {"detail": self.message, "level": self.level}


class DataFormatError(ModelVaultError):
    """Malformed input. Always the caller's fault."""

    status_code = 400
    default_level = "warn"


class InvalidIdentifier(DataFormatError):
    """A composite identifier or one of its parts is malformed."""


class NotFoundError(ModelVaultError):
    """A referenced resource, artifact or blob does not exist."""

    status_code = 404
    default_level = "warn"


class PermissionDeniedError(ModelVaultError):
    """The principal lacks the required permission level."""

    status_code = 403
    default_level = "warn"

    def __init__(
        self,
        resource_id: str,
        required_level: str,
        message: str = "Insufficient permission.",
    ):
        super().__init__(message)
        self.resource_id = resource_id
        self.required_level = required_level


class ArchivedError(ModelVaultError):
    """An ancestor (or the target itself) is archived."""

    status_code = 409
    default_level = "warn"

    def __init__(self, resource_id: str, message: str):
        super().__init__(message)
        self.resource_id = resource_id


class OperationError(ModelVaultError):
    """
    A business rule violation or a storage failure.

    Conflicts (duplicate ids, tag-branch mutations) map to 409. Storage
    failures are created with conflict=False and map to 500.
    """

    default_level = "warn"

    def __init__(
        self,
        message: str,
        *,
        conflict: bool = True,
        cause: Optional[BaseException] = None,
        level: Optional[str] = None,
    ):
        super().__init__(message, level=level or ("warn" if conflict else "error"))
        self.conflict = conflict
        self.cause = cause

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return 409 if self.conflict else 500
