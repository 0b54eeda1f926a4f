"""Base exceptions for the domain layer.

Every exception carries a message key from the i18n catalogue
(``config/i18n/messages.<lang>.yaml``). The key is what callers outside the
process get to see; internal detail goes to the ``detail`` attribute and the
logs only.
"""

from __future__ import annotations

from typing import Optional


class DomainError(Exception):
    """Base class for all domain level exceptions."""

    default_key = "errors.internal"

    def __init__(self, key: Optional[str] = None, detail: Optional[str] = None) -> None:
        self.key = key or self.default_key
        self.detail = detail
        super().__init__(self.key if detail is None else f"{self.key}: {detail}")


class NotFoundError(DomainError):
    """Raised when an entity cannot be located."""

    default_key = "errors.not_found"


class AccessDenied(NotFoundError):
    """Raised when the requester may not see or touch an entity.

    Subclasses :class:`NotFoundError` so that denial and absence look the same
    to the caller.
    """


class PathRejected(NotFoundError):
    """Raised when a stored path does not stay inside its storage root."""

    default_key = "errors.file_not_found"


class ValidationError(DomainError):
    """Raised when data fails domain validation rules."""

    default_key = "errors.invalid_request"


class AuthenticationRequired(DomainError):
    """Raised when no valid requester identity accompanies a request."""

    default_key = "errors.auth_required"


class StorageError(DomainError):
    """Base class for failures of the metadata or blob store."""


class StorageWriteFailure(StorageError):
    """Raised when a blob or a metadata row could not be written."""


class StorageReadFailure(StorageError):
    """Raised when a stored blob could not be read."""


# Alias to keep a generic name for error type hints
Error = DomainError

__all__ = [
    "DomainError",
    "NotFoundError",
    "AccessDenied",
    "PathRejected",
    "ValidationError",
    "AuthenticationRequired",
    "StorageError",
    "StorageWriteFailure",
    "StorageReadFailure",
    "Error",
]
