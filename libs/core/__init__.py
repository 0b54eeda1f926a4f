"""Core library exposing domain models, settings, exceptions and access rules."""

from .settings import Settings, NoteLimits, get_settings
from .exceptions import (
    DomainError,
    NotFoundError,
    AccessDenied,
    PathRejected,
    ValidationError,
    AuthenticationRequired,
    StorageError,
    StorageWriteFailure,
    StorageReadFailure,
    Error,
)
from .models import UserProfile, Note, Attachment, NoteView
from .access import Access, decide

__all__ = [
    "Settings",
    "NoteLimits",
    "get_settings",
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
    "UserProfile",
    "Note",
    "Attachment",
    "NoteView",
    "Access",
    "decide",
]
