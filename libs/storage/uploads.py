"""Screening of incoming file parts before they reach permanent storage."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import BinaryIO, FrozenSet, Iterable, Optional, Sequence

from libs.core.exceptions import ValidationError

# width of the original_filename column
MAX_FILENAME_LENGTH = 255


@dataclass(frozen=True)
class UploadPolicy:
    """Whitelists and limits for one kind of upload (attachments, avatars)."""

    allowed_extensions: FrozenSet[str]
    allowed_mime_types: FrozenSet[str]
    max_bytes: int
    max_files: int

    @classmethod
    def build(
        cls,
        extensions: Iterable[str],
        mime_types: Iterable[str],
        max_bytes: int,
        max_files: int,
    ) -> "UploadPolicy":
        exts = set()
        for ext in extensions:
            ext = ext.strip().lower()
            if ext and not ext.startswith("."):
                ext = "." + ext
            if ext:
                exts.add(ext)
        mimes = {m.strip().lower() for m in mime_types if m.strip()}
        return cls(frozenset(exts), frozenset(mimes), max_bytes, max_files)


@dataclass
class FilePayload:
    """A single file part as received from the transport."""

    filename: str
    content_type: str
    size: Optional[int]
    stream: BinaryIO


@dataclass(frozen=True)
class Verdict:
    accepted: bool
    reason: Optional[str] = None

    @classmethod
    def accept(cls) -> "Verdict":
        return cls(True)

    @classmethod
    def reject(cls, reason: str) -> "Verdict":
        return cls(False, reason)


def file_extension(filename: str) -> str:
    """Lower-cased extension of the last path component of ``filename``."""
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    return PurePosixPath(name).suffix.lower()


def normalize_mime(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


class UploadValidator:
    """Apply an :class:`UploadPolicy` to file payloads."""

    def __init__(self, policy: UploadPolicy) -> None:
        self.policy = policy

    def check(self, payload: FilePayload) -> Verdict:
        """Decide on a single payload without reading its stream."""
        if not payload.filename:
            return Verdict.reject("uploads.missing_filename")
        if len(payload.filename) > MAX_FILENAME_LENGTH:
            return Verdict.reject("uploads.filename_too_long")
        if file_extension(payload.filename) not in self.policy.allowed_extensions:
            return Verdict.reject("uploads.extension_not_allowed")
        if normalize_mime(payload.content_type) not in self.policy.allowed_mime_types:
            return Verdict.reject("uploads.mime_not_allowed")
        if payload.size is not None and payload.size > self.policy.max_bytes:
            return Verdict.reject("uploads.too_large")
        return Verdict.accept()

    def check_batch(self, payloads: Sequence[FilePayload]) -> None:
        """Reject the whole batch if it is too big or any payload is rejected."""
        if len(payloads) > self.policy.max_files:
            raise ValidationError("uploads.too_many_files")
        for payload in payloads:
            verdict = self.check(payload)
            if not verdict.accepted:
                raise ValidationError(verdict.reason, detail=payload.filename)


__all__ = [
    "UploadPolicy",
    "FilePayload",
    "Verdict",
    "UploadValidator",
    "file_extension",
    "normalize_mime",
]
