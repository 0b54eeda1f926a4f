from __future__ import annotations

import logging
import re
import secrets
import stat
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional

from libs.core.exceptions import (
    NotFoundError,
    PathRejected,
    StorageReadFailure,
    StorageWriteFailure,
    ValidationError,
)

from . import paths
from .uploads import FilePayload, normalize_mime

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
MAX_BASE_LENGTH = 100


@dataclass(frozen=True)
class StoredRef:
    """Where a freshly written blob lives and what it holds."""

    original_filename: str
    stored_filename: str
    stored_path: str
    size: int
    mime_type: Optional[str]


def _split_name(filename: str) -> tuple[str, str]:
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    suffix = PurePosixPath(name).suffix
    base = name[: len(name) - len(suffix)] if suffix else name
    return base, suffix


def stored_name(prefix: str, original_filename: str) -> str:
    """Build ``<prefix>-<millis>-<random>-<base><ext>`` for a new blob."""
    base, suffix = _split_name(original_filename)
    safe_base = re.sub(r"[^a-zA-Z0-9]", "_", base)[:MAX_BASE_LENGTH] or "file"
    safe_ext = re.sub(r"[^a-zA-Z0-9]", "", suffix)
    ext = f".{safe_ext.lower()}" if safe_ext else ""
    unique = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}"
    return f"{prefix}-{unique}-{safe_base}{ext}"


class BlobStore:
    """Flat directory of blobs with collision resistant names."""

    def __init__(self, root: Path, prefix: str = "note", chunk_size: int = CHUNK_SIZE) -> None:
        self.root = Path(root)
        self.prefix = prefix
        self.chunk_size = chunk_size

    # ------------------------------------------------------------------
    # public API
    def put(
        self,
        payload: FilePayload,
        max_bytes: Optional[int] = None,
        prefix: Optional[str] = None,
    ) -> StoredRef:
        """Stream ``payload`` into a new blob and describe it."""

        self.root.mkdir(parents=True, exist_ok=True)
        filename = stored_name(prefix or self.prefix, payload.filename)
        target = self.root / filename

        total = 0
        try:
            # "xb" never replaces an existing blob
            with target.open("xb") as out:
                while True:
                    chunk = payload.stream.read(self.chunk_size)
                    if not chunk:
                        break
                    total += len(chunk)
                    if max_bytes is not None and total > max_bytes:
                        raise ValidationError("uploads.too_large", detail=payload.filename)
                    out.write(chunk)
        except ValidationError:
            target.unlink(missing_ok=True)
            raise
        except OSError as exc:
            target.unlink(missing_ok=True)
            logger.error(
                "blob_write_failed",
                extra={"stored_filename": filename, "error_class": type(exc).__name__},
            )
            raise StorageWriteFailure(detail=str(exc)) from exc

        logger.info("blob_written", extra={"stored_filename": filename, "size": total})
        return StoredRef(
            original_filename=payload.filename,
            stored_filename=filename,
            stored_path=filename,
            size=total,
            mime_type=normalize_mime(payload.content_type) or None,
        )

    def open(self, stored_path: str) -> Path:
        """Resolve a stored path for reading."""

        path = paths.resolve(self.root, stored_path)
        try:
            mode = path.stat().st_mode
        except FileNotFoundError as exc:
            raise NotFoundError("errors.file_not_found") from exc
        except OSError as exc:
            raise StorageReadFailure(detail=str(exc)) from exc
        if not stat.S_ISREG(mode):
            raise NotFoundError("errors.file_not_found")
        return path

    def delete(self, stored_path: str) -> bool:
        """Remove a blob; ``False`` when there was nothing (allowed) to remove.

        A path that fails sanitization is reported as not found and never
        touched, leaving at worst an orphan blob behind.
        """

        try:
            path = paths.resolve(self.root, stored_path)
        except PathRejected as exc:
            logger.warning(
                "blob_delete_rejected_path",
                extra={"stored_path": stored_path, "reason": exc.detail},
            )
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageWriteFailure(detail=str(exc)) from exc
        logger.info("blob_deleted", extra={"stored_path": stored_path})
        return True

    def discard(self, refs: Iterable[StoredRef]) -> None:
        """Best-effort removal of blobs written by a failed operation."""

        for ref in refs:
            try:
                self.delete(ref.stored_path)
            except StorageWriteFailure:
                logger.error("blob_cleanup_failed", extra={"stored_path": ref.stored_path})


__all__ = ["BlobStore", "StoredRef", "stored_name", "CHUNK_SIZE"]
