"""Filesystem side of the note store: path confinement, upload screening, blobs."""

from . import paths
from .uploads import FilePayload, UploadPolicy, UploadValidator, Verdict
from .blob_store import BlobStore, StoredRef

__all__ = [
    "paths",
    "FilePayload",
    "UploadPolicy",
    "UploadValidator",
    "Verdict",
    "BlobStore",
    "StoredRef",
]
