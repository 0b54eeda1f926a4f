from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from libs.core.access import decide
from libs.core.exceptions import (
    AccessDenied,
    NotFoundError,
    PathRejected,
    StorageWriteFailure,
    ValidationError,
)
from libs.core.models import Attachment, Note, NoteView
from libs.core.settings import NoteLimits
from libs.db import Database, NoteRepo
from libs.storage import BlobStore, FilePayload, StoredRef, UploadValidator, paths

logger = logging.getLogger(__name__)


def clean_note_fields(
    title: Optional[str], content: Optional[str], limits: NoteLimits
) -> Tuple[str, str]:
    """Trim and bound-check note fields; raise on anything unusable."""

    if title is None or content is None:
        raise ValidationError("notes.title_content_required")
    title = title.strip()
    content = content.strip()
    if not title:
        raise ValidationError("notes.title_empty")
    if not content:
        raise ValidationError("notes.content_empty")
    if len(title) > limits.max_title_length:
        raise ValidationError("notes.title_too_long")
    if len(content.encode("utf-8")) > limits.max_content_bytes:
        raise ValidationError("notes.content_too_long")
    return title, content


class NoteService:
    """Keep note metadata and attachment blobs consistent.

    Create and update run as a pipeline: validate, write blobs, write
    metadata in one transaction. If anything after the first blob write
    fails (including cancellation of the request) the blobs written so far
    are discarded before the error propagates. Deletes remove metadata first
    and treat blob removal as best effort: an orphan blob is acceptable, a row
    pointing at a missing blob is not.
    """

    def __init__(
        self,
        database: Database,
        blobs: BlobStore,
        validator: UploadValidator,
        limits: NoteLimits,
    ) -> None:
        self.database = database
        self.blobs = blobs
        self.validator = validator
        self.limits = limits

    # ------------------------------------------------------------------
    async def create(
        self,
        requester_id: int,
        title: Optional[str],
        content: Optional[str],
        is_public: bool = False,
        files: Sequence[FilePayload] = (),
    ) -> NoteView:
        title, content = clean_note_fields(title, content, self.limits)
        self.validator.check_batch(files)

        stored: List[StoredRef] = []
        try:
            for payload in files:
                await run_in_threadpool(self._store, stored, payload)
            async with self.database.session() as session:
                repo = NoteRepo(session)
                note = await repo.create(requester_id, title, content, is_public)
                attachments = [await repo.add_attachment(note.id, ref) for ref in stored]
                view = NoteView(
                    note=Note.model_validate(note),
                    attachments=[Attachment.model_validate(a) for a in attachments],
                    is_owner=True,
                )
        except SQLAlchemyError as exc:
            self._rollback_blobs(stored, "create")
            raise StorageWriteFailure(detail=type(exc).__name__) from exc
        except BaseException:
            self._rollback_blobs(stored, "create")
            raise

        logger.info(
            "note_created",
            extra={"note_id": view.note.id, "user_id": requester_id, "attachments": len(stored)},
        )
        return view

    async def get(self, note_id: int, requester_id: int) -> NoteView:
        async with self.database.session() as session:
            note = await NoteRepo(session).get(note_id, requester_id)
            if note is None:
                raise NotFoundError("notes.not_found")
            if not decide(requester_id, note).can_read:
                raise AccessDenied("notes.not_found")
            return NoteView(
                note=Note.model_validate(note),
                attachments=[Attachment.model_validate(a) for a in note.attachments],
                is_owner=decide(requester_id, note).can_write,
            )

    async def list_owned(self, owner_id: int) -> List[Note]:
        async with self.database.session() as session:
            notes = await NoteRepo(session).list_owned_by(owner_id)
            return [Note.model_validate(n) for n in notes]

    async def list_public(self, user_id: int) -> List[Note]:
        async with self.database.session() as session:
            notes = await NoteRepo(session).list_public_by(user_id)
            return [Note.model_validate(n) for n in notes]

    async def update(
        self,
        note_id: int,
        requester_id: int,
        title: Optional[str],
        content: Optional[str],
        is_public: bool = False,
        files: Sequence[FilePayload] = (),
    ) -> NoteView:
        title, content = clean_note_fields(title, content, self.limits)
        self.validator.check_batch(files)

        stored: List[StoredRef] = []
        try:
            async with self.database.session() as session:
                repo = NoteRepo(session)
                # ownership is settled before any blob is written
                if await repo.get_owned(note_id, requester_id) is None:
                    raise NotFoundError("notes.not_found")
                if files:
                    existing = await repo.count_attachments(note_id)
                    if existing + len(files) > self.validator.policy.max_files:
                        raise ValidationError("uploads.too_many_files")

                for payload in files:
                    await run_in_threadpool(self._store, stored, payload)
                note = await repo.update(note_id, requester_id, title, content, is_public)
                if note is None:
                    raise NotFoundError("notes.not_found")
                attachments = [await repo.add_attachment(note.id, ref) for ref in stored]
                view = NoteView(
                    note=Note.model_validate(note),
                    attachments=[Attachment.model_validate(a) for a in attachments],
                    is_owner=True,
                )
        except SQLAlchemyError as exc:
            self._rollback_blobs(stored, "update")
            raise StorageWriteFailure(detail=type(exc).__name__) from exc
        except BaseException:
            self._rollback_blobs(stored, "update")
            raise

        logger.info(
            "note_updated",
            extra={"note_id": note_id, "user_id": requester_id, "attachments": len(stored)},
        )
        return view

    async def delete(self, note_id: int, requester_id: int) -> None:
        try:
            async with self.database.session() as session:
                stored_paths = await NoteRepo(session).delete(note_id, requester_id)
                if stored_paths is None:
                    raise NotFoundError("notes.not_found")
        except SQLAlchemyError as exc:
            raise StorageWriteFailure(detail=type(exc).__name__) from exc

        # metadata is gone and committed; blobs follow on a best-effort basis
        for stored_path in stored_paths:
            self._delete_blob(stored_path, note_id=note_id)
        logger.info(
            "note_deleted",
            extra={"note_id": note_id, "user_id": requester_id, "attachments": len(stored_paths)},
        )

    async def remove_attachment(
        self, note_id: int, attachment_id: int, requester_id: int
    ) -> None:
        """Delete one attachment of an owned note, row first, then its blob.

        A row whose stored path fails sanitization is left untouched and the
        attachment is reported as not found; no filesystem call is made.
        """
        try:
            async with self.database.session() as session:
                repo = NoteRepo(session)
                if await repo.get_owned(note_id, requester_id) is None:
                    raise NotFoundError("notes.not_found")
                attachment = await repo.get_attachment(note_id, attachment_id, requester_id)
                if attachment is None:
                    raise NotFoundError("notes.attachment_not_found")
                stored_path = attachment.file_path
                try:
                    paths.resolve(self.blobs.root, stored_path)
                except PathRejected as exc:
                    logger.warning(
                        "attachment_path_rejected",
                        extra={
                            "note_id": note_id,
                            "attachment_id": attachment_id,
                            "reason": exc.detail,
                        },
                    )
                    raise
                if await repo.remove_attachment(note_id, attachment_id, requester_id) is None:
                    raise NotFoundError("notes.attachment_not_found")
        except SQLAlchemyError as exc:
            raise StorageWriteFailure(detail=type(exc).__name__) from exc

        self._delete_blob(stored_path, note_id=note_id)
        logger.info(
            "attachment_removed",
            extra={"note_id": note_id, "attachment_id": attachment_id, "user_id": requester_id},
        )

    async def open_attachment(
        self, note_id: int, attachment_id: int, requester_id: int
    ) -> Tuple[Attachment, Path]:
        """Locate an attachment blob the requester is allowed to read."""
        async with self.database.session() as session:
            attachment = await NoteRepo(session).get_attachment(
                note_id, attachment_id, requester_id
            )
            if attachment is None:
                raise NotFoundError("notes.attachment_not_found")
            meta = Attachment.model_validate(attachment)
        return meta, self.blobs.open(meta.file_path)

    # ------------------------------------------------------------------
    # helpers
    def _store(self, stored: List[StoredRef], payload: FilePayload) -> None:
        # worker thread; the ref is recorded before control returns to the loop
        stored.append(self.blobs.put(payload, max_bytes=self.validator.policy.max_bytes))

    def _rollback_blobs(self, stored: Sequence[StoredRef], operation: str) -> None:
        if not stored:
            return
        logger.warning(
            "note_blob_cleanup",
            extra={"operation": operation, "blobs": [ref.stored_path for ref in stored]},
        )
        self.blobs.discard(stored)

    def _delete_blob(self, stored_path: str, note_id: int) -> None:
        try:
            removed = self.blobs.delete(stored_path)
        except StorageWriteFailure:
            logger.error(
                "blob_delete_failed",
                exc_info=True,
                extra={"note_id": note_id, "stored_path": stored_path},
            )
            return
        if not removed:
            logger.warning(
                "blob_missing_on_delete",
                extra={"note_id": note_id, "stored_path": stored_path},
            )


__all__ = ["NoteService", "clean_note_fields"]
