"""Repository classes for CRUD operations on ORM models.

Ownership and visibility are part of every query: a row the requester may
not see is indistinguishable from a row that does not exist (``None``).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from libs.storage.blob_store import StoredRef

from . import models


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _storable(*ids: int) -> bool:
    """Whether every id fits the id columns; anything else cannot exist."""
    return all(1 <= i <= models.MAX_ID for i in ids)


class UserRepo:
    """CRUD operations for :class:`models.User`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(
        self, username: str, password_hash: str, description: str | None = None
    ) -> models.User:
        user = models.User(
            username=username, password_hash=password_hash, description=description
        )
        self.session.add(user)
        await self.session.flush()
        return user

    async def get(self, user_id: int) -> Optional[models.User]:
        if not _storable(user_id):
            return None
        return await self.session.get(models.User, user_id)

    async def list(self) -> List[models.User]:
        res = await self.session.execute(
            select(models.User).order_by(models.User.username.asc())
        )
        return list(res.scalars().all())

    async def update_profile(
        self,
        user: models.User,
        description: str | None = None,
        avatar_path: str | None = None,
    ) -> models.User:
        if description is not None:
            user.description = description
        if avatar_path is not None:
            user.avatar_path = avatar_path
        await self.session.flush()
        return user


class NoteRepo:
    """CRUD operations for :class:`models.Note` and its attachments."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(
        self, owner_id: int, title: str, content: str, is_public: bool = False
    ) -> models.Note:
        now = _utcnow()
        note = models.Note(
            user_id=owner_id,
            title=title,
            content=content,
            is_public=is_public,
            created_at=now,
            updated_at=now,
        )
        self.session.add(note)
        await self.session.flush()
        return note

    async def get(self, note_id: int, requester_id: int) -> Optional[models.Note]:
        """Return the note if ``requester_id`` owns it or it is public."""
        if not _storable(note_id, requester_id):
            return None
        stmt = (
            select(models.Note)
            .options(selectinload(models.Note.attachments))
            .where(
                models.Note.id == note_id,
                or_(models.Note.user_id == requester_id, models.Note.is_public.is_(True)),
            )
        )
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()

    async def get_owned(self, note_id: int, owner_id: int) -> Optional[models.Note]:
        if not _storable(note_id, owner_id):
            return None
        stmt = select(models.Note).where(
            models.Note.id == note_id, models.Note.user_id == owner_id
        )
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()

    async def list_owned_by(self, owner_id: int) -> List[models.Note]:
        if not _storable(owner_id):
            return []
        stmt = (
            select(models.Note)
            .where(models.Note.user_id == owner_id)
            .order_by(models.Note.updated_at.desc(), models.Note.id.desc())
        )
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def list_public_by(self, user_id: int) -> List[models.Note]:
        if not _storable(user_id):
            return []
        stmt = (
            select(models.Note)
            .where(models.Note.user_id == user_id, models.Note.is_public.is_(True))
            .order_by(models.Note.updated_at.desc(), models.Note.id.desc())
        )
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def update(
        self,
        note_id: int,
        owner_id: int,
        title: str,
        content: str,
        is_public: bool,
    ) -> Optional[models.Note]:
        note = await self.get_owned(note_id, owner_id)
        if note is None:
            return None
        note.title = title
        note.content = content
        note.is_public = is_public
        note.updated_at = _utcnow()
        await self.session.flush()
        return note

    async def delete(self, note_id: int, owner_id: int) -> Optional[List[str]]:
        """Delete an owned note and return the stored paths of its attachments."""
        if not _storable(note_id, owner_id):
            return None
        stmt = (
            select(models.Note)
            .options(selectinload(models.Note.attachments))
            .where(models.Note.id == note_id, models.Note.user_id == owner_id)
        )
        res = await self.session.execute(stmt)
        note = res.scalar_one_or_none()
        if note is None:
            return None
        stored_paths = [a.file_path for a in note.attachments]
        await self.session.delete(note)
        await self.session.flush()
        return stored_paths

    async def count_attachments(self, note_id: int) -> int:
        if not _storable(note_id):
            return 0
        stmt = select(func.count(models.Attachment.id)).where(
            models.Attachment.note_id == note_id
        )
        res = await self.session.execute(stmt)
        return int(res.scalar_one())

    async def add_attachment(self, note_id: int, ref: StoredRef) -> models.Attachment:
        attachment = models.Attachment(
            note_id=note_id,
            original_filename=ref.original_filename,
            stored_filename=ref.stored_filename,
            file_path=ref.stored_path,
            file_size=ref.size,
            mime_type=ref.mime_type,
            created_at=_utcnow(),
        )
        self.session.add(attachment)
        await self.session.flush()
        return attachment

    async def get_attachment(
        self, note_id: int, attachment_id: int, requester_id: int
    ) -> Optional[models.Attachment]:
        """Return an attachment of a note the requester may read."""
        if not _storable(note_id, attachment_id, requester_id):
            return None
        stmt = (
            select(models.Attachment)
            .join(models.Note, models.Note.id == models.Attachment.note_id)
            .where(
                models.Attachment.id == attachment_id,
                models.Attachment.note_id == note_id,
                or_(models.Note.user_id == requester_id, models.Note.is_public.is_(True)),
            )
        )
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()

    async def remove_attachment(
        self, note_id: int, attachment_id: int, owner_id: int
    ) -> Optional[models.Attachment]:
        """Delete one attachment row of an owned note and return it."""
        if not _storable(note_id, attachment_id, owner_id):
            return None
        stmt = (
            select(models.Attachment)
            .join(models.Note, models.Note.id == models.Attachment.note_id)
            .where(
                models.Attachment.id == attachment_id,
                models.Attachment.note_id == note_id,
                models.Note.user_id == owner_id,
            )
        )
        res = await self.session.execute(stmt)
        attachment = res.scalar_one_or_none()
        if attachment is None:
            return None
        await self.session.delete(attachment)
        await self.session.flush()
        return attachment


__all__ = ["UserRepo", "NoteRepo"]
