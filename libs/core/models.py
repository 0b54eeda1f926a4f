"""Pydantic models representing core domain entities."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class UserProfile(BaseModel):
    """Public view of a user; never carries the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    description: str = ""
    avatar_path: Optional[str] = None
    created_at: Optional[datetime] = None


class Note(BaseModel):
    """Metadata of a single note."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    title: str
    content: str
    is_public: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Attachment(BaseModel):
    """File attached to a note, stored as a blob under the attachment root."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    note_id: int
    original_filename: str
    stored_filename: str
    file_path: str
    file_size: int
    mime_type: Optional[str] = None
    created_at: Optional[datetime] = None


class NoteView(BaseModel):
    """A note as seen by a particular requester."""

    note: Note
    attachments: List[Attachment] = Field(default_factory=list)
    is_owner: bool = False


__all__ = ["UserProfile", "Note", "Attachment", "NoteView"]
