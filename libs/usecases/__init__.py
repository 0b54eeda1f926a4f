"""Use cases coordinating the metadata store and the blob stores."""

from .notes import NoteService, clean_note_fields
from .profile import ProfileService

__all__ = ["NoteService", "ProfileService", "clean_note_fields"]
