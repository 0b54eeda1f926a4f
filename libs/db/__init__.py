"""Database utilities for VibeNotes."""

from . import models
from .database import Base, Database
from .repositories import UserRepo, NoteRepo

__all__ = ["models", "Base", "Database", "UserRepo", "NoteRepo"]
