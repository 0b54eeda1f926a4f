"""Application settings loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from libs.storage.uploads import UploadPolicy

MB = 1024 * 1024

_ATTACHMENT_EXTENSIONS = [
    ".jpg", ".jpeg", ".png", ".gif", ".webp",
    ".pdf", ".txt", ".md", ".csv", ".json",
    ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".zip",
]
_ATTACHMENT_MIME_TYPES = [
    "image/jpeg", "image/png", "image/gif", "image/webp",
    "application/pdf", "text/plain", "text/markdown", "text/csv",
    "application/json",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/zip",
    "application/octet-stream",
]
_AVATAR_EXTENSIONS = [".jpg", ".jpeg", ".png", ".gif", ".webp"]
_AVATAR_MIME_TYPES = ["image/jpeg", "image/png", "image/gif", "image/webp"]


def _default_database_url_from_env() -> str:
    """Build the database URL from component env vars if DATABASE_URL is not set.

    If DATABASE_URL is provided, it overrides this default.
    """
    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PASSWORD", "password")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("POSTGRES_DB", "vibenotes")
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{db}"


@dataclass(frozen=True)
class NoteLimits:
    """Length bounds applied to note fields before anything is stored."""

    max_title_length: int
    max_content_bytes: int


class Settings(BaseSettings):
    """Runtime settings for the application."""

    service_name: str = Field(default="vibenotes")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    database_url: str = Field(default_factory=_default_database_url_from_env)

    attachment_dir: Path = Field(default=Path("data/attachments"))
    avatar_dir: Path = Field(default=Path("data/uploads"))

    # Attachments
    max_attachment_size: int = Field(default=50 * MB)
    max_attachments: int = Field(default=10)
    allowed_attachment_extensions: List[str] = Field(
        default_factory=lambda: list(_ATTACHMENT_EXTENSIONS)
    )
    allowed_attachment_mime_types: List[str] = Field(
        default_factory=lambda: list(_ATTACHMENT_MIME_TYPES)
    )

    # Avatars
    max_avatar_size: int = Field(default=5 * MB)
    allowed_avatar_extensions: List[str] = Field(
        default_factory=lambda: list(_AVATAR_EXTENSIONS)
    )
    allowed_avatar_mime_types: List[str] = Field(
        default_factory=lambda: list(_AVATAR_MIME_TYPES)
    )

    # Note fields
    max_title_length: int = Field(default=255)
    max_content_bytes: int = Field(default=1_000_000)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def attachment_policy(self) -> UploadPolicy:
        return UploadPolicy.build(
            extensions=self.allowed_attachment_extensions,
            mime_types=self.allowed_attachment_mime_types,
            max_bytes=self.max_attachment_size,
            max_files=self.max_attachments,
        )

    def avatar_policy(self) -> UploadPolicy:
        return UploadPolicy.build(
            extensions=self.allowed_avatar_extensions,
            mime_types=self.allowed_avatar_mime_types,
            max_bytes=self.max_avatar_size,
            max_files=1,
        )

    def note_limits(self) -> NoteLimits:
        return NoteLimits(self.max_title_length, self.max_content_bytes)


@lru_cache
def get_settings() -> Settings:
    """Return application settings instance."""
    return Settings()


__all__ = ["Settings", "NoteLimits", "get_settings"]
