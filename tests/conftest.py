import asyncio
import io
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure project root on sys.path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from apps.api.main import create_app
from libs.core.settings import Settings
from libs.db import Database, UserRepo
from libs.storage import BlobStore, FilePayload, UploadValidator
from libs.usecases import NoteService, ProfileService


def make_payload(name: str, data: bytes = b"data", content_type: str = "text/plain", size=-1):
    """File payload backed by an in-memory stream; ``size=-1`` means len(data)."""
    return FilePayload(
        filename=name,
        content_type=content_type,
        size=len(data) if size == -1 else size,
        stream=io.BytesIO(data),
    )


def blob_files(root: Path) -> list:
    if not root.exists():
        return []
    return sorted(p.name for p in root.iterdir() if p.is_file())


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'notes.db'}",
        attachment_dir=tmp_path / "attachments",
        avatar_dir=tmp_path / "uploads",
    )


@pytest.fixture()
def database(settings: Settings) -> Database:
    db = Database(settings.database_url)
    asyncio.run(db.init(max_attempts=1))
    return db


@pytest.fixture()
def make_user(database: Database):
    """Create a user row and return its id."""

    def _make(username: str, description: str | None = None) -> int:
        async def _create() -> int:
            async with database.session() as session:
                user = await UserRepo(session).create(username, "not-a-real-hash", description)
                return user.id

        return asyncio.run(_create())

    return _make


@pytest.fixture()
def note_service(settings: Settings, database: Database) -> NoteService:
    return NoteService(
        database,
        BlobStore(settings.attachment_dir, prefix="note"),
        UploadValidator(settings.attachment_policy()),
        settings.note_limits(),
    )


@pytest.fixture()
def profile_service(settings: Settings, database: Database) -> ProfileService:
    return ProfileService(
        database,
        BlobStore(settings.avatar_dir, prefix="avatar"),
        UploadValidator(settings.avatar_policy()),
    )


@pytest.fixture()
def client(settings: Settings, database: Database):
    """FastAPI test client running against a throwaway SQLite file."""

    app = create_app(settings, configure_logging=False)
    with TestClient(app) as test_client:
        yield test_client
