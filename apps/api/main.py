from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, Header, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse

from libs.core.exceptions import (
    AuthenticationRequired,
    DomainError,
    NotFoundError,
    ValidationError,
)
from libs.core.i18n import get_i18n, lang_from_header
from libs.core.settings import Settings, get_settings
from libs.db import Database
from libs.db.models import MAX_ID
from libs.logging import setup_logging
from libs.storage import BlobStore, FilePayload, UploadValidator
from libs.usecases import NoteService, ProfileService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Dependency factories


def get_note_service(request: Request) -> NoteService:
    return request.app.state.notes


def get_profile_service(request: Request) -> ProfileService:
    return request.app.state.profiles


async def current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    profiles: ProfileService = Depends(get_profile_service),
) -> int:
    """Return the requester id resolved upstream by the auth layer."""
    value = (x_user_id or "").strip()
    if not (value.isascii() and value.isdigit()) or len(value) > len(str(MAX_ID)):
        raise AuthenticationRequired()
    user_id = int(value)
    if user_id > MAX_ID:
        raise AuthenticationRequired()
    try:
        await profiles.get_profile(user_id)
    except NotFoundError as exc:
        raise AuthenticationRequired() from exc
    return user_id


def _t(request: Request, key: str) -> str:
    return get_i18n(lang_from_header(request.headers.get("accept-language"))).t(key)


def _payload(upload: UploadFile) -> FilePayload:
    return FilePayload(
        filename=upload.filename or "",
        content_type=upload.content_type or "",
        size=upload.size,
        stream=upload.file,
    )


def _payloads(uploads: Optional[List[UploadFile]]) -> List[FilePayload]:
    # browsers send an empty part when no file was picked
    return [_payload(u) for u in uploads or [] if u.filename]


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


def _dump(model: Any) -> Dict[str, Any]:
    return model.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Error mapping


def _status_for(exc: DomainError) -> int:
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, AuthenticationRequired):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    code = _status_for(exc)
    key = exc.key
    if code >= 500:
        logger.error(
            "request_failed",
            exc_info=exc,
            extra={"path": request.url.path, "error_key": exc.key},
        )
        # storage driver text never leaves the process
        key = "errors.internal"
    return JSONResponse(status_code=code, content={"error": _t(request, key)})


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": _t(request, "errors.invalid_request")},
    )


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_error", exc_info=exc, extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": _t(request, "errors.internal")},
    )


# ---------------------------------------------------------------------------
# FastAPI application


def create_app(settings: Optional[Settings] = None, configure_logging: bool = True) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if configure_logging:
            setup_logging(settings)
        database = Database(settings.database_url)
        await database.init()
        app.state.database = database
        app.state.notes = NoteService(
            database,
            BlobStore(settings.attachment_dir, prefix="note"),
            UploadValidator(settings.attachment_policy()),
            settings.note_limits(),
        )
        app.state.profiles = ProfileService(
            database,
            BlobStore(settings.avatar_dir, prefix="avatar"),
            UploadValidator(settings.avatar_policy()),
        )
        logger.info("api_started", extra={"attachment_dir": str(settings.attachment_dir)})
        try:
            yield
        finally:
            await database.dispose()

    app = FastAPI(title="VibeNotes API", lifespan=lifespan)
    app.add_exception_handler(DomainError, _domain_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)

    # Routes -----------------------------------------------------------------

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/notes", status_code=status.HTTP_201_CREATED)
    async def create_note(
        request: Request,
        title: Optional[str] = Form(None),
        content: Optional[str] = Form(None),
        is_public: Optional[str] = Form(None),
        attachments: Optional[List[UploadFile]] = File(None),
        notes: NoteService = Depends(get_note_service),
        user_id: int = Depends(current_user),
    ) -> Dict[str, Any]:
        view = await notes.create(
            user_id, title, content, _flag(is_public), _payloads(attachments)
        )
        return {
            "message": _t(request, "notes.created"),
            "note": _dump(view.note),
            "attachments": [_dump(a) for a in view.attachments],
        }

    @app.get("/notes")
    async def list_notes(
        notes: NoteService = Depends(get_note_service),
        user_id: int = Depends(current_user),
    ) -> Dict[str, Any]:
        return {"notes": [_dump(n) for n in await notes.list_owned(user_id)]}

    @app.get("/notes/user/{target_user_id}/public")
    async def list_public_notes(
        target_user_id: int,
        notes: NoteService = Depends(get_note_service),
        user_id: int = Depends(current_user),
    ) -> Dict[str, Any]:
        return {"notes": [_dump(n) for n in await notes.list_public(target_user_id)]}

    @app.get("/notes/{note_id}")
    async def get_note(
        note_id: int,
        notes: NoteService = Depends(get_note_service),
        user_id: int = Depends(current_user),
    ) -> Dict[str, Any]:
        view = await notes.get(note_id, user_id)
        return {
            "note": _dump(view.note),
            "attachments": [_dump(a) for a in view.attachments],
            "is_owner": view.is_owner,
        }

    @app.put("/notes/{note_id}")
    async def update_note(
        request: Request,
        note_id: int,
        title: Optional[str] = Form(None),
        content: Optional[str] = Form(None),
        is_public: Optional[str] = Form(None),
        attachments: Optional[List[UploadFile]] = File(None),
        notes: NoteService = Depends(get_note_service),
        user_id: int = Depends(current_user),
    ) -> Dict[str, Any]:
        view = await notes.update(
            note_id, user_id, title, content, _flag(is_public), _payloads(attachments)
        )
        return {
            "message": _t(request, "notes.updated"),
            "note": _dump(view.note),
            "attachments": [_dump(a) for a in view.attachments],
        }

    @app.delete("/notes/{note_id}")
    async def delete_note(
        request: Request,
        note_id: int,
        notes: NoteService = Depends(get_note_service),
        user_id: int = Depends(current_user),
    ) -> Dict[str, str]:
        await notes.delete(note_id, user_id)
        return {"message": _t(request, "notes.deleted")}

    @app.get("/notes/{note_id}/attachments/{attachment_id}")
    async def download_attachment(
        note_id: int,
        attachment_id: int,
        notes: NoteService = Depends(get_note_service),
        user_id: int = Depends(current_user),
    ) -> FileResponse:
        meta, path = await notes.open_attachment(note_id, attachment_id, user_id)
        return FileResponse(
            path,
            media_type=meta.mime_type or "application/octet-stream",
            filename=meta.original_filename,
        )

    @app.delete("/notes/{note_id}/attachments/{attachment_id}")
    async def delete_attachment(
        request: Request,
        note_id: int,
        attachment_id: int,
        notes: NoteService = Depends(get_note_service),
        user_id: int = Depends(current_user),
    ) -> Dict[str, str]:
        await notes.remove_attachment(note_id, attachment_id, user_id)
        return {"message": _t(request, "notes.attachment_deleted")}

    @app.get("/profile/me")
    async def get_my_profile(
        profiles: ProfileService = Depends(get_profile_service),
        user_id: int = Depends(current_user),
    ) -> Dict[str, Any]:
        return {"user": _dump(await profiles.get_profile(user_id))}

    @app.put("/profile/me")
    async def update_my_profile(
        request: Request,
        description: Optional[str] = Form(None),
        avatar: Optional[UploadFile] = File(None),
        profiles: ProfileService = Depends(get_profile_service),
        user_id: int = Depends(current_user),
    ) -> Dict[str, Any]:
        payload = _payload(avatar) if avatar is not None and avatar.filename else None
        profile = await profiles.update_profile(user_id, description, payload)
        return {"message": _t(request, "profile.updated"), "user": _dump(profile)}

    @app.get("/profile/users")
    async def list_users(
        profiles: ProfileService = Depends(get_profile_service),
        user_id: int = Depends(current_user),
    ) -> Dict[str, Any]:
        return {"users": [_dump(u) for u in await profiles.list_users()]}

    @app.get("/profile/user/{target_user_id}")
    async def get_user_profile(
        target_user_id: int,
        profiles: ProfileService = Depends(get_profile_service),
        user_id: int = Depends(current_user),
    ) -> Dict[str, Any]:
        return {"user": _dump(await profiles.get_profile(target_user_id))}

    @app.get("/profile/user/{target_user_id}/avatar")
    async def get_user_avatar(
        target_user_id: int,
        profiles: ProfileService = Depends(get_profile_service),
        user_id: int = Depends(current_user),
    ) -> FileResponse:
        return FileResponse(await profiles.open_avatar(target_user_id))

    return app


app = create_app()


__all__ = ["app", "create_app", "current_user", "get_note_service", "get_profile_service"]
