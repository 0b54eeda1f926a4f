from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from libs.core.exceptions import NotFoundError, StorageWriteFailure, ValidationError
from libs.core.models import UserProfile
from libs.db import Database, UserRepo, models
from libs.storage import BlobStore, FilePayload, StoredRef, UploadValidator

logger = logging.getLogger(__name__)


def _profile(user: models.User) -> UserProfile:
    return UserProfile(
        id=user.id,
        username=user.username,
        description=user.description or "",
        avatar_path=user.avatar_path or None,
        created_at=user.created_at,
    )


class ProfileService:
    """Read and update user profiles, replacing avatar blobs consistently."""

    def __init__(self, database: Database, avatars: BlobStore, validator: UploadValidator) -> None:
        self.database = database
        self.avatars = avatars
        self.validator = validator

    async def get_profile(self, user_id: int) -> UserProfile:
        async with self.database.session() as session:
            user = await UserRepo(session).get(user_id)
            if user is None:
                raise NotFoundError("profile.user_not_found")
            return _profile(user)

    async def list_users(self) -> List[UserProfile]:
        async with self.database.session() as session:
            return [_profile(u) for u in await UserRepo(session).list()]

    async def update_profile(
        self,
        user_id: int,
        description: Optional[str] = None,
        avatar: Optional[FilePayload] = None,
    ) -> UserProfile:
        if description is None and avatar is None:
            raise ValidationError("profile.nothing_to_update")
        if avatar is not None:
            self.validator.check_batch([avatar])

        written: List[StoredRef] = []
        new_ref: Optional[StoredRef] = None
        old_avatar: Optional[str] = None
        try:
            async with self.database.session() as session:
                repo = UserRepo(session)
                user = await repo.get(user_id)
                if user is None:
                    raise NotFoundError("profile.user_not_found")
                if avatar is not None:
                    old_avatar = user.avatar_path
                    await run_in_threadpool(self._store, written, avatar, user_id)
                    new_ref = written[0]
                user = await repo.update_profile(
                    user,
                    description=description,
                    avatar_path=new_ref.stored_path if new_ref else None,
                )
                profile = _profile(user)
        except SQLAlchemyError as exc:
            self.avatars.discard(written)
            raise StorageWriteFailure(detail=type(exc).__name__) from exc
        except BaseException:
            self.avatars.discard(written)
            raise

        # the previous avatar goes only once the new path is committed
        if new_ref is not None and old_avatar:
            try:
                if not self.avatars.delete(old_avatar):
                    logger.warning(
                        "old_avatar_missing", extra={"user_id": user_id, "stored_path": old_avatar}
                    )
            except StorageWriteFailure:
                logger.error(
                    "old_avatar_delete_failed",
                    exc_info=True,
                    extra={"user_id": user_id, "stored_path": old_avatar},
                )
        logger.info("profile_updated", extra={"user_id": user_id, "avatar": new_ref is not None})
        return profile

    def _store(self, written: List[StoredRef], avatar: FilePayload, user_id: int) -> None:
        written.append(
            self.avatars.put(
                avatar,
                max_bytes=self.validator.policy.max_bytes,
                prefix=f"avatar-{user_id}",
            )
        )

    async def open_avatar(self, user_id: int) -> Path:
        profile = await self.get_profile(user_id)
        if not profile.avatar_path:
            raise NotFoundError("profile.avatar_not_found")
        return self.avatars.open(profile.avatar_path)


__all__ = ["ProfileService"]
