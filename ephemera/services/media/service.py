"""Media service: validated uploads to object storage and best-effort purging."""

import logging
import os
import re

from uuid import uuid4
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.services.media.repos import MediaFilesRepository, MediaRepository
from ephemera.services.users.repos import UsersRepository
from ephemera.models.api_models import Media
from ephemera.models.db_models import MediaDB
from ephemera.models.enums import MediaType, MessageType, Plan
from ephemera.common.errors import Forbidden, NotFound, UpstreamFailure, ValidationError
from ephemera.config import settings


MB = 1024 * 1024

# (per file, total storage) in bytes
PLAN_LIMITS = {
    Plan.FREE: (10 * MB, 100 * MB),
    Plan.PRO: (100 * MB, 10240 * MB),
}

ALLOWED_CONTENT_TYPES = {
    MediaType.IMAGE: ("image/jpeg", "image/jpg", "image/png", "image/webp", "image/avif"),
    MediaType.GIF: ("image/gif",),
    MediaType.AUDIO: ("audio/mpeg", "audio/mp3", "audio/wav", "audio/ogg", "audio/webm"),
    MediaType.VIDEO: ("video/mp4", "video/quicktime", "video/webm", "video/x-msvideo"),
    MediaType.PDF: ("application/pdf",),
    MediaType.DOCUMENT: (
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
    ),
    MediaType.SPREADSHEET: (
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "text/csv",
    ),
    MediaType.PRESENTATION: (
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ),
    MediaType.ARCHIVE: (
        "application/zip",
        "application/x-zip-compressed",
        "application/x-rar-compressed",
        "application/x-7z-compressed",
    ),
    MediaType.CODE: (
        "text/javascript",
        "application/javascript",
        "text/html",
        "text/css",
        "application/json",
        "text/x-python",
        "application/x-python-code",
    ),
}


def validate_upload(media_type: MediaType, content_type: str, size: int, plan: Plan, used: int) -> None:
    """
    Check declared type, file size and remaining storage.

    Raises:
        ValidationError: On the first violated rule
    """

    if content_type not in ALLOWED_CONTENT_TYPES[media_type]:
        raise ValidationError(f"Content type '{content_type}' is not allowed for {media_type.value}")

    if size <= 0:
        raise ValidationError("File is empty")

    per_file_limit, total_limit = PLAN_LIMITS[plan]
    if size > per_file_limit:
        raise ValidationError(f"File must be at most {per_file_limit // MB}MB on the {plan.value} plan")

    if used + size > total_limit:
        raise ValidationError(
            "Storage quota exceeded", used=used, limit=total_limit, remaining=max(total_limit - used, 0)
        )


def safe_filename(filename: str) -> str:
    name = os.path.basename((filename or "").replace("\\", "/")) or "file"
    return re.sub(r"[^A-Za-z0-9._-]", "_", name)[:120]


class MediaService:
    """Service for media operations."""

    def __init__(self, app: "Application"):
        """Initialize service with application."""

        self.app = app
        self.logger = logging.getLogger("media-service")
        self.logger.setLevel(settings.logging_level)

        self.media_repo = MediaRepository(app)
        self.media_files_repo = MediaFilesRepository(app)

        self.users_repo = UsersRepository(app)

    async def upload(
        self,
        user_id: int,
        filename: str,
        content_type: str,
        data: bytes,
        media_type: MediaType
    ) -> Media:
        """Validate and store file, return its record with a download URL."""

        user_db = await self.users_repo.get_by_id(user_id)
        if not user_db:
            raise NotFound("User not found")

        validate_upload(media_type, content_type, len(data), user_db.plan, user_db.storage_used)

        filename = safe_filename(filename)
        storage_key = f"{user_id}/{uuid4().hex}_{filename}"

        if not await self.media_files_repo.upload(storage_key, data, content_type, filename):
            raise UpstreamFailure("Media storage is unavailable")

        async with self.app.db.transaction() as conn:
            media_id = await self.media_repo.create(
                user_id=user_id,
                storage_key=storage_key,
                type=media_type,
                filename=filename,
                content_type=content_type,
                size=len(data),
                created_at=self.app.clock.now(),
                conn=conn
            )
            await self.users_repo.add_storage(user_id, len(data), conn=conn)

        self.logger.info(f"User {user_id} uploaded {media_type.value} '{filename}' ({len(data)} bytes)")

        return await self._to_api_media(await self.media_repo.get_by_id(media_id))

    async def get(self, media_id: int) -> Media:
        media_db = await self.media_repo.get_by_id(media_id)
        if not media_db:
            raise NotFound("Media not found")

        return await self._to_api_media(media_db)

    async def get_owned(self, media_id: int, user_id: int) -> MediaDB:
        """Get media attached by its uploader."""

        media_db = await self.media_repo.get_by_id(media_id)
        if not media_db or media_db.user_id != user_id:
            raise NotFound("Media not found")

        return media_db

    async def get_attachment(self, message_type: MessageType, media_id: int | None, user_id: int) -> MediaDB | None:
        """
        Resolve the attachment of an outgoing message.

        Media message types need an attachment of the same media type,
        every other type must come without one.
        """

        if media_id is None:
            if message_type.is_media:
                raise ValidationError(f"Message type '{message_type.value}' requires an attachment")
            return None

        if not message_type.is_media:
            raise ValidationError(f"Message type '{message_type.value}' cannot carry an attachment")

        media_db = await self.get_owned(media_id, user_id)
        if media_db.type.value != message_type.value:
            raise ValidationError(f"Attachment is {media_db.type.value}, not {message_type.value}")

        return media_db

    async def delete(self, media_id: int, user_id: int) -> None:
        """Delete media (owner or staff)."""

        media_db = await self.media_repo.get_by_id(media_id)
        if not media_db:
            raise NotFound("Media not found")

        if media_db.user_id != user_id:
            user_db = await self.users_repo.get_by_id(user_id)
            if not user_db or not user_db.role.is_staff:
                raise Forbidden("Cannot delete another user's media")

        await self.purge([media_id])

    async def purge(self, media_ids: Iterable[int | None]) -> int:
        """Best-effort removal of stored objects and their records."""

        purged = 0
        for media_id in {m for m in media_ids if m is not None}:
            try:
                media_db = await self.media_repo.get_by_id(media_id)
                if not media_db:
                    continue

                if not await self.media_files_repo.delete(media_db.storage_key):
                    self.logger.warning(f"Object of media {media_id} was not removed from storage")

                await self.media_repo.delete(media_id)
                await self.users_repo.add_storage(media_db.user_id, -media_db.size)
                purged += 1

            except Exception as e:
                self.logger.error(f"Purge of media {media_id} failed: {type(e).__name__}: {e}")

        return purged

    async def purge_user(self, user_id: int) -> int:
        return await self.purge(await self.media_repo.get_ids_by_user(user_id))

    async def _to_api_media(self, media_db: MediaDB) -> Media:
        return Media(
            media_id=media_db.id,
            type=media_db.type,
            filename=media_db.filename,
            content_type=media_db.content_type,
            size=media_db.size,
            url=await self.media_files_repo.get_url(media_db.storage_key),
            created_at=media_db.created_at.isoformat()
        )
