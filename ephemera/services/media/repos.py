"""Media repositories: metadata rows and stored objects."""

from datetime import datetime
from typing import Optional

from ephemera.common.base_repos import BaseDBRepository, BaseS3Repository, affected_rows
from ephemera.models.db_models import MediaDB
from ephemera.models.enums import MediaType
from ephemera.config import settings


class MediaRepository(BaseDBRepository):
    """Repository for media metadata."""

    repository_name = "media"
    table_name = "media"

    async def get_by_id(self, media_id: int) -> MediaDB | None:
        row = await self.fetchrow(
            f"SELECT * FROM {self._get_table_name()} WHERE id = $1",
            media_id
        )

        return MediaDB(**row) if row else None

    async def create(
        self,
        user_id: int,
        storage_key: str,
        type: MediaType,
        filename: str,
        content_type: str,
        size: int,
        created_at: datetime,
        conn=None
    ) -> int:
        """Record uploaded media and return ID."""

        return await self.fetchval(
            f"""INSERT INTO {self._get_table_name()}
                (user_id, storage_key, type, filename, content_type, size, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING id""",
            user_id, storage_key, type.value, filename, content_type, size, created_at,
            conn=conn
        )

    async def get_ids_by_user(self, user_id: int) -> list[int]:
        rows = await self.fetch(
            f"SELECT id FROM {self._get_table_name()} WHERE user_id = $1",
            user_id
        )

        return [row["id"] for row in rows]

    async def delete(self, media_id: int, conn=None) -> bool:
        result = await self.execute(
            f"DELETE FROM {self._get_table_name()} WHERE id = $1",
            media_id,
            conn=conn
        )

        return affected_rows(result) > 0


class MediaFilesRepository(BaseS3Repository):
    """Repository for uploaded files in S3"""

    repository_name = "media-files"
    resources_dir = "media/"

    async def upload(self, storage_key: str, data: bytes, content_type: str, filename: str) -> bool:
        """Upload file to S3"""

        return await self.s3.upload_file(
            self._get_full_key(storage_key),
            data,
            content_type=content_type,
            metadata={"filename": filename},
        )

    async def get_url(self, storage_key: str) -> Optional[str]:
        """Generate presigned URL for file"""

        return await self.s3.get_file_url(self._get_full_key(storage_key), expires_in=settings.media_url_expires_in)

    async def delete(self, storage_key: str) -> bool:
        """Delete file from S3"""

        return await self.s3.delete_file(self._get_full_key(storage_key))
