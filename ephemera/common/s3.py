"""
S3-compatible media storage.

Storage is a best-effort collaborator: every call is bounded by
``settings.media_timeout_seconds`` and failures come back as False/None,
so a storage outage never aborts a send, a logout or a sweep.
"""

import asyncio
import aioboto3
import logging

from typing import Any, Awaitable, Callable, Optional
from contextlib import asynccontextmanager
from botocore.exceptions import BotoCoreError, ClientError

from ephemera.config import settings


S3_ERRORS = (ClientError, BotoCoreError, asyncio.TimeoutError, OSError)


class S3API:
    """Bucket client for uploaded media."""

    def __init__(self):
        self.logger = logging.getLogger("s3-api")
        self.logger.setLevel(settings.logging_level)

        self.session: Optional[aioboto3.Session] = None
        self.bucket_name = settings.s3_bucket_name

    def connect(self) -> None:
        self.session = aioboto3.Session(
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
        )

    async def safely_connect(self) -> None:
        """Open the session. An unreachable bucket is logged, startup goes on."""

        self.connect()

        if await self.ping():
            self.logger.info(f"S3 bucket '{self.bucket_name}' reachable")
        else:
            self.logger.error(f"S3 bucket '{self.bucket_name}' unreachable, uploads will fail until it is back")

    async def disconnect(self) -> None:
        self.session = None

    @asynccontextmanager
    async def _client(self):
        async with self.session.client(
            service_name="s3",
            endpoint_url=settings.s3_endpoint_url,
            verify=settings.s3_verify_ssl,
        ) as client:
            yield client

    async def _bounded(self, operation: str, call: Callable[[Any], Awaitable[Any]], default: Any = None) -> Any:
        """Run ``call(client)`` under the media timeout, returning default on failure."""

        if self.session is None:
            self.logger.error(f"S3 {operation} skipped: storage is not connected")
            return default

        async def _run():
            async with self._client() as client:
                return await call(client)

        try:
            return await asyncio.wait_for(_run(), settings.media_timeout_seconds)
        except S3_ERRORS as e:
            self.logger.error(f"S3 {operation} failed: {type(e).__name__}: {e}")
            return default

    async def ping(self) -> bool:
        async def head(client):
            await client.head_bucket(Bucket=self.bucket_name)
            return True

        return await self._bounded("head bucket", head, default=False)

    async def upload_file(
        self,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> bool:
        """Store object under key, True on success."""

        extra_args = {}
        if content_type:
            extra_args["ContentType"] = content_type
        if metadata:
            extra_args["Metadata"] = metadata

        async def put(client):
            await client.put_object(Bucket=self.bucket_name, Key=key, Body=data, **extra_args)
            return True

        return await self._bounded(f"upload of '{key}'", put, default=False)

    async def delete_file(self, key: str) -> bool:
        async def delete(client):
            await client.delete_object(Bucket=self.bucket_name, Key=key)
            return True

        return await self._bounded(f"delete of '{key}'", delete, default=False)

    async def get_file_url(self, key: str, expires_in: int = 3600) -> Optional[str]:
        """Presigned download URL, None when storage is unavailable."""

        async def presign(client):
            return await client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": key},
                ExpiresIn=expires_in,
            )

        return await self._bounded(f"presign of '{key}'", presign)
