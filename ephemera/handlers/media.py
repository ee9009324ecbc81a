"""Media handlers."""

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, File, Form, UploadFile

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.middleware import logging_middleware, AuthContext, AuthMiddleware
from ephemera.models.api_models import Result
from ephemera.models.enums import MediaType


def register_media_handlers(app: "Application"):
    """Register media handlers."""

    router = APIRouter(prefix="/api/media", tags=["media"])
    media_service = app.media_service
    auth = AuthMiddleware(app)

    @router.post("/upload")
    @logging_middleware.log_transaction
    async def upload_trans(
        file: UploadFile = File(...),
        media_type: MediaType = Form(...),
        caller: AuthContext = Depends(auth.current_user)
    ):
        """Upload file to media storage."""

        data = await file.read()

        return Result.ok(await media_service.upload(
            user_id=caller.user_id,
            filename=file.filename or "file",
            content_type=file.content_type or "application/octet-stream",
            data=data,
            media_type=media_type
        ))

    @router.get("/{media_id}")
    @logging_middleware.log_transaction_debug
    async def get_media_trans(media_id: int, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await media_service.get(media_id))

    @router.delete("/{media_id}")
    @logging_middleware.log_transaction
    async def delete_media_trans(media_id: int, caller: AuthContext = Depends(auth.current_user)):
        await media_service.delete(media_id, caller.user_id)
        return Result.ok()

    app.api.include_router(router)
