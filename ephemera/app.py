"""
Main application class with lifecycle management.
"""

import logging

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ephemera.middleware.logging_middleware import setup_logging

from ephemera.common.clock import Clock, SystemClock
from ephemera.common.db import DatabaseAPI
from ephemera.common.s3 import S3API
from ephemera.common.errors import ServiceError
from ephemera.common.push_channel import LocalPushChannel, PushChannel
from ephemera.common.notify_manager import NotifyManager

from ephemera.services.users.service import UserService
from ephemera.services.friends.service import FriendService
from ephemera.services.conversations.service import ConversationService
from ephemera.services.rooms.service import RoomService
from ephemera.services.media.service import MediaService
from ephemera.services.admin.service import AdminService
from ephemera.services.sweeper import RetentionSweeper

from ephemera.handlers import register_handlers

from ephemera.version import VERSION, VERSION_NAME
from ephemera.config import settings


def error_response(status_code: int, errors: list[tuple[str, str]], data: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "errors": [list(e) for e in errors], "data": data},
    )


def install_error_handlers(api: FastAPI) -> None:
    """Render service and request errors in the Result envelope."""

    @api.exception_handler(ServiceError)
    async def service_error_handler(_: Request, exc: ServiceError):
        return error_response(exc.status_code, [exc.as_error()], exc.details or None)

    @api.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError):
        errors = [
            ("VALIDATION_ERROR", f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}")
            for e in exc.errors()
        ]
        return error_response(422, errors)


class Application:
    """Main application class."""

    def __init__(self, clock: Clock | None = None, push: PushChannel | None = None):
        """Initialize application components."""
        setup_logging()

        self.logger = logging.getLogger("ephemera-core")
        self.logger.setLevel(settings.logging_level)

        self.clock: Clock = clock or SystemClock()

        self.db: DatabaseAPI = DatabaseAPI()
        self.s3: S3API = S3API()

        self.push: PushChannel = push or LocalPushChannel()
        self.notify_man: NotifyManager = NotifyManager(self)

        self.user_service = UserService(self)
        self.friend_service = FriendService(self)
        self.conversation_service = ConversationService(self)
        self.room_service = RoomService(self)
        self.media_service = MediaService(self)
        self.admin_service = AdminService(self)

        self.sweeper = RetentionSweeper(self)

        self.api: FastAPI | None = None

        self.logger.info("Application initialized")

    async def startup(self) -> None:
        """
        Startup routine: connect to database and S3, start the sweeper.

        Raises:
            RuntimeError: If critical services fail to start
        """

        self.logger.info(f"Starting Ephemera server {VERSION} ({VERSION_NAME}):")

        await self.db.safely_connect()

        await self.s3.safely_connect()

        self.sweeper.start()

        self.logger.info("Application startup complete")

    async def shutdown(self) -> None:
        """Shutdown routine: stop the sweeper, disconnect from services."""
        self.logger.info("Shutting down application:")

        await self.sweeper.stop()

        for user_id in self.push.connected_user_ids():
            await self.push.disconnect(user_id)

        if self.db.pool:
            await self.db.disconnect()
            self.logger.info("Database disconnected")

        if self.s3.session:
            await self.s3.disconnect()
            self.logger.info("S3 disconnected")

        self.logger.info("Application shutdown complete")

    def create_api(self) -> FastAPI:
        """
        Create and configure the HTTP/WebSocket API.

        Returns:
            Configured FastAPI instance
        """

        @asynccontextmanager
        async def lifespan(_: FastAPI):
            await self.startup()
            try:
                yield
            finally:
                await self.shutdown()

        self.api = FastAPI(title="Ephemera", version=VERSION, lifespan=lifespan)

        install_error_handlers(self.api)

        @self.api.get("/health", tags=["health"])
        async def health():
            return {"status": "ok", "version": VERSION}

        register_handlers(app=self)

        return self.api
