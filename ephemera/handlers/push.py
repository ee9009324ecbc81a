"""Push channel endpoint."""

import asyncio
import logging

from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.middleware import logging_middleware
from ephemera.common.errors import ServiceError
from ephemera.config import settings


AUTH_TIMEOUT_SECONDS = 10
POLICY_VIOLATION = 1008


def register_push_handlers(app: "Application"):
    """Register the WebSocket push endpoint."""

    logger = logging.getLogger("push-endpoint")
    logger.setLevel(settings.logging_level)

    async def reject(websocket: WebSocket, code: str, message: str) -> None:
        await websocket.send_json({"type": "auth_error", "data": {"code": code, "message": message}})
        await websocket.close(code=POLICY_VIOLATION)

    @app.api.websocket("/ws")
    @logging_middleware.log_connection
    async def push_connection(websocket: WebSocket):
        """
        Frames:
            client -> {"type": "auth", "token": ...}, {"type": "ping"}
            server -> auth_success, auth_error, pong, and event frames {"type": ..., "data": {...}}
        """

        await websocket.accept()

        try:
            frame = await asyncio.wait_for(websocket.receive_json(), AUTH_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            await reject(websocket, "UNAUTHORIZED", "Authentication timed out")
            return
        except (WebSocketDisconnect, ValueError):
            return

        if not isinstance(frame, dict) or frame.get("type") != "auth":
            await reject(websocket, "UNAUTHORIZED", "First frame must be auth")
            return

        try:
            user_db, _ = await app.user_service.authenticate(frame.get("token") or "")
        except ServiceError as e:
            await reject(websocket, e.code, e.message)
            return

        await app.push.connect(user_db.id, websocket)
        await app.user_service.users_repo.set_online(user_db.id, True, app.clock.now())
        await websocket.send_json({"type": "auth_success", "data": {"user_id": user_db.id}})

        logger.info(f"User {user_db.id} connected to push channel")

        try:
            while True:
                frame = await websocket.receive_json()
                if isinstance(frame, dict) and frame.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})

        except (WebSocketDisconnect, ValueError):
            pass

        finally:
            if await app.push.disconnect(user_db.id, websocket):
                logger.info(f"User {user_db.id} disconnected from push channel")
