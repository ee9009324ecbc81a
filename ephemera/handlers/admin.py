"""Moderation handlers, moderators and admins only."""

from typing import TYPE_CHECKING, Optional

from fastapi import APIRouter, Depends, Query

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.middleware import logging_middleware, AuthContext, AuthMiddleware
from ephemera.models.api_models import Result
from ephemera.models.enums import Role, RoomStatus
from ephemera.models.request_models import BanRequest, PromoteRequest, RoomUpdateRequest


def register_admin_handlers(app: "Application"):
    """Register moderation handlers."""

    auth = AuthMiddleware(app)
    require_staff = auth.require_staff()
    require_admin = auth.require_roles(Role.ADMIN)

    router = APIRouter(prefix="/api/admin", tags=["admin"])
    admin_service = app.admin_service

    @router.get("/users")
    @logging_middleware.log_transaction_debug
    async def list_users_trans(
        role: Optional[Role] = None,
        online: Optional[bool] = None,
        search: Optional[str] = None,
        limit: int = Query(100, ge=1, le=500),
        caller: AuthContext = Depends(require_staff)
    ):
        return Result.ok(await admin_service.list_users(role=role, is_online=online, search=search, limit=limit))

    @router.get("/users/{user_id}")
    @logging_middleware.log_transaction_debug
    async def user_details_trans(user_id: int, caller: AuthContext = Depends(require_staff)):
        return Result.ok(await admin_service.user_details(user_id))

    @router.post("/users/{user_id}/ban")
    @logging_middleware.log_transaction
    async def ban_user_trans(user_id: int, body: BanRequest, caller: AuthContext = Depends(require_staff)):
        return Result.ok(await admin_service.ban_user(caller.user_id, user_id, body.duration_days, body.reason))

    @router.post("/users/{user_id}/unban")
    @logging_middleware.log_transaction
    async def unban_user_trans(user_id: int, caller: AuthContext = Depends(require_staff)):
        return Result.ok(await admin_service.unban_user(caller.user_id, user_id))

    @router.post("/users/{user_id}/promote")
    @logging_middleware.log_transaction
    async def promote_trans(user_id: int, body: PromoteRequest, caller: AuthContext = Depends(require_admin)):
        return Result.ok(await admin_service.promote(user_id, body.role))

    @router.post("/users/{user_id}/demote")
    @logging_middleware.log_transaction
    async def demote_trans(user_id: int, caller: AuthContext = Depends(require_admin)):
        return Result.ok(await admin_service.demote(user_id))

    @router.delete("/users/{user_id}")
    @logging_middleware.log_transaction
    async def delete_user_trans(user_id: int, caller: AuthContext = Depends(require_admin)):
        await admin_service.delete_user(caller.user_id, user_id)
        return Result.ok()

    @router.get("/chats")
    @logging_middleware.log_transaction_debug
    async def list_chats_trans(
        limit: int = Query(100, ge=1, le=500),
        offset: int = Query(0, ge=0),
        caller: AuthContext = Depends(require_staff)
    ):
        return Result.ok(await app.conversation_service.list_all(limit, offset))

    @router.get("/chats/{conversation_id}/messages")
    @logging_middleware.log_transaction_debug
    async def chat_messages_trans(conversation_id: int, caller: AuthContext = Depends(require_staff)):
        """Every stored message of a chat, including those hidden from its participants."""

        return Result.ok(await app.conversation_service.moderation_messages(conversation_id))

    @router.delete("/chats/messages/{message_id}")
    @logging_middleware.log_transaction
    async def delete_chat_message_trans(message_id: int, caller: AuthContext = Depends(require_staff)):
        await app.conversation_service.delete_message(message_id)
        return Result.ok()

    @router.delete("/chats/{conversation_id}")
    @logging_middleware.log_transaction
    async def delete_chat_trans(conversation_id: int, caller: AuthContext = Depends(require_staff)):
        await app.conversation_service.delete_conversation(conversation_id)
        return Result.ok()

    @router.get("/rooms")
    @logging_middleware.log_transaction_debug
    async def list_rooms_trans(
        status: Optional[RoomStatus] = None,
        limit: int = Query(100, ge=1, le=500),
        offset: int = Query(0, ge=0),
        caller: AuthContext = Depends(require_staff)
    ):
        return Result.ok(await app.room_service.list_all(limit, offset, status))

    @router.get("/rooms/{room_id}")
    @logging_middleware.log_transaction_debug
    async def room_details_trans(room_id: int, caller: AuthContext = Depends(require_staff)):
        return Result.ok(await app.room_service.room_details(room_id))

    @router.put("/rooms/{room_id}")
    @logging_middleware.log_transaction
    async def update_room_trans(room_id: int, body: RoomUpdateRequest, caller: AuthContext = Depends(require_staff)):
        return Result.ok(await app.room_service.update_room(room_id, body.name, body.description))

    @router.delete("/rooms/messages/{message_id}")
    @logging_middleware.log_transaction
    async def delete_room_message_trans(message_id: int, caller: AuthContext = Depends(require_staff)):
        await app.room_service.delete_room_message(message_id)
        return Result.ok()

    @router.delete("/rooms/{room_id}/members/{user_id}")
    @logging_middleware.log_transaction
    async def kick_member_trans(room_id: int, user_id: int, caller: AuthContext = Depends(require_staff)):
        await app.room_service.kick_member(room_id, user_id)
        return Result.ok()

    @router.delete("/rooms/{room_id}")
    @logging_middleware.log_transaction
    async def delete_room_trans(room_id: int, caller: AuthContext = Depends(require_admin)):
        await app.room_service.delete_room(room_id, caller.user_id)
        return Result.ok()

    @router.get("/stats")
    @logging_middleware.log_transaction_debug
    async def stats_trans(caller: AuthContext = Depends(require_staff)):
        return Result.ok(await admin_service.stats())

    @router.post("/sweep")
    @logging_middleware.log_transaction
    async def sweep_trans(caller: AuthContext = Depends(require_admin)):
        """Run the retention sweep now."""

        report = await app.sweeper.sweep()
        return Result.ok(report.to_dict())

    app.api.include_router(router)
