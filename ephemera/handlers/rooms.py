"""Room (project) handlers and the public invite link."""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from fastapi import APIRouter, Depends, Query

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.middleware import logging_middleware, AuthContext, AuthMiddleware
from ephemera.common.errors import ServiceError
from ephemera.models.api_models import JoinResult, Result
from ephemera.models.request_models import (
    CreateRoomRequest,
    JoinByInviteRequest,
    ReactionRequest,
    SendRoomMessageRequest,
)


def register_rooms_handlers(app: "Application"):
    """Register room handlers."""

    router = APIRouter(prefix="/api/projects", tags=["projects"])
    public_router = APIRouter(prefix="/join", tags=["invites"])
    room_service = app.room_service
    auth = AuthMiddleware(app)

    @router.post("")
    @logging_middleware.log_transaction
    async def create_room_trans(body: CreateRoomRequest, caller: AuthContext = Depends(auth.current_user)):
        """Create room, creator joins automatically."""

        return Result.ok(await room_service.create_room(
            creator_id=caller.user_id,
            name=body.name,
            description=body.description,
            is_permanent=body.is_permanent
        ))

    @router.get("")
    @logging_middleware.log_transaction_debug
    async def list_rooms_trans(caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await room_service.list_user_rooms(caller.user_id))

    @router.get("/public")
    @logging_middleware.log_transaction_debug
    async def list_public_rooms_trans(caller: AuthContext = Depends(auth.current_user)):
        """Permanent rooms open to everyone."""

        return Result.ok(await room_service.list_public())

    @router.post("/messages/{message_id}/reactions")
    @logging_middleware.log_transaction
    async def react_trans(message_id: int, body: ReactionRequest, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await room_service.react(message_id, caller.user_id, body.emoji))

    @router.get("/messages/{message_id}/reactions")
    @logging_middleware.log_transaction_debug
    async def list_reactions_trans(message_id: int, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await room_service.list_reactions(message_id, caller.user_id))

    @router.delete("/reactions/{reaction_id}")
    @logging_middleware.log_transaction
    async def remove_reaction_trans(reaction_id: int, caller: AuthContext = Depends(auth.current_user)):
        await room_service.remove_reaction(reaction_id, caller.user_id)
        return Result.ok()

    @router.get("/{room_id}")
    @logging_middleware.log_transaction_debug
    async def get_room_trans(room_id: int, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await room_service.get_room(room_id, caller.user_id))

    @router.post("/{room_id}/join")
    @logging_middleware.log_transaction
    async def join_room_trans(room_id: int, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await room_service.join_room(room_id, caller.user_id))

    @router.post("/{room_id}/leave")
    @logging_middleware.log_transaction
    async def leave_room_trans(room_id: int, caller: AuthContext = Depends(auth.current_user)):
        await room_service.leave_room(room_id, caller.user_id)
        return Result.ok()

    @router.get("/{room_id}/messages")
    @logging_middleware.log_transaction_debug
    async def get_messages_trans(
        room_id: int,
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
        caller: AuthContext = Depends(auth.current_user)
    ):
        return Result.ok(await room_service.fetch_room_messages(room_id, caller.user_id, limit, offset))

    @router.get("/{room_id}/messages/new")
    @logging_middleware.log_transaction_debug
    async def get_new_messages_trans(
        room_id: int,
        after: datetime,
        caller: AuthContext = Depends(auth.current_user)
    ):
        """Poll messages created after a timestamp."""

        return Result.ok(await room_service.fetch_new_room_messages(room_id, caller.user_id, after))

    @router.post("/{room_id}/messages")
    @logging_middleware.log_transaction
    async def send_message_trans(
        room_id: int,
        body: SendRoomMessageRequest,
        caller: AuthContext = Depends(auth.current_user)
    ):
        return Result.ok(await room_service.send_room_message(
            room_id=room_id,
            sender_id=caller.user_id,
            content=body.content,
            type=body.type,
            reply_to_id=body.reply_to_id,
            caption=body.caption,
            recipient_id=body.recipient_id,
            media_id=body.media_id
        ))

    @router.get("/{room_id}/members")
    @logging_middleware.log_transaction_debug
    async def get_members_trans(room_id: int, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await room_service.list_members(room_id, caller.user_id))

    @router.post("/{room_id}/complete")
    @logging_middleware.log_transaction
    async def complete_room_trans(room_id: int, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await room_service.complete_room(room_id, caller.user_id))

    @router.post("/{room_id}/archive")
    @logging_middleware.log_transaction
    async def archive_room_trans(room_id: int, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await room_service.archive_room(room_id, caller.user_id))

    @router.delete("/{room_id}")
    @logging_middleware.log_transaction
    async def delete_room_trans(room_id: int, caller: AuthContext = Depends(auth.current_user)):
        await room_service.delete_room(room_id, caller.user_id)
        return Result.ok()

    @public_router.get("/{invite_code}")
    @logging_middleware.log_transaction_debug
    async def preview_invite_trans(invite_code: str):
        return Result.ok(await room_service.preview_invite(invite_code))

    @public_router.post("/{invite_code}")
    @logging_middleware.log_transaction
    async def join_by_invite_trans(
        invite_code: str,
        body: Optional[JoinByInviteRequest] = None,
        caller: Optional[AuthContext] = Depends(auth.optional_user)
    ):
        """Join through an invite link, creating a guest when no credential is given."""

        if caller is not None:
            room = await room_service.join_by_invite(invite_code, caller.user_id)
            return Result.ok(JoinResult(room=room))

        await room_service.check_joinable(invite_code)

        login = await app.user_service.guest_login((body.name if body else None) or "guest")
        try:
            room = await room_service.join_by_invite(invite_code, login.user.user_id)
        except ServiceError:
            # The room closed between the check and the join
            await app.user_service.delete_account(login.user.user_id)
            raise

        return Result.ok(JoinResult(room=room, login=login))

    app.api.include_router(router)
    app.api.include_router(public_router)
