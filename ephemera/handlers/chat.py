"""Direct conversation handlers."""

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.middleware import logging_middleware, AuthContext, AuthMiddleware
from ephemera.models.api_models import Result
from ephemera.models.request_models import (
    OpenConversationRequest,
    ReactionRequest,
    SendDirectMessageRequest,
)


def register_chat_handlers(app: "Application"):
    """Register direct conversation handlers."""

    router = APIRouter(prefix="/api/chat", tags=["chat"])
    conversation_service = app.conversation_service
    auth = AuthMiddleware(app)

    @router.post("/sessions")
    @logging_middleware.log_transaction
    async def open_conversation_trans(body: OpenConversationRequest, caller: AuthContext = Depends(auth.current_user)):
        """Open (or return) the conversation with another user."""

        return Result.ok(await conversation_service.open_conversation(caller.user_id, body.user_id))

    @router.get("/sessions")
    @logging_middleware.log_transaction_debug
    async def list_conversations_trans(caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await conversation_service.list_conversations(caller.user_id))

    @router.get("/sessions/{conversation_id}")
    @logging_middleware.log_transaction_debug
    async def get_conversation_trans(conversation_id: int, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await conversation_service.get_conversation(conversation_id, caller.user_id))

    @router.get("/messages/{conversation_id}")
    @logging_middleware.log_transaction_debug
    async def get_messages_trans(conversation_id: int, caller: AuthContext = Depends(auth.current_user)):
        """Get messages visible to the caller."""

        return Result.ok(await conversation_service.fetch_visible_messages(conversation_id, caller.user_id))

    @router.post("/messages")
    @logging_middleware.log_transaction
    async def send_message_trans(body: SendDirectMessageRequest, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await conversation_service.send_direct_message(
            conversation_id=body.conversation_id,
            sender_id=caller.user_id,
            content=body.content,
            type=body.type,
            reply_to_id=body.reply_to_id,
            caption=body.caption,
            media_id=body.media_id
        ))

    @router.put("/messages/read/{conversation_id}")
    @logging_middleware.log_transaction_debug
    async def mark_read_trans(conversation_id: int, caller: AuthContext = Depends(auth.current_user)):
        marked = await conversation_service.mark_read(conversation_id, caller.user_id)
        return Result.ok({"marked": marked})

    @router.post("/messages/{message_id}/reactions")
    @logging_middleware.log_transaction
    async def react_trans(message_id: int, body: ReactionRequest, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await conversation_service.react(message_id, caller.user_id, body.emoji))

    @router.delete("/reactions/{reaction_id}")
    @logging_middleware.log_transaction
    async def remove_reaction_trans(reaction_id: int, caller: AuthContext = Depends(auth.current_user)):
        await conversation_service.remove_reaction(reaction_id, caller.user_id)
        return Result.ok()

    app.api.include_router(router)
