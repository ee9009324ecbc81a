"""Friend handlers."""

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.middleware import logging_middleware, AuthContext, AuthMiddleware
from ephemera.models.api_models import Result
from ephemera.models.request_models import FriendRequestCreate


def register_friends_handlers(app: "Application"):
    """Register friend handlers."""

    router = APIRouter(prefix="/api/friends", tags=["friends"])
    friend_service = app.friend_service
    auth = AuthMiddleware(app)

    @router.get("")
    @logging_middleware.log_transaction_debug
    async def list_friends_trans(caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await friend_service.list_friends(caller.user_id))

    @router.post("/requests")
    @logging_middleware.log_transaction
    async def send_request_trans(body: FriendRequestCreate, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await friend_service.send_request(caller.user_id, body.user_id))

    @router.get("/requests/incoming")
    @logging_middleware.log_transaction_debug
    async def list_incoming_trans(caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await friend_service.list_pending(caller.user_id))

    @router.get("/requests/sent")
    @logging_middleware.log_transaction_debug
    async def list_sent_trans(caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await friend_service.list_sent(caller.user_id))

    @router.post("/requests/{friendship_id}/accept")
    @logging_middleware.log_transaction
    async def accept_trans(friendship_id: int, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await friend_service.accept(friendship_id, caller.user_id))

    @router.post("/requests/{friendship_id}/reject")
    @logging_middleware.log_transaction
    async def reject_trans(friendship_id: int, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await friend_service.reject(friendship_id, caller.user_id))

    @router.get("/blocks")
    @logging_middleware.log_transaction_debug
    async def list_blocked_trans(caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await friend_service.list_blocked(caller.user_id))

    @router.post("/blocks/{user_id}")
    @logging_middleware.log_transaction
    async def block_trans(user_id: int, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await friend_service.block(caller.user_id, user_id))

    @router.delete("/blocks/{user_id}")
    @logging_middleware.log_transaction
    async def unblock_trans(user_id: int, caller: AuthContext = Depends(auth.current_user)):
        await friend_service.unblock(caller.user_id, user_id)
        return Result.ok()

    @router.get("/status/{user_id}")
    @logging_middleware.log_transaction_debug
    async def status_trans(user_id: int, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await friend_service.status_between(caller.user_id, user_id))

    app.api.include_router(router)
