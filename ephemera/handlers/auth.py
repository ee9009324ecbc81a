"""Auth and account handlers."""

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.middleware import logging_middleware, AuthContext, AuthMiddleware
from ephemera.models.api_models import Result
from ephemera.models.request_models import (
    GuestLoginRequest,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    UpgradePlanRequest,
)


def register_auth_handlers(app: "Application"):
    """Register auth handlers."""

    router = APIRouter(prefix="/api/auth", tags=["auth"])
    user_service = app.user_service
    auth = AuthMiddleware(app)

    @router.post("/guest-login")
    @logging_middleware.log_transaction
    async def guest_login_trans(body: GuestLoginRequest):
        """Create guest account and log it in."""

        return Result.ok(await user_service.guest_login(body.name))

    @router.post("/register")
    @logging_middleware.log_transaction
    async def register_trans(body: RegisterRequest):
        """Register new account."""

        return Result.ok(await user_service.register(
            username=body.username,
            password=body.password,
            display_name=body.display_name,
            email=body.email
        ))

    @router.post("/login")
    @logging_middleware.log_transaction
    async def login_trans(body: LoginRequest):
        return Result.ok(await user_service.login(body.username, body.password))

    @router.post("/logout")
    @logging_middleware.log_transaction
    async def logout_trans(caller: AuthContext = Depends(auth.current_user)):
        """Close session and hide the user's conversation history."""

        await user_service.logout(caller.user_id, caller.session_id)
        return Result.ok()

    @router.get("/me")
    @logging_middleware.log_transaction_debug
    async def me_trans(caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await user_service.get_user(caller.user_id))

    @router.put("/profile")
    @logging_middleware.log_transaction
    async def update_profile_trans(body: ProfileUpdateRequest, caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await user_service.update_profile(
            caller.user_id,
            display_name=body.display_name,
            email=body.email
        ))

    @router.get("/check-username/{username}")
    @logging_middleware.log_transaction_debug
    async def check_username_trans(username: str):
        return Result.ok({"available": await user_service.username_available(username)})

    @router.get("/online-users")
    @logging_middleware.log_transaction_debug
    async def online_users_trans(caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await user_service.online_users())

    @router.get("/storage")
    @logging_middleware.log_transaction_debug
    async def storage_trans(caller: AuthContext = Depends(auth.current_user)):
        return Result.ok(await user_service.storage_info(caller.user_id))

    @router.post("/upgrade")
    @logging_middleware.log_transaction
    async def upgrade_trans(body: UpgradePlanRequest, caller: AuthContext = Depends(auth.require_registered())):
        return Result.ok(await user_service.upgrade_plan(caller.user_id, body.plan))

    @router.delete("/account")
    @logging_middleware.log_transaction
    async def delete_account_trans(caller: AuthContext = Depends(auth.current_user)):
        """Delete own account with everything it owns."""

        await user_service.delete_account(caller.user_id)
        return Result.ok()

    app.api.include_router(router)
