"""User service for identity, login sessions and account operations."""

import logging
import re
import secrets

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.services.users.repos import BansRepository, UserSessionsRepository, UsersRepository
from ephemera.services.media.service import PLAN_LIMITS
from ephemera.models.api_models import LoginResult, StorageInfo, User
from ephemera.models.db_models import UserDB
from ephemera.models.enums import Plan, Role, UserKind
from ephemera.common.errors import (
    Banned,
    Conflict,
    Forbidden,
    NotFound,
    Unauthorized,
    ValidationError,
)
from ephemera.common.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from ephemera.config import settings


USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,32}$")
GUEST_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,20}$")
MIN_PASSWORD_LENGTH = 6


class UserService:
    """Service for user operations."""

    def __init__(self, app: "Application"):
        """Initialize service with application."""

        self.app = app
        self.logger = logging.getLogger("user-service")
        self.logger.setLevel(settings.logging_level)

        self.users_repo = UsersRepository(app)
        self.sessions_repo = UserSessionsRepository(app)
        self.bans_repo = BansRepository(app)

    async def _open_session(self, user_db: UserDB) -> LoginResult:
        """Open login session and issue credential for it."""

        now = self.app.clock.now()
        session_id = await self.sessions_repo.create(user_db.id, now)
        token = create_access_token(user_db.id, user_db.role.value, session_id, now)

        return LoginResult(
            user=self.users_repo.to_api_model(user_db),
            token=token,
            session_id=session_id
        )

    async def guest_login(self, name: str) -> LoginResult:
        """Create throwaway guest account and log it in."""

        name = (name or "").strip()
        if not GUEST_NAME_PATTERN.match(name):
            raise ValidationError("Guest name must be 1-20 letters, digits, '_' or '-'")

        username = f"guest-{name}-{secrets.token_hex(3)}"
        while await self.users_repo.username_exists(username):
            username = f"guest-{name}-{secrets.token_hex(3)}"

        user_id = await self.users_repo.create(
            username=username,
            display_name=name,
            kind=UserKind.GUEST,
            role=Role.GUEST,
            created_at=self.app.clock.now()
        )
        user_db = await self.users_repo.get_by_id(user_id)

        self.logger.info(f"Guest '{username}' logged in")

        return await self._open_session(user_db)

    async def register(
        self,
        username: str,
        password: str,
        display_name: str | None = None,
        email: str | None = None
    ) -> LoginResult:
        """Register new account and log it in."""

        if not USERNAME_PATTERN.match(username or ""):
            raise ValidationError("Username must be 3-32 letters, digits, '_', '.' or '-'")
        if username.lower().startswith("guest-"):
            raise ValidationError("Username prefix 'guest-' is reserved")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        if await self.users_repo.username_exists(username):
            raise Conflict("Username already taken")
        if email and await self.users_repo.email_exists(email):
            raise Conflict("Email already registered")

        user_id = await self.users_repo.create(
            username=username,
            display_name=display_name or username,
            kind=UserKind.REGISTERED,
            role=Role.USER,
            created_at=self.app.clock.now(),
            password_hash=hash_password(password),
            email=email
        )
        user_db = await self.users_repo.get_by_id(user_id)

        self.logger.info(f"User '{username}' registered")

        return await self._open_session(user_db)

    async def login(self, username_or_email: str, password: str) -> LoginResult:
        """Log in with password, renew activity in conversations and rooms."""

        user_db = await self.users_repo.get_by_login(username_or_email)
        if not user_db:
            raise Unauthorized("Invalid credentials")

        if user_db.is_guest:
            raise Forbidden("Guest accounts cannot log in with a password")

        if not user_db.password_hash or not verify_password(password, user_db.password_hash):
            raise Unauthorized("Invalid credentials")

        if user_db.role == Role.BANNED:
            user_db = await self._evaluate_ban(user_db)

        now = self.app.clock.now()
        await self.users_repo.mark_login(user_db.id, now)
        user_db = await self.users_repo.get_by_id(user_db.id)

        await self.app.conversation_service.on_user_login(user_db.id)
        await self.app.room_service.on_creator_login(user_db.id)

        self.logger.info(f"User '{user_db.username}' logged in")

        return await self._open_session(user_db)

    async def logout(self, user_id: int, session_id: int | None = None) -> None:
        """
        Log user out.

        Closes the session (all sessions when session_id is None). Once no
        session of the user is left open, the user goes offline, their
        conversation history is hidden from them (purging conversations both
        sides have left), the rooms they created are marked for deletion and
        guest memberships are dropped. Closing one of several sessions has no
        other effect.
        """

        user_db = await self.users_repo.get_by_id(user_id)
        if not user_db:
            raise NotFound("User not found")

        now = self.app.clock.now()
        async with self.app.db.transaction() as conn:
            if session_id is not None:
                await self.sessions_repo.close(session_id, now, conn=conn)
            else:
                await self.sessions_repo.close_all_for_user(user_id, now, conn=conn)

            remaining = await self.sessions_repo.count_active(user_id, conn=conn)
            if not remaining:
                await self.users_repo.set_online(user_id, False, now, conn=conn)

        if remaining:
            self.logger.info(f"Session {session_id} of '{user_db.username}' closed, {remaining} still open")
            return

        await self.app.conversation_service.on_user_logout(user_id)
        await self.app.room_service.mark_creator_logged_out(user_id)

        if user_db.is_guest:
            await self.app.room_service.remove_guest_memberships(user_id)

        await self.app.push.disconnect(user_id)

        self.logger.info(f"User '{user_db.username}' logged out")

    async def authenticate(self, token: str) -> tuple[UserDB, int]:
        """
        Resolve credential into (user, session_id).

        Raises:
            Unauthorized: Invalid or expired credential, closed session or deleted user
            Banned: Active ban
        """

        payload = decode_access_token(token) if token else None
        if not payload:
            raise Unauthorized("Invalid or expired token")

        try:
            user_id = int(payload["sub"])
            session_id = int(payload["sid"])
        except (KeyError, TypeError, ValueError):
            raise Unauthorized("Malformed token")

        session_db = await self.sessions_repo.get_by_id(session_id)
        if not session_db or not session_db.is_active or session_db.user_id != user_id:
            raise Unauthorized("Session is closed")

        user_db = await self.users_repo.get_by_id(user_id)
        if not user_db:
            raise Unauthorized("User not found")

        if user_db.role == Role.BANNED:
            user_db = await self._evaluate_ban(user_db)

        return user_db, session_id

    async def _evaluate_ban(self, user_db: UserDB) -> UserDB:
        """Lift an expired ban or raise Banned for an active one."""

        ban_db = await self.bans_repo.get_active(user_db.id)
        if not ban_db:
            raise Banned(None, "permanent")

        now = self.app.clock.now()
        if ban_db.is_permanent or ban_db.expires_at is None or ban_db.expires_at > now:
            banned_until = "permanent" if ban_db.is_permanent else ban_db.expires_at.isoformat()
            raise Banned(ban_db.reason, banned_until)

        async with self.app.db.transaction() as conn:
            await self.bans_repo.deactivate(ban_db.id, conn=conn)
            await self.users_repo.set_role(user_db.id, ban_db.previous_role, conn=conn)

        self.logger.info(f"Ban {ban_db.id} of user {user_db.id} expired, role {ban_db.previous_role.value} restored")

        return await self.users_repo.get_by_id(user_db.id)

    async def get_user(self, user_id: int) -> User:
        """Get user by ID."""

        user_db = await self.users_repo.get_by_id(user_id)
        if not user_db:
            raise NotFound("User not found")

        return self.users_repo.to_api_model(user_db)

    async def update_profile(
        self,
        user_id: int,
        display_name: str | None = None,
        email: str | None = None
    ) -> User:
        """Update user profile."""

        user_db = await self.users_repo.get_by_id(user_id)
        if not user_db:
            raise NotFound("User not found")

        if display_name is not None and not display_name.strip():
            raise ValidationError("Display name cannot be empty")

        if email is not None:
            if user_db.is_guest:
                raise Forbidden("Guests cannot set an email")
            if email != user_db.email and await self.users_repo.email_exists(email):
                raise Conflict("Email already registered")

        await self.users_repo.update_profile(user_id, display_name=display_name, email=email)

        return await self.get_user(user_id)

    async def username_available(self, username: str) -> bool:
        return bool(USERNAME_PATTERN.match(username or "")) and not await self.users_repo.username_exists(username)

    async def online_users(self) -> list[User]:
        users_db = await self.users_repo.list_online()
        return [self.users_repo.to_api_model(user_db) for user_db in users_db]

    async def delete_account(self, user_id: int) -> None:
        """Delete account with its conversations, rooms and media."""

        user_db = await self.users_repo.get_by_id(user_id)
        if not user_db:
            raise NotFound("User not found")

        await self.app.conversation_service.on_user_deleted(user_id)
        await self.app.room_service.on_user_deleted(user_id)
        await self.app.media_service.purge_user(user_id)

        await self.users_repo.delete(user_id)
        await self.app.push.disconnect(user_id)

        self.logger.info(f"User '{user_db.username}' deleted")

    async def storage_info(self, user_id: int) -> StorageInfo:
        """Get media storage usage and plan limits."""

        user_db = await self.users_repo.get_by_id(user_id)
        if not user_db:
            raise NotFound("User not found")

        per_file_limit, total_limit = PLAN_LIMITS[user_db.plan]

        return StorageInfo(
            plan=user_db.plan,
            used=user_db.storage_used,
            limit=total_limit,
            per_file_limit=per_file_limit
        )

    async def upgrade_plan(self, user_id: int, plan: Plan) -> StorageInfo:
        """Switch storage plan of a registered user."""

        user_db = await self.users_repo.get_by_id(user_id)
        if not user_db:
            raise NotFound("User not found")

        if user_db.is_guest:
            raise Forbidden("Guests cannot change plan")

        await self.users_repo.set_plan(user_id, plan)

        return await self.storage_info(user_id)
