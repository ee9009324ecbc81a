"""Moderation service: bans, roles and platform statistics."""

import logging

from datetime import timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.services.users.repos import BansRepository, UserSessionsRepository, UsersRepository
from ephemera.models.api_models import Ban, Stats, User, UserDetails
from ephemera.models.db_models import UserDB
from ephemera.models.enums import Role, RoomStatus, UserKind
from ephemera.common.errors import Forbidden, InvalidState, NotFound, ValidationError
from ephemera.config import settings


MODERATOR_BAN_DAYS = (1, 3)
MODERATOR_BANNABLE_ROLES = (Role.USER, Role.GUEST)


class AdminService:
    """Service for moderation operations."""

    def __init__(self, app: "Application"):
        """Initialize service with application."""

        self.app = app
        self.logger = logging.getLogger("admin-service")
        self.logger.setLevel(settings.logging_level)

        self.users_repo = UsersRepository(app)
        self.sessions_repo = UserSessionsRepository(app)
        self.bans_repo = BansRepository(app)

    async def _get_user(self, user_id: int) -> UserDB:
        user_db = await self.users_repo.get_by_id(user_id)
        if not user_db:
            raise NotFound("User not found")
        return user_db

    async def _get_staff(self, user_id: int) -> UserDB:
        user_db = await self._get_user(user_id)
        if not user_db.role.is_staff:
            raise Forbidden("Moderator or admin role required")
        return user_db

    async def ban_user(
        self,
        issuer_id: int,
        target_id: int,
        duration_days: int | None,
        reason: str | None = None
    ) -> Ban:
        """
        Ban user for a number of days, or permanently when duration_days is None.

        Moderators may issue 1 or 3 day bans to users and guests only.
        The target loses their sessions, conversations and room memberships.
        """

        if issuer_id == target_id:
            raise ValidationError("Cannot ban yourself")

        issuer_db = await self._get_staff(issuer_id)
        target_db = await self._get_user(target_id)

        current_ban = await self.bans_repo.get_active(target_id)
        previous_role = current_ban.previous_role if current_ban else target_db.role

        if previous_role == Role.ADMIN:
            raise Forbidden("Admins cannot be banned")

        if issuer_db.role == Role.MODERATOR:
            if previous_role not in MODERATOR_BANNABLE_ROLES:
                raise Forbidden("Moderators can only ban users and guests")
            if duration_days is None:
                raise Forbidden("Only admins can issue permanent bans")
            if duration_days not in MODERATOR_BAN_DAYS:
                raise ValidationError("Moderators can ban for 1 or 3 days only")

        if duration_days is not None and duration_days <= 0:
            raise ValidationError("Ban duration must be positive")

        now = self.app.clock.now()
        expires_at = now + timedelta(days=duration_days) if duration_days is not None else None

        async with self.app.db.transaction() as conn:
            await self.bans_repo.deactivate_for_user(target_id, conn=conn)
            await self.bans_repo.create(
                user_id=target_id,
                issued_by=issuer_id,
                reason=reason,
                issued_at=now,
                expires_at=expires_at,
                is_permanent=duration_days is None,
                previous_role=previous_role,
                conn=conn
            )

            await self.users_repo.set_role(target_id, Role.BANNED, conn=conn)
            await self.users_repo.set_online(target_id, False, now, conn=conn)
            await self.sessions_repo.close_all_for_user(target_id, now, conn=conn)

            await self.app.conversation_service.deactivate_for_user(target_id, conn=conn)
            await self.app.room_service.remove_memberships(target_id, conn=conn)

        await self.app.push.disconnect(target_id)

        self.logger.info(
            f"User {target_id} banned by {issuer_id} "
            f"{'permanently' if expires_at is None else 'until ' + expires_at.isoformat()}"
        )

        return self.bans_repo.to_api_model(await self.bans_repo.get_active(target_id))

    async def unban_user(self, issuer_id: int, target_id: int) -> User:
        """Lift active ban and restore the role held before it."""

        issuer_db = await self._get_staff(issuer_id)
        await self._get_user(target_id)

        ban_db = await self.bans_repo.get_active(target_id)
        if not ban_db:
            raise NotFound("User is not banned")

        if issuer_db.role == Role.MODERATOR and ban_db.issued_by != issuer_id:
            raise Forbidden("Moderators can only lift their own bans")

        async with self.app.db.transaction() as conn:
            await self.bans_repo.deactivate(ban_db.id, conn=conn)
            await self.users_repo.set_role(target_id, ban_db.previous_role, conn=conn)

        self.logger.info(f"User {target_id} unbanned by {issuer_id}")

        return self.users_repo.to_api_model(await self.users_repo.get_by_id(target_id))

    async def promote(self, target_id: int, role: Role) -> User:
        if role not in (Role.MODERATOR, Role.ADMIN):
            raise ValidationError("Users can only be promoted to moderator or admin")

        target_db = await self._get_user(target_id)
        if target_db.is_guest:
            raise Forbidden("Guests cannot be promoted")
        if target_db.role == Role.BANNED:
            raise InvalidState("User is banned")

        await self.users_repo.set_role(target_id, role)

        return self.users_repo.to_api_model(await self.users_repo.get_by_id(target_id))

    async def demote(self, target_id: int) -> User:
        target_db = await self._get_user(target_id)
        if not target_db.role.is_staff:
            raise InvalidState("User is not a moderator or admin")

        await self.users_repo.set_role(target_id, Role.USER)

        return self.users_repo.to_api_model(await self.users_repo.get_by_id(target_id))

    async def delete_user(self, issuer_id: int, target_id: int) -> None:
        if issuer_id == target_id:
            raise ValidationError("Use account deletion to delete yourself")

        await self.app.user_service.delete_account(target_id)

        self.logger.info(f"User {target_id} deleted by {issuer_id}")

    async def list_users(
        self,
        role: Role | None = None,
        is_online: bool | None = None,
        search: str | None = None,
        limit: int = 100
    ) -> list[User]:
        users_db = await self.users_repo.search(role=role, is_online=is_online, query=search, limit=limit)
        return [self.users_repo.to_api_model(u) for u in users_db]

    async def user_details(self, target_id: int) -> UserDetails:
        target_db = await self._get_user(target_id)
        bans = [self.bans_repo.to_api_model(b) for b in await self.bans_repo.get_by_user(target_id)]

        return UserDetails(
            user=self.users_repo.to_api_model(target_db),
            email=target_db.email,
            storage_used=target_db.storage_used,
            last_login_at=target_db.last_login_at.isoformat() if target_db.last_login_at else None,
            last_seen_at=target_db.last_seen_at.isoformat() if target_db.last_seen_at else None,
            active_ban=next((b for b in bans if b.is_active), None),
            bans=bans
        )

    async def stats(self) -> Stats:
        conversation_service = self.app.conversation_service
        room_service = self.app.room_service

        return Stats(
            total_users=await self.users_repo.count(),
            guest_users=await self.users_repo.count(kind=UserKind.GUEST),
            registered_users=await self.users_repo.count(kind=UserKind.REGISTERED),
            online_users=await self.users_repo.count(is_online=True),
            banned_users=await self.users_repo.count(role=Role.BANNED),
            new_users_24h=await self.users_repo.count(created_since=self.app.clock.now() - timedelta(hours=24)),
            active_conversations=await conversation_service.conversations_repo.count(active_only=True),
            direct_messages=await conversation_service.direct_messages_repo.count(),
            active_rooms=await room_service.rooms_repo.count(RoomStatus.ACTIVE),
            room_messages=await room_service.room_messages_repo.count()
        )
