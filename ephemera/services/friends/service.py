"""Friend service for the relationship graph between registered users."""

import logging

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.services.friends.repos import FriendshipsRepository
from ephemera.services.users.repos import UsersRepository
from ephemera.models.api_models import Friendship, FriendshipState, User
from ephemera.models.db_models import UserDB
from ephemera.models.enums import FriendshipStatus
from ephemera.common.errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError
from ephemera.config import settings


class FriendService:
    """Service for friendship operations. Guests take no part in the graph."""

    def __init__(self, app: "Application"):
        """Initialize service with application."""

        self.app = app
        self.logger = logging.getLogger("friend-service")
        self.logger.setLevel(settings.logging_level)

        self.friendships_repo = FriendshipsRepository(app)
        self.users_repo = UsersRepository(app)

    async def _get_registered(self, user_id: int) -> UserDB:
        user_db = await self.users_repo.get_by_id(user_id)
        if not user_db:
            raise NotFound("User not found")
        if user_db.is_guest:
            raise Forbidden("Guests cannot use friends")
        return user_db

    async def send_request(self, requester_id: int, target_id: int) -> Friendship:
        """Send friend request."""

        if requester_id == target_id:
            raise ValidationError("Cannot send a friend request to yourself")

        await self._get_registered(requester_id)
        await self._get_registered(target_id)

        existing = await self.friendships_repo.get_between(requester_id, target_id)
        if existing:
            raise Conflict(f"Friendship already exists ({existing.status.value})")

        friendship_id = await self.friendships_repo.create(
            requester_id, target_id, FriendshipStatus.PENDING, self.app.clock.now()
        )

        return self.friendships_repo.to_api_model(await self.friendships_repo.get_by_id(friendship_id))

    async def _answer(self, friendship_id: int, user_id: int, status: FriendshipStatus) -> Friendship:
        await self._get_registered(user_id)

        friendship_db = await self.friendships_repo.get_by_id(friendship_id)
        if not friendship_db or friendship_db.recipient_id != user_id:
            raise NotFound("Friend request not found")

        if friendship_db.status != FriendshipStatus.PENDING:
            raise InvalidState(f"Friend request is already {friendship_db.status.value}")

        await self.friendships_repo.set_status(friendship_id, status, self.app.clock.now())

        return self.friendships_repo.to_api_model(await self.friendships_repo.get_by_id(friendship_id))

    async def accept(self, friendship_id: int, user_id: int) -> Friendship:
        return await self._answer(friendship_id, user_id, FriendshipStatus.ACCEPTED)

    async def reject(self, friendship_id: int, user_id: int) -> Friendship:
        return await self._answer(friendship_id, user_id, FriendshipStatus.REJECTED)

    async def block(self, blocker_id: int, target_id: int) -> Friendship:
        """Block user, overwriting any existing relationship."""

        if blocker_id == target_id:
            raise ValidationError("Cannot block yourself")

        await self._get_registered(blocker_id)
        await self._get_registered(target_id)

        now = self.app.clock.now()
        existing = await self.friendships_repo.get_between(blocker_id, target_id)
        if existing:
            await self.friendships_repo.set_blocked(existing.id, blocker_id, target_id, now)
            friendship_id = existing.id
        else:
            friendship_id = await self.friendships_repo.create(
                blocker_id, target_id, FriendshipStatus.BLOCKED, now
            )

        self.logger.info(f"User {blocker_id} blocked user {target_id}")

        return self.friendships_repo.to_api_model(await self.friendships_repo.get_by_id(friendship_id))

    async def unblock(self, blocker_id: int, target_id: int) -> None:
        """Remove block issued by blocker."""

        await self._get_registered(blocker_id)

        existing = await self.friendships_repo.get_between(blocker_id, target_id)
        if (
            not existing
            or existing.status != FriendshipStatus.BLOCKED
            or existing.requester_id != blocker_id
        ):
            raise NotFound("Block not found")

        await self.friendships_repo.delete(existing.id)

    async def _users_of(self, friendships: list, user_id: int) -> list[User]:
        other_ids = [
            f.recipient_id if f.requester_id == user_id else f.requester_id
            for f in friendships
        ]
        users_db = await self.users_repo.get_by_ids(other_ids)

        return [self.users_repo.to_api_model(users_db[uid]) for uid in other_ids if uid in users_db]

    async def list_friends(self, user_id: int) -> list[User]:
        await self._get_registered(user_id)
        return await self._users_of(await self.friendships_repo.list_accepted(user_id), user_id)

    async def list_pending(self, user_id: int) -> list[Friendship]:
        await self._get_registered(user_id)
        return [self.friendships_repo.to_api_model(f) for f in await self.friendships_repo.list_incoming(user_id)]

    async def list_sent(self, user_id: int) -> list[Friendship]:
        await self._get_registered(user_id)
        return [self.friendships_repo.to_api_model(f) for f in await self.friendships_repo.list_outgoing(user_id)]

    async def list_blocked(self, user_id: int) -> list[User]:
        await self._get_registered(user_id)
        return await self._users_of(await self.friendships_repo.list_blocked_by(user_id), user_id)

    async def status_between(self, user_id: int, other_id: int) -> FriendshipState:
        """Relationship of user towards other."""

        existing = await self.friendships_repo.get_between(user_id, other_id)
        if not existing:
            return FriendshipState(status="none")

        return FriendshipState(
            status=existing.status.value,
            friendship_id=existing.id,
            is_requester=existing.requester_id == user_id
        )

    async def is_blocked(self, user_id: int, other_id: int) -> bool:
        """Check if either user blocked the other."""

        existing = await self.friendships_repo.get_between(user_id, other_id)
        return existing is not None and existing.status == FriendshipStatus.BLOCKED
