"""Room (project) engine: membership, messaging, retention and lifecycle."""

import logging
import secrets
import string

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.services.rooms.repos import (
    RoomMembersRepository,
    RoomMessagesRepository,
    RoomReactionsRepository,
    RoomsRepository,
)
from ephemera.services.conversations.service import MAX_CONTENT_LENGTH, reaction_to_api, validate_emoji
from ephemera.services.users.repos import UsersRepository
from ephemera.models.api_models import (
    Reaction,
    ReplyPreview,
    Room,
    RoomDetails,
    RoomInvitePreview,
    RoomMember,
    RoomMessage,
)
from ephemera.models.db_models import RoomDB, RoomMessageDB
from ephemera.models.enums import MessageType, PresenceAction, Role, RoomStatus
from ephemera.common.errors import (
    Conflict,
    Forbidden,
    InvalidState,
    NotFound,
    OwnerOffline,
    ValidationError,
)
from ephemera.config import settings


INVITE_CODE_LENGTH = 12
INVITE_CODE_ALPHABET = string.ascii_letters + string.digits
MAX_ROOM_NAME_LENGTH = 100
MAX_PAGE_SIZE = 200
RECENT_MESSAGES_LIMIT = 50


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


class RoomService:
    """Service for room operations."""

    def __init__(self, app: "Application"):
        """Initialize service with application."""

        self.app = app
        self.logger = logging.getLogger("room-service")
        self.logger.setLevel(settings.logging_level)

        self.rooms_repo = RoomsRepository(app)
        self.members_repo = RoomMembersRepository(app)
        self.room_messages_repo = RoomMessagesRepository(app)
        self.room_reactions_repo = RoomReactionsRepository(app)

        self.users_repo = UsersRepository(app)

    async def _get_room(self, room_id: int) -> RoomDB:
        room_db = await self.rooms_repo.get_by_id(room_id)
        if not room_db:
            raise NotFound("Room not found")
        return room_db

    async def _require_member(self, room_id: int, user_id: int) -> RoomDB:
        room_db = await self._get_room(room_id)
        if not await self.members_repo.is_member(room_id, user_id):
            raise Forbidden("Not a member of this room")
        return room_db

    async def _require_creator(self, room_id: int, user_id: int) -> RoomDB:
        room_db = await self._get_room(room_id)
        if room_db.creator_id != user_id:
            raise Forbidden("Only the room creator can do this")
        return room_db

    async def create_room(
        self,
        creator_id: int,
        name: str,
        description: str | None = None,
        is_permanent: bool = False
    ) -> Room:
        """Create room and join its creator."""

        creator_db = await self.users_repo.get_by_id(creator_id)
        if not creator_db:
            raise NotFound("User not found")

        if creator_db.is_guest:
            raise Forbidden("Guests cannot create rooms")

        if is_permanent and creator_db.role != Role.ADMIN:
            raise Forbidden("Only admins can create permanent rooms")

        name = (name or "").strip()
        if not name or len(name) > MAX_ROOM_NAME_LENGTH:
            raise ValidationError(f"Room name must be 1-{MAX_ROOM_NAME_LENGTH} characters")

        invite_code = generate_invite_code()
        while await self.rooms_repo.invite_code_exists(invite_code):
            invite_code = generate_invite_code()

        now = self.app.clock.now()
        async with self.app.db.transaction() as conn:
            room_id = await self.rooms_repo.create(
                name=name,
                description=description,
                creator_id=creator_id,
                invite_code=invite_code,
                is_permanent=is_permanent,
                created_at=now,
                conn=conn
            )
            await self.members_repo.add_member(room_id, creator_id, now, conn=conn)

        self.logger.info(f"Room {room_id} created by user {creator_id}")

        return await self._to_api_room(await self.rooms_repo.get_by_id(room_id))

    async def join_room(self, room_id: int, user_id: int) -> Room:
        """Join active room. Temporary rooms need their creator online."""

        room_db = await self._get_room(room_id)
        if room_db.status != RoomStatus.ACTIVE:
            raise InvalidState(f"Room is {room_db.status.value}")

        user_db = await self.users_repo.get_by_id(user_id)
        if not user_db:
            raise NotFound("User not found")

        if await self.members_repo.is_member(room_id, user_id):
            return await self._to_api_room(room_db)

        await self._require_owner_online(room_db)

        if await self.members_repo.add_member(room_id, user_id, self.app.clock.now()):
            await self.app.notify_man.send_room_presence(
                room_id, self.users_repo.to_api_model(user_db), PresenceAction.JOINED
            )

        return await self._to_api_room(room_db)

    async def _require_owner_online(self, room_db: RoomDB) -> None:
        if room_db.is_permanent:
            return

        creator_db = await self.users_repo.get_by_id(room_db.creator_id)
        if not creator_db or not creator_db.is_online:
            raise OwnerOffline()

    async def _get_by_invite(self, invite_code: str) -> RoomDB:
        room_db = await self.rooms_repo.get_by_invite_code(invite_code)
        if not room_db:
            raise NotFound("Invite link is invalid")
        return room_db

    async def check_joinable(self, invite_code: str) -> RoomDB:
        """Check that a newcomer could join through the invite link right now."""

        room_db = await self._get_by_invite(invite_code)
        if room_db.status != RoomStatus.ACTIVE:
            raise InvalidState(f"Room is {room_db.status.value}")

        await self._require_owner_online(room_db)

        return room_db

    async def join_by_invite(self, invite_code: str, user_id: int) -> Room:
        room_db = await self._get_by_invite(invite_code)

        return await self.join_room(room_db.id, user_id)

    async def preview_invite(self, invite_code: str) -> RoomInvitePreview:
        """Public room preview behind an invite link."""

        room_db = await self.rooms_repo.get_by_invite_code(invite_code)
        if not room_db or room_db.status == RoomStatus.ARCHIVED:
            raise NotFound("Invite link is invalid")

        creator_db = await self.users_repo.get_by_id(room_db.creator_id)

        return RoomInvitePreview(
            room_id=room_db.id,
            name=room_db.name,
            description=room_db.description,
            creator_username=creator_db.username if creator_db else None,
            invite_code=room_db.invite_code
        )

    async def leave_room(self, room_id: int, user_id: int) -> None:
        room_db = await self._get_room(room_id)
        if room_db.creator_id == user_id:
            raise Forbidden("Room creator cannot leave the room")

        await self._remove_member(room_id, user_id)

    async def kick_member(self, room_id: int, user_id: int) -> None:
        """Remove member from room (moderation)."""

        room_db = await self._get_room(room_id)
        if room_db.creator_id == user_id:
            raise Forbidden("Room creator cannot be removed")

        await self._remove_member(room_id, user_id)

    async def _remove_member(self, room_id: int, user_id: int) -> None:
        if not await self.members_repo.remove_member(room_id, user_id):
            raise NotFound("User is not a member")

        user_db = await self.users_repo.get_by_id(user_id)
        if user_db:
            await self.app.notify_man.send_room_presence(
                room_id, self.users_repo.to_api_model(user_db), PresenceAction.LEFT
            )

    async def remove_memberships(self, user_id: int, conn=None) -> list[int]:
        return await self.members_repo.remove_user_from_all(user_id, conn=conn)

    async def remove_guest_memberships(self, user_id: int) -> int:
        """Drop a logged-out guest from all rooms."""

        room_ids = await self.members_repo.remove_user_from_all(user_id)

        user_db = await self.users_repo.get_by_id(user_id)
        if user_db:
            user = self.users_repo.to_api_model(user_db)
            for room_id in room_ids:
                await self.app.notify_man.send_room_presence(room_id, user, PresenceAction.LEFT)

        return len(room_ids)

    async def _trim(self, room_db: RoomDB, conn) -> list[int | None]:
        """Apply retention policy, return media_id of every deleted message."""

        if room_db.is_permanent:
            cutoff = self.app.clock.now() - timedelta(hours=settings.permanent_room_retention_hours)
            deleted = await self.room_messages_repo.delete_older_than(room_db.id, cutoff, conn=conn)
        else:
            deleted = await self.room_messages_repo.delete_keep_newest(
                room_db.id, settings.room_message_cap, conn=conn
            )

        if deleted:
            self.logger.debug(f"Trimmed {len(deleted)} messages of room {room_db.id}")

        return deleted

    async def send_room_message(
        self,
        room_id: int,
        sender_id: int,
        content: str,
        type: MessageType = MessageType.TEXT,
        reply_to_id: int | None = None,
        caption: str | None = None,
        recipient_id: int | None = None,
        media_id: int | None = None
    ) -> RoomMessage:
        """Persist room message, trim the room and broadcast the message."""

        room_db = await self._require_member(room_id, sender_id)
        if room_db.status != RoomStatus.ACTIVE:
            raise InvalidState(f"Room is {room_db.status.value}")

        if not type.is_user_sendable:
            raise ValidationError(f"Message type '{type.value}' cannot be sent")

        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content cannot be empty")
        if len(content) > MAX_CONTENT_LENGTH:
            raise ValidationError("Message is too long")

        await self.app.media_service.get_attachment(type, media_id, sender_id)

        if recipient_id is not None:
            if recipient_id == sender_id:
                raise ValidationError("Cannot send a secret message to yourself")
            if not await self.members_repo.is_member(room_id, recipient_id):
                raise NotFound("Recipient is not a member of this room")
            type = MessageType.SECRET

        if reply_to_id is not None:
            reply_db = await self.room_messages_repo.get_by_id(reply_to_id)
            if not reply_db or reply_db.room_id != room_id or not reply_db.visible_to(sender_id):
                raise NotFound("Replied message not found")

        async with self.app.db.transaction() as conn:
            room_db = await self.rooms_repo.get_by_id(room_id, conn=conn, for_update=True)
            if not room_db:
                raise NotFound("Room not found")

            message_id = await self.room_messages_repo.create(
                room_id=room_id,
                sender_id=sender_id,
                content=content,
                type=type,
                created_at=self.app.clock.now(),
                recipient_id=recipient_id,
                caption=caption,
                reply_to_id=reply_to_id,
                media_id=media_id,
                conn=conn
            )

            trimmed_media = await self._trim(room_db, conn)

            if sender_id == room_db.creator_id and room_db.expires_at is not None:
                await self.rooms_repo.set_expires_at(room_id, None, conn=conn)
                self.logger.info(f"Room {room_id} deletion cancelled by creator activity")

        await self.app.media_service.purge(trimmed_media)

        message_db = await self.room_messages_repo.get_by_id(message_id)
        if not message_db:
            raise InvalidState("Message was removed by retention")

        message = (await self._to_api_messages([message_db], sender_id))[0]

        await self.app.notify_man.send_new_room_message(message)

        return message

    async def fetch_room_messages(
        self,
        room_id: int,
        user_id: int,
        limit: int = 50,
        offset: int = 0
    ) -> list[RoomMessage]:
        """Get a page of messages visible to user, oldest first."""

        await self._require_member(room_id, user_id)

        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)

        messages_db = await self.room_messages_repo.get_page(room_id, user_id, limit, offset)

        return await self._to_api_messages(messages_db, user_id)

    async def fetch_new_room_messages(self, room_id: int, user_id: int, after: datetime) -> list[RoomMessage]:
        """Get messages visible to user created after a timestamp."""

        await self._require_member(room_id, user_id)

        messages_db = await self.room_messages_repo.get_after(room_id, user_id, after)

        return await self._to_api_messages(messages_db, user_id)

    async def _get_visible_message(self, message_id: int, user_id: int) -> RoomMessageDB:
        message_db = await self.room_messages_repo.get_by_id(message_id)
        if not message_db:
            raise NotFound("Message not found")

        await self._require_member(message_db.room_id, user_id)

        if not message_db.visible_to(user_id):
            raise NotFound("Message not found")

        return message_db

    @staticmethod
    def _audience(message_db: RoomMessageDB) -> list[int] | None:
        if message_db.type == MessageType.SECRET:
            return [message_db.sender_id, message_db.recipient_id]
        return None

    async def react(self, message_id: int, user_id: int, emoji: str) -> Reaction:
        """Add emoji reaction to a visible room message."""

        emoji = validate_emoji(emoji)
        message_db = await self._get_visible_message(message_id, user_id)

        if await self.room_reactions_repo.exists(message_id, user_id, emoji):
            raise Conflict("Reaction already exists")

        reaction_id = await self.room_reactions_repo.create(message_id, user_id, emoji, self.app.clock.now())
        if reaction_id is None:
            raise Conflict("Reaction already exists")

        reaction_db = await self.room_reactions_repo.get_by_id(reaction_id)
        reaction = reaction_to_api(reaction_db, await self.users_repo.get_by_ids([user_id]))

        await self.app.notify_man.send_room_reaction(
            message_db.room_id, reaction, visible_to=self._audience(message_db)
        )

        return reaction

    async def remove_reaction(self, reaction_id: int, user_id: int) -> None:
        reaction_db = await self.room_reactions_repo.get_by_id(reaction_id)
        if not reaction_db:
            raise NotFound("Reaction not found")

        if reaction_db.user_id != user_id:
            raise Forbidden("Cannot remove another user's reaction")

        message_db = await self._get_visible_message(reaction_db.message_id, user_id)

        await self.room_reactions_repo.delete(reaction_id)

        await self.app.notify_man.send_room_reaction_removed(
            message_db.room_id, message_db.id, reaction_id, visible_to=self._audience(message_db)
        )

    async def list_reactions(self, message_id: int, user_id: int) -> list[Reaction]:
        await self._get_visible_message(message_id, user_id)

        reactions = (await self.room_reactions_repo.get_by_message_ids([message_id])).get(message_id, [])
        users = await self.users_repo.get_by_ids([r.user_id for r in reactions])

        return [reaction_to_api(r, users) for r in reactions]

    async def mark_creator_logged_out(self, user_id: int) -> int:
        """Schedule deletion of the temporary rooms a user created and warn their members."""

        rooms = await self.rooms_repo.list_active_temporary_created_by(user_id)
        grace = timedelta(minutes=settings.room_grace_period_minutes)

        for room_db in rooms:
            now = self.app.clock.now()
            expires_at = now + grace

            async with self.app.db.transaction() as conn:
                await self.rooms_repo.set_expires_at(room_db.id, expires_at, conn=conn)
                message_id = await self.room_messages_repo.create(
                    room_id=room_db.id,
                    sender_id=user_id,
                    content=(
                        "Room creator has logged out. "
                        f"This room will be deleted in {settings.room_grace_period_minutes} minutes."
                    ),
                    type=MessageType.SYSTEM,
                    created_at=now,
                    conn=conn
                )
                trimmed_media = await self._trim(room_db, conn)

            await self.app.media_service.purge(trimmed_media)

            message_db = await self.room_messages_repo.get_by_id(message_id)
            if message_db:
                message = (await self._to_api_messages([message_db], user_id))[0]
                await self.app.notify_man.send_room_expiring(message, expires_at.isoformat())

            self.logger.info(f"Room {room_db.id} marked for deletion at {expires_at.isoformat()}")

        return len(rooms)

    async def on_creator_login(self, user_id: int) -> int:
        """Cancel pending deletion of rooms created by a returning user."""

        return await self.rooms_repo.clear_marks_for_creator(user_id)

    async def sweep_marked(self) -> int:
        """Delete rooms past their deletion mark, each one in isolation."""

        count = 0
        for room_db in await self.rooms_repo.get_marked_expired(self.app.clock.now()):
            try:
                await self._delete_room(room_db.id)
                count += 1
            except Exception as e:
                self.logger.error(f"Sweep of room {room_db.id} failed: {e}")

        return count

    async def trim_all(self) -> int:
        """Apply retention policy to every active room."""

        total = 0
        for room_db in await self.rooms_repo.list_active():
            try:
                async with self.app.db.transaction() as conn:
                    deleted = await self._trim(room_db, conn)

                await self.app.media_service.purge(deleted)
                total += len(deleted)

            except Exception as e:
                self.logger.error(f"Trim of room {room_db.id} failed: {e}")

        return total

    async def archive_stale_completed(self) -> int:
        """Archive rooms completed longer than the retention period."""

        cutoff = self.app.clock.now() - timedelta(days=settings.completed_room_retention_days)

        count = 0
        for room_db in await self.rooms_repo.get_completed_before(cutoff):
            try:
                await self._archive(room_db.id)
                count += 1
            except Exception as e:
                self.logger.error(f"Archiving of room {room_db.id} failed: {e}")

        return count

    async def get_room(self, room_id: int, user_id: int) -> Room:
        return await self._to_api_room(await self._require_member(room_id, user_id))

    async def list_user_rooms(self, user_id: int) -> list[Room]:
        """Get rooms a user created or joined."""

        return [await self._to_api_room(room_db) for room_db in await self.rooms_repo.list_for_user(user_id)]

    async def list_public(self) -> list[Room]:
        """Get the permanent rooms anyone can join without the creator online."""

        return [await self._to_api_room(room_db) for room_db in await self.rooms_repo.list_public()]

    async def list_all(self, limit: int = 100, offset: int = 0, status: RoomStatus | None = None) -> list[Room]:
        return [await self._to_api_room(room_db) for room_db in await self.rooms_repo.list_all(limit, offset, status)]

    async def room_details(self, room_id: int) -> RoomDetails:
        """Room with members and the latest messages, secret ones included (moderation)."""

        room_db = await self._get_room(room_id)

        members_db = await self.members_repo.get_members(room_id)
        users = await self.users_repo.get_by_ids([m.user_id for m in members_db] + [room_db.creator_id])

        messages_db = await self.room_messages_repo.get_latest(room_id, RECENT_MESSAGES_LIMIT)

        return RoomDetails(
            room=await self._to_api_room(room_db),
            creator_username=users[room_db.creator_id].username if room_db.creator_id in users else None,
            members=[
                RoomMember(user=self.users_repo.to_api_model(users[m.user_id]), joined_at=m.joined_at.isoformat())
                for m in members_db
                if m.user_id in users
            ],
            recent_messages=await self._to_api_messages(messages_db, None)
        )

    async def update_room(self, room_id: int, name: str | None = None, description: str | None = None) -> Room:
        """Rename a room or change its description (moderation). An empty description clears it."""

        if name is None and description is None:
            raise ValidationError("No fields to update")

        room_db = await self._get_room(room_id)

        if name is not None:
            name = name.strip()
            if not name or len(name) > MAX_ROOM_NAME_LENGTH:
                raise ValidationError(f"Room name must be 1-{MAX_ROOM_NAME_LENGTH} characters")
        else:
            name = room_db.name

        if description is not None:
            description = description.strip() or None
        else:
            description = room_db.description

        await self.rooms_repo.update_details(room_id, name, description)

        self.logger.info(f"Room {room_id} details updated")

        return await self._to_api_room(await self.rooms_repo.get_by_id(room_id))

    async def list_members(self, room_id: int, user_id: int) -> list[RoomMember]:
        await self._require_member(room_id, user_id)

        members_db = await self.members_repo.get_members(room_id)
        users = await self.users_repo.get_by_ids([m.user_id for m in members_db])

        return [
            RoomMember(
                user=self.users_repo.to_api_model(users[m.user_id]),
                joined_at=m.joined_at.isoformat()
            )
            for m in members_db
            if m.user_id in users
        ]

    async def complete_room(self, room_id: int, user_id: int) -> Room:
        """Mark project as completed. Messages stay until it is archived."""

        room_db = await self._require_creator(room_id, user_id)
        if room_db.status != RoomStatus.ACTIVE:
            raise InvalidState(f"Room is {room_db.status.value}")

        await self.rooms_repo.set_status(room_id, RoomStatus.COMPLETED, self.app.clock.now())

        return await self._to_api_room(await self.rooms_repo.get_by_id(room_id))

    async def archive_room(self, room_id: int, user_id: int) -> Room:
        """Archive room, dropping its messages and members."""

        room_db = await self._require_creator(room_id, user_id)
        if room_db.status == RoomStatus.ARCHIVED:
            raise InvalidState("Room is already archived")

        await self._archive(room_id)

        return await self._to_api_room(await self.rooms_repo.get_by_id(room_id))

    async def _archive(self, room_id: int) -> None:
        async with self.app.db.transaction() as conn:
            media_ids = await self.room_messages_repo.get_media_ids(room_id, conn=conn)
            await self.room_messages_repo.delete_by_room(room_id, conn=conn)
            await self.members_repo.delete_by_room(room_id, conn=conn)
            await self.rooms_repo.set_status(room_id, RoomStatus.ARCHIVED, self.app.clock.now(), conn=conn)

        await self.app.media_service.purge(media_ids)

        self.logger.info(f"Room {room_id} archived")

    async def delete_room(self, room_id: int, user_id: int) -> None:
        """Delete room (creator or admin)."""

        room_db = await self._get_room(room_id)

        if room_db.creator_id != user_id:
            user_db = await self.users_repo.get_by_id(user_id)
            if not user_db or user_db.role != Role.ADMIN:
                raise Forbidden("Only the room creator or an admin can delete this room")

        await self._delete_room(room_id)

    async def _delete_room(self, room_id: int) -> None:
        async with self.app.db.transaction() as conn:
            media_ids = await self.room_messages_repo.get_media_ids(room_id, conn=conn)
            await self.room_messages_repo.delete_by_room(room_id, conn=conn)
            await self.members_repo.delete_by_room(room_id, conn=conn)
            await self.rooms_repo.delete(room_id, conn=conn)

        await self.app.media_service.purge(media_ids)

        self.logger.info(f"Room {room_id} deleted")

    async def on_user_deleted(self, user_id: int) -> int:
        """Delete every room created by a deleted user."""

        rooms = await self.rooms_repo.list_created_by(user_id)
        for room_db in rooms:
            await self._delete_room(room_db.id)

        return len(rooms)

    async def delete_room_message(self, message_id: int) -> None:
        """Delete one room message (moderation)."""

        message_db = await self.room_messages_repo.get_by_id(message_id)
        if not message_db:
            raise NotFound("Message not found")

        await self.room_messages_repo.delete(message_id)

        if message_db.media_id is not None:
            await self.app.media_service.purge([message_db.media_id])

    async def _to_api_room(self, room_db: RoomDB) -> Room:
        return Room(
            room_id=room_db.id,
            name=room_db.name,
            description=room_db.description,
            creator_id=room_db.creator_id,
            invite_code=room_db.invite_code,
            invite_url=f"{settings.app_url.rstrip('/')}/join/{room_db.invite_code}",
            status=room_db.status,
            is_permanent=room_db.is_permanent,
            member_count=await self.members_repo.count_members(room_db.id),
            expires_at=room_db.expires_at.isoformat() if room_db.expires_at else None,
            created_at=room_db.created_at.isoformat()
        )

    async def _to_api_messages(self, messages_db: list[RoomMessageDB], viewer_id: int | None) -> list[RoomMessage]:
        """Attach senders, reactions and reply previews. A None viewer sees every reply (moderation)."""

        reply_ids = [m.reply_to_id for m in messages_db if m.reply_to_id is not None]
        replies = await self.room_messages_repo.get_by_ids(reply_ids)
        reactions = await self.room_reactions_repo.get_by_message_ids([m.id for m in messages_db])

        user_ids = set()
        for m in messages_db:
            user_ids.add(m.sender_id)
            if m.recipient_id is not None:
                user_ids.add(m.recipient_id)
        user_ids.update(r.sender_id for r in replies.values())
        user_ids.update(r.user_id for rs in reactions.values() for r in rs)
        users = await self.users_repo.get_by_ids(list(user_ids))

        def username(uid: int | None) -> str | None:
            return users[uid].username if uid in users else None

        messages = []
        for message_db in messages_db:
            reply_preview = None
            reply_db = replies.get(message_db.reply_to_id) if message_db.reply_to_id else None
            if reply_db and (viewer_id is None or reply_db.visible_to(viewer_id)):
                reply_preview = ReplyPreview(
                    message_id=reply_db.id,
                    sender_id=reply_db.sender_id,
                    sender_username=username(reply_db.sender_id),
                    content=reply_db.content,
                    type=reply_db.type,
                    caption=reply_db.caption,
                    created_at=reply_db.created_at.isoformat()
                )

            messages.append(RoomMessage(
                message_id=message_db.id,
                room_id=message_db.room_id,
                sender_id=message_db.sender_id,
                sender_username=username(message_db.sender_id),
                recipient_id=message_db.recipient_id,
                recipient_username=username(message_db.recipient_id),
                content=message_db.content,
                type=message_db.type,
                caption=message_db.caption,
                media_id=message_db.media_id,
                reply_to=reply_preview,
                reactions=[reaction_to_api(r, users) for r in reactions.get(message_db.id, [])],
                created_at=message_db.created_at.isoformat()
            ))

        return messages
