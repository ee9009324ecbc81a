"""
Conversation engine.

Every direct message carries one visibility bit per participant. The
sender's bit is always set, the peer's bit is set only while the peer has not
logged out of the conversation. Logging out clears the leaving side's bits;
once both sides have logged out the conversation is purged.
"""

import logging

from datetime import timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.services.conversations.repos import (
    ConversationsRepository,
    DirectMessagesRepository,
    DirectReactionsRepository,
)
from ephemera.services.users.repos import UsersRepository
from ephemera.models.api_models import (
    Conversation,
    ConversationSummary,
    DirectMessage,
    Reaction,
    ReplyPreview,
)
from ephemera.models.db_models import ConversationDB, DirectMessageDB, ReactionDB, UserDB
from ephemera.models.enums import MessageType
from ephemera.common.errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError
from ephemera.config import settings


MAX_CONTENT_LENGTH = 10_000
MAX_EMOJI_LENGTH = 16


def reaction_to_api(reaction_db: ReactionDB, users: dict[int, UserDB]) -> Reaction:
    user_db = users.get(reaction_db.user_id)

    return Reaction(
        reaction_id=reaction_db.id,
        message_id=reaction_db.message_id,
        user_id=reaction_db.user_id,
        username=user_db.username if user_db else None,
        emoji=reaction_db.emoji,
        created_at=reaction_db.created_at.isoformat()
    )


def validate_emoji(emoji: str) -> str:
    emoji = (emoji or "").strip()
    if not emoji or len(emoji) > MAX_EMOJI_LENGTH:
        raise ValidationError("Invalid emoji")
    return emoji


class ConversationService:
    """Service for two-party conversations."""

    def __init__(self, app: "Application"):
        """Initialize service with application."""

        self.app = app
        self.logger = logging.getLogger("conversation-service")
        self.logger.setLevel(settings.logging_level)

        self.conversations_repo = ConversationsRepository(app)
        self.direct_messages_repo = DirectMessagesRepository(app)
        self.direct_reactions_repo = DirectReactionsRepository(app)

        self.users_repo = UsersRepository(app)

    async def _get_for_participant(self, conversation_id: int, user_id: int) -> ConversationDB:
        conversation_db = await self.conversations_repo.get_by_id(conversation_id)
        if not conversation_db:
            raise NotFound("Conversation not found")

        if not conversation_db.has_participant(user_id):
            raise Forbidden("Not a participant of this conversation")

        return conversation_db

    def _is_live(self, conversation_db: ConversationDB) -> bool:
        return conversation_db.is_active and conversation_db.expires_at > self.app.clock.now()

    async def open_conversation(self, user_id: int, peer_id: int) -> Conversation:
        """Return the active conversation of the pair, creating it when absent."""

        if user_id == peer_id:
            raise ValidationError("Cannot open a conversation with yourself")

        users = await self.users_repo.get_by_ids([user_id, peer_id])
        if user_id not in users or peer_id not in users:
            raise NotFound("User not found")

        if await self.app.friend_service.is_blocked(user_id, peer_id):
            raise Forbidden("Conversation is blocked")

        user_a_id, user_b_id = sorted((user_id, peer_id))

        conversation_db = await self.conversations_repo.get_active_between(user_a_id, user_b_id)
        if conversation_db and not self._is_live(conversation_db):
            await self._purge(conversation_db.id)
            conversation_db = None

        if not conversation_db:
            now = self.app.clock.now()
            conversation_id = await self.conversations_repo.create(
                user_a_id,
                user_b_id,
                created_at=now,
                expires_at=now + timedelta(hours=settings.conversation_ttl_hours)
            )

            if conversation_id is None:
                conversation_db = await self.conversations_repo.get_active_between(user_a_id, user_b_id)
            else:
                conversation_db = await self.conversations_repo.get_by_id(conversation_id)
                self.logger.info(f"Conversation {conversation_id} opened between {user_a_id} and {user_b_id}")

        return await self._to_api_conversation(conversation_db, user_id)

    async def send_direct_message(
        self,
        conversation_id: int,
        sender_id: int,
        content: str,
        type: MessageType = MessageType.TEXT,
        reply_to_id: int | None = None,
        caption: str | None = None,
        media_id: int | None = None
    ) -> DirectMessage:
        """Persist message with computed visibility and push it to the peer."""

        conversation_db = await self._get_for_participant(conversation_id, sender_id)
        if not self._is_live(conversation_db):
            raise InvalidState("Conversation has expired")

        if not type.is_user_sendable:
            raise ValidationError(f"Message type '{type.value}' cannot be sent")

        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content cannot be empty")
        if len(content) > MAX_CONTENT_LENGTH:
            raise ValidationError("Message is too long")

        if reply_to_id is not None:
            reply_db = await self.direct_messages_repo.get_by_id(reply_to_id)
            if not reply_db or reply_db.conversation_id != conversation_id:
                raise NotFound("Replied message not found")

        await self.app.media_service.get_attachment(type, media_id, sender_id)

        async with self.app.db.transaction() as conn:
            conversation_db = await self.conversations_repo.get_by_id(conversation_id, conn=conn, for_update=True)
            if not conversation_db or not conversation_db.is_active:
                raise InvalidState("Conversation is no longer active")

            sender_is_a = conversation_db.is_user_a(sender_id)
            peer_logged_out = conversation_db.logged_out(conversation_db.peer_of(sender_id))

            message_id = await self.direct_messages_repo.create(
                conversation_id=conversation_id,
                sender_id=sender_id,
                content=content,
                type=type,
                created_at=self.app.clock.now(),
                visible_to_a=True if sender_is_a else not peer_logged_out,
                visible_to_b=not peer_logged_out if sender_is_a else True,
                caption=caption,
                reply_to_id=reply_to_id,
                media_id=media_id,
                conn=conn
            )

            if conversation_db.logged_out(sender_id):
                await self.conversations_repo.set_logged_out(conversation_id, sender_is_a, False, conn=conn)

        message_db = await self.direct_messages_repo.get_by_id(message_id)
        messages = await self._to_api_messages([message_db], conversation_db, sender_id)
        message = messages[0]

        await self.app.notify_man.send_new_direct_message(conversation_db.peer_of(sender_id), message)

        return message

    async def fetch_visible_messages(self, conversation_id: int, requester_id: int) -> list[DirectMessage]:
        """Get messages visible to requester, oldest first."""

        conversation_db = await self._get_for_participant(conversation_id, requester_id)

        messages_db = await self.direct_messages_repo.get_visible(
            conversation_id, conversation_db.is_user_a(requester_id)
        )

        return await self._to_api_messages(messages_db, conversation_db, requester_id)

    async def mark_read(self, conversation_id: int, reader_id: int) -> int:
        """Mark peer's messages read and notify their sender per message."""

        conversation_db = await self._get_for_participant(conversation_id, reader_id)

        unread = await self.direct_messages_repo.get_unread_for(
            conversation_id, reader_id, conversation_db.is_user_a(reader_id)
        )
        if not unread:
            return 0

        await self.direct_messages_repo.mark_read([m.id for m in unread], self.app.clock.now())

        for message_db in unread:
            await self.app.notify_man.send_message_read(
                message_db.sender_id, conversation_id, message_db.id, reader_id
            )

        return len(unread)

    async def on_user_logout(self, user_id: int) -> int:
        """
        Hide history from a leaving user.

        Returns:
            Number of conversations purged because both participants have left
        """

        purged = 0
        for conversation_db in await self.conversations_repo.list_active_for_user(user_id):
            try:
                if await self._logout_from(conversation_db.id, user_id):
                    purged += 1
            except Exception as e:
                self.logger.error(f"Logout of user {user_id} from conversation {conversation_db.id} failed: {e}")

        return purged

    async def _logout_from(self, conversation_id: int, user_id: int) -> bool:
        media_ids = []
        purged = False

        async with self.app.db.transaction() as conn:
            conversation_db = await self.conversations_repo.get_by_id(conversation_id, conn=conn, for_update=True)
            if not conversation_db:
                return False

            user_is_a = conversation_db.is_user_a(user_id)
            await self.conversations_repo.set_logged_out(conversation_id, user_is_a, True, conn=conn)
            await self.direct_messages_repo.hide_for(conversation_id, user_is_a, conn=conn)

            if conversation_db.logged_out(conversation_db.peer_of(user_id)):
                media_ids = await self._delete_rows(conversation_id, conn)
                purged = True

        if purged:
            self.logger.info(f"Conversation {conversation_id} purged, both participants logged out")
            await self.app.media_service.purge(media_ids)

        return purged

    async def on_user_login(self, user_id: int) -> int:
        """Make messages sent after re-login visible again. Hidden history stays hidden."""

        return await self.conversations_repo.clear_logged_out_for_user(user_id)

    async def on_user_deleted(self, user_id: int) -> int:
        """Purge every conversation of a deleted user."""

        count = 0
        for conversation_db in await self.conversations_repo.list_for_user(user_id):
            await self._purge(conversation_db.id)
            count += 1

        return count

    async def sweep_expired(self) -> int:
        """Delete conversations past their lifetime, each one in isolation."""

        count = 0
        for conversation_db in await self.conversations_repo.get_expired(self.app.clock.now()):
            try:
                await self._purge(conversation_db.id)
                count += 1
            except Exception as e:
                self.logger.error(f"Sweep of conversation {conversation_db.id} failed: {e}")

        if count:
            self.logger.info(f"Swept {count} expired conversations")

        return count

    async def _delete_rows(self, conversation_id: int, conn) -> list[int]:
        """Delete conversation with messages and reactions, return attached media."""

        media_ids = await self.direct_messages_repo.get_media_ids(conversation_id, conn=conn)

        await self.direct_reactions_repo.delete_by_conversation(conversation_id, conn=conn)
        await self.direct_messages_repo.delete_by_conversation(conversation_id, conn=conn)
        await self.conversations_repo.delete(conversation_id, conn=conn)

        return media_ids

    async def _purge(self, conversation_id: int) -> None:
        async with self.app.db.transaction() as conn:
            media_ids = await self._delete_rows(conversation_id, conn)

        await self.app.media_service.purge(media_ids)

    async def deactivate_for_user(self, user_id: int, conn=None) -> int:
        return await self.conversations_repo.deactivate_for_user(user_id, conn=conn)

    async def list_conversations(self, user_id: int) -> list[Conversation]:
        """Get live conversations of a user with peer, last message and unread count."""

        conversations = []
        for conversation_db in await self.conversations_repo.list_active_for_user(user_id):
            if not self._is_live(conversation_db):
                continue
            conversations.append(await self._to_api_conversation(conversation_db, user_id))

        conversations.sort(key=lambda c: c.last_message_at or c.created_at, reverse=True)

        return conversations

    async def get_conversation(self, conversation_id: int, requester_id: int) -> Conversation:
        conversation_db = await self._get_for_participant(conversation_id, requester_id)
        return await self._to_api_conversation(conversation_db, requester_id)

    async def _get_visible_message(self, message_id: int, user_id: int) -> tuple[DirectMessageDB, ConversationDB]:
        message_db = await self.direct_messages_repo.get_by_id(message_id)
        if not message_db:
            raise NotFound("Message not found")

        conversation_db = await self._get_for_participant(message_db.conversation_id, user_id)

        visible = message_db.visible_to_a if conversation_db.is_user_a(user_id) else message_db.visible_to_b
        if not visible:
            raise NotFound("Message not found")

        return message_db, conversation_db

    async def react(self, message_id: int, user_id: int, emoji: str) -> Reaction:
        """Add emoji reaction to a visible message."""

        emoji = validate_emoji(emoji)
        message_db, conversation_db = await self._get_visible_message(message_id, user_id)

        if await self.direct_reactions_repo.exists(message_id, user_id, emoji):
            raise Conflict("Reaction already exists")

        reaction_id = await self.direct_reactions_repo.create(message_id, user_id, emoji, self.app.clock.now())
        if reaction_id is None:
            raise Conflict("Reaction already exists")

        reaction_db = await self.direct_reactions_repo.get_by_id(reaction_id)
        reaction = reaction_to_api(reaction_db, await self.users_repo.get_by_ids([user_id]))

        await self.app.notify_man.send_direct_reaction(
            [conversation_db.peer_of(user_id)], conversation_db.id, reaction
        )

        return reaction

    async def remove_reaction(self, reaction_id: int, user_id: int) -> None:
        """Remove own reaction."""

        reaction_db = await self.direct_reactions_repo.get_by_id(reaction_id)
        if not reaction_db:
            raise NotFound("Reaction not found")

        if reaction_db.user_id != user_id:
            raise Forbidden("Cannot remove another user's reaction")

        message_db, conversation_db = await self._get_visible_message(reaction_db.message_id, user_id)

        await self.direct_reactions_repo.delete(reaction_id)

        await self.app.notify_man.send_direct_reaction_removed(
            [conversation_db.peer_of(user_id)], conversation_db.id, message_db.id, reaction_id
        )

    async def delete_conversation(self, conversation_id: int) -> None:
        """Delete conversation with everything in it (moderation)."""

        if not await self.conversations_repo.get_by_id(conversation_id):
            raise NotFound("Conversation not found")

        await self._purge(conversation_id)

        self.logger.info(f"Conversation {conversation_id} deleted by moderation")

    async def delete_message(self, message_id: int) -> None:
        """Delete one message (moderation)."""

        message_db = await self.direct_messages_repo.get_by_id(message_id)
        if not message_db:
            raise NotFound("Message not found")

        async with self.app.db.transaction() as conn:
            await self.direct_reactions_repo.delete_by_message(message_id, conn=conn)
            await self.direct_messages_repo.delete(message_id, conn=conn)

        if message_db.media_id is not None:
            await self.app.media_service.purge([message_db.media_id])

    async def moderation_messages(self, conversation_id: int) -> list[DirectMessage]:
        """Get every stored message of a conversation, hidden ones included."""

        conversation_db = await self.conversations_repo.get_by_id(conversation_id)
        if not conversation_db:
            raise NotFound("Conversation not found")

        messages_db = await self.direct_messages_repo.get_all(conversation_id)

        return await self._to_api_messages(messages_db, conversation_db, None)

    async def list_all(self, limit: int = 100, offset: int = 0) -> list[ConversationSummary]:
        """List conversations for moderation."""

        conversations_db = await self.conversations_repo.list_all(limit, offset)

        user_ids = [c.user_a_id for c in conversations_db] + [c.user_b_id for c in conversations_db]
        users = await self.users_repo.get_by_ids(user_ids)

        summaries = []
        for conversation_db in conversations_db:
            user_a = users.get(conversation_db.user_a_id)
            user_b = users.get(conversation_db.user_b_id)

            summaries.append(ConversationSummary(
                conversation_id=conversation_db.id,
                user_a=self.users_repo.to_api_model(user_a) if user_a else None,
                user_b=self.users_repo.to_api_model(user_b) if user_b else None,
                message_count=await self.direct_messages_repo.count(conversation_db.id),
                is_active=conversation_db.is_active,
                created_at=conversation_db.created_at.isoformat(),
                expires_at=conversation_db.expires_at.isoformat()
            ))

        return summaries

    async def _to_api_conversation(self, conversation_db: ConversationDB, user_id: int) -> Conversation:
        peer_db = await self.users_repo.get_by_id(conversation_db.peer_of(user_id))
        if not peer_db:
            raise NotFound("Peer not found")

        user_is_a = conversation_db.is_user_a(user_id)
        last_message_db = await self.direct_messages_repo.get_last_visible(conversation_db.id, user_is_a)

        return Conversation(
            conversation_id=conversation_db.id,
            peer=self.users_repo.to_api_model(peer_db),
            last_message=last_message_db.content if last_message_db else None,
            last_message_at=last_message_db.created_at.isoformat() if last_message_db else None,
            unread_count=await self.direct_messages_repo.count_unread(conversation_db.id, user_id, user_is_a),
            created_at=conversation_db.created_at.isoformat(),
            expires_at=conversation_db.expires_at.isoformat()
        )

    async def _to_api_messages(
        self,
        messages_db: list[DirectMessageDB],
        conversation_db: ConversationDB,
        viewer_id: int | None
    ) -> list[DirectMessage]:
        """Attach senders, reactions and reply previews. A None viewer sees everything (moderation)."""

        viewer_is_a = viewer_id is not None and conversation_db.is_user_a(viewer_id)

        def visible(message_db: DirectMessageDB) -> bool:
            if viewer_id is None:
                return True
            return message_db.visible_to_a if viewer_is_a else message_db.visible_to_b

        reply_ids = [m.reply_to_id for m in messages_db if m.reply_to_id is not None]
        replies = await self.direct_messages_repo.get_by_ids(reply_ids)
        reactions = await self.direct_reactions_repo.get_by_message_ids([m.id for m in messages_db])

        user_ids = {conversation_db.user_a_id, conversation_db.user_b_id}
        user_ids.update(r.user_id for rs in reactions.values() for r in rs)
        users = await self.users_repo.get_by_ids(list(user_ids))

        def username(uid: int) -> str | None:
            return users[uid].username if uid in users else None

        messages = []
        for message_db in messages_db:
            reply_preview = None
            reply_db = replies.get(message_db.reply_to_id) if message_db.reply_to_id else None
            if reply_db and visible(reply_db):
                reply_preview = ReplyPreview(
                    message_id=reply_db.id,
                    sender_id=reply_db.sender_id,
                    sender_username=username(reply_db.sender_id),
                    content=reply_db.content,
                    type=reply_db.type,
                    caption=reply_db.caption,
                    created_at=reply_db.created_at.isoformat()
                )

            messages.append(DirectMessage(
                message_id=message_db.id,
                conversation_id=message_db.conversation_id,
                sender_id=message_db.sender_id,
                sender_username=username(message_db.sender_id),
                content=message_db.content,
                type=message_db.type,
                caption=message_db.caption,
                media_id=message_db.media_id,
                is_read=message_db.is_read,
                visible=visible(message_db),
                reply_to=reply_preview,
                reactions=[reaction_to_api(r, users) for r in reactions.get(message_db.id, [])],
                created_at=message_db.created_at.isoformat()
            ))

        return messages
