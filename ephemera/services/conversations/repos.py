"""Conversation repositories: conversations, direct messages and their reactions."""

from datetime import datetime

from ephemera.common.base_repos import BaseDBRepository, affected_rows
from ephemera.models.db_models import ConversationDB, DirectMessageDB, ReactionDB
from ephemera.models.enums import MessageType


class ConversationsRepository(BaseDBRepository):
    """Repository for two-party conversations."""

    repository_name = "conversations"
    table_name = "conversations"

    async def get_by_id(self, conversation_id: int, conn=None, for_update: bool = False) -> ConversationDB | None:
        """Get conversation by ID, optionally locking the row."""

        lock = " FOR UPDATE" if for_update else ""
        row = await self.fetchrow(
            f"SELECT * FROM {self._get_table_name()} WHERE id = $1{lock}",
            conversation_id,
            conn=conn
        )

        return ConversationDB(**row) if row else None

    async def get_active_between(self, user_a_id: int, user_b_id: int, conn=None) -> ConversationDB | None:
        """Get active conversation of a canonical pair (user_a_id < user_b_id)."""

        row = await self.fetchrow(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE user_a_id = $1 AND user_b_id = $2 AND is_active = true""",
            user_a_id, user_b_id,
            conn=conn
        )

        return ConversationDB(**row) if row else None

    async def create(
        self,
        user_a_id: int,
        user_b_id: int,
        created_at: datetime,
        expires_at: datetime,
        conn=None
    ) -> int | None:
        """Create conversation and return ID, None if the pair already has an active one."""

        return await self.fetchval(
            f"""INSERT INTO {self._get_table_name()} (user_a_id, user_b_id, created_at, expires_at)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (user_a_id, user_b_id) WHERE is_active DO NOTHING
                RETURNING id""",
            user_a_id, user_b_id, created_at, expires_at,
            conn=conn
        )

    async def list_active_for_user(self, user_id: int) -> list[ConversationDB]:
        """Get active conversations of a user, newest first."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE (user_a_id = $1 OR user_b_id = $1) AND is_active = true
                ORDER BY created_at DESC""",
            user_id
        )

        return [ConversationDB(**row) for row in rows]

    async def list_for_user(self, user_id: int) -> list[ConversationDB]:
        """Get every conversation of a user, active or not."""

        rows = await self.fetch(
            f"SELECT * FROM {self._get_table_name()} WHERE user_a_id = $1 OR user_b_id = $1",
            user_id
        )

        return [ConversationDB(**row) for row in rows]

    async def list_all(self, limit: int = 100, offset: int = 0) -> list[ConversationDB]:
        """Get conversations for moderation, newest first."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                ORDER BY created_at DESC
                LIMIT $1 OFFSET $2""",
            limit, offset
        )

        return [ConversationDB(**row) for row in rows]

    async def get_expired(self, now: datetime) -> list[ConversationDB]:
        """Get conversations whose lifetime has passed."""

        rows = await self.fetch(
            f"SELECT * FROM {self._get_table_name()} WHERE expires_at <= $1 ORDER BY expires_at",
            now
        )

        return [ConversationDB(**row) for row in rows]

    async def set_logged_out(self, conversation_id: int, user_is_a: bool, logged_out: bool, conn=None) -> None:
        """Set logged-out flag of one side."""

        column = "user_a_logged_out" if user_is_a else "user_b_logged_out"
        await self.execute(
            f"UPDATE {self._get_table_name()} SET {column} = $1 WHERE id = $2",
            logged_out, conversation_id,
            conn=conn
        )

    async def clear_logged_out_for_user(self, user_id: int, conn=None) -> int:
        """Clear the user's own logged-out flag in all active conversations."""

        result = await self.execute(
            f"""UPDATE {self._get_table_name()}
                SET user_a_logged_out = CASE WHEN user_a_id = $1 THEN false ELSE user_a_logged_out END,
                    user_b_logged_out = CASE WHEN user_b_id = $1 THEN false ELSE user_b_logged_out END
                WHERE is_active = true
                  AND ((user_a_id = $1 AND user_a_logged_out) OR (user_b_id = $1 AND user_b_logged_out))""",
            user_id,
            conn=conn
        )

        return affected_rows(result)

    async def deactivate_for_user(self, user_id: int, conn=None) -> int:
        """Deactivate all conversations of a user."""

        result = await self.execute(
            f"""UPDATE {self._get_table_name()} SET is_active = false
                WHERE (user_a_id = $1 OR user_b_id = $1) AND is_active = true""",
            user_id,
            conn=conn
        )

        return affected_rows(result)

    async def delete(self, conversation_id: int, conn=None) -> bool:
        """Delete conversation row."""

        result = await self.execute(
            f"DELETE FROM {self._get_table_name()} WHERE id = $1",
            conversation_id,
            conn=conn
        )

        return affected_rows(result) > 0

    async def count(self, active_only: bool = False) -> int:
        where_clause = "WHERE is_active = true" if active_only else ""
        return await self.fetchval(f"SELECT COUNT(*) FROM {self._get_table_name()} {where_clause}")


class DirectMessagesRepository(BaseDBRepository):
    """Repository for direct messages."""

    repository_name = "direct-messages"
    table_name = "direct_messages"

    @staticmethod
    def _visibility_column(user_is_a: bool) -> str:
        return "visible_to_a" if user_is_a else "visible_to_b"

    async def get_by_id(self, message_id: int, conn=None) -> DirectMessageDB | None:
        """Get message by ID."""

        row = await self.fetchrow(
            f"SELECT * FROM {self._get_table_name()} WHERE id = $1",
            message_id,
            conn=conn
        )

        return DirectMessageDB(**row) if row else None

    async def get_by_ids(self, message_ids: list[int]) -> dict[int, DirectMessageDB]:
        """Get several messages at once, keyed by ID."""

        if not message_ids:
            return {}

        rows = await self.fetch(
            f"SELECT * FROM {self._get_table_name()} WHERE id = ANY($1::bigint[])",
            list(set(message_ids))
        )

        return {row["id"]: DirectMessageDB(**row) for row in rows}

    async def create(
        self,
        conversation_id: int,
        sender_id: int,
        content: str,
        type: MessageType,
        created_at: datetime,
        visible_to_a: bool,
        visible_to_b: bool,
        caption: str | None = None,
        reply_to_id: int | None = None,
        media_id: int | None = None,
        conn=None
    ) -> int:
        """Create message and return ID."""

        return await self.fetchval(
            f"""INSERT INTO {self._get_table_name()}
                (conversation_id, sender_id, content, type, caption, reply_to_id, media_id,
                 visible_to_a, visible_to_b, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                RETURNING id""",
            conversation_id, sender_id, content, type.value, caption, reply_to_id, media_id,
            visible_to_a, visible_to_b, created_at,
            conn=conn
        )

    async def get_visible(self, conversation_id: int, user_is_a: bool) -> list[DirectMessageDB]:
        """Get messages visible to one side, oldest first."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE conversation_id = $1 AND {self._visibility_column(user_is_a)} = true
                ORDER BY created_at ASC, id ASC""",
            conversation_id
        )

        return [DirectMessageDB(**row) for row in rows]

    async def get_all(self, conversation_id: int) -> list[DirectMessageDB]:
        """Get every stored message regardless of visibility, oldest first (moderation)."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE conversation_id = $1
                ORDER BY created_at ASC, id ASC""",
            conversation_id
        )

        return [DirectMessageDB(**row) for row in rows]

    async def get_last_visible(self, conversation_id: int, user_is_a: bool) -> DirectMessageDB | None:
        """Get newest message visible to one side."""

        row = await self.fetchrow(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE conversation_id = $1 AND {self._visibility_column(user_is_a)} = true
                ORDER BY created_at DESC, id DESC
                LIMIT 1""",
            conversation_id
        )

        return DirectMessageDB(**row) if row else None

    async def get_unread_for(self, conversation_id: int, reader_id: int, reader_is_a: bool) -> list[DirectMessageDB]:
        """Get unread messages addressed to reader and visible to them."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE conversation_id = $1 AND sender_id <> $2 AND is_read = false
                  AND {self._visibility_column(reader_is_a)} = true
                ORDER BY created_at ASC, id ASC""",
            conversation_id, reader_id
        )

        return [DirectMessageDB(**row) for row in rows]

    async def count_unread(self, conversation_id: int, reader_id: int, reader_is_a: bool) -> int:
        return await self.fetchval(
            f"""SELECT COUNT(*) FROM {self._get_table_name()}
                WHERE conversation_id = $1 AND sender_id <> $2 AND is_read = false
                  AND {self._visibility_column(reader_is_a)} = true""",
            conversation_id, reader_id
        )

    async def mark_read(self, message_ids: list[int], read_at: datetime) -> int:
        """Mark messages as read."""

        if not message_ids:
            return 0

        result = await self.execute(
            f"""UPDATE {self._get_table_name()} SET is_read = true, read_at = $1
                WHERE id = ANY($2::bigint[]) AND is_read = false""",
            read_at, message_ids
        )

        return affected_rows(result)

    async def hide_for(self, conversation_id: int, user_is_a: bool, conn=None) -> int:
        """Clear one side's visibility bit on every message of a conversation."""

        column = self._visibility_column(user_is_a)
        result = await self.execute(
            f"UPDATE {self._get_table_name()} SET {column} = false WHERE conversation_id = $1 AND {column} = true",
            conversation_id,
            conn=conn
        )

        return affected_rows(result)

    async def get_media_ids(self, conversation_id: int, conn=None) -> list[int]:
        """Get media attached to a conversation's messages."""

        rows = await self.fetch(
            f"""SELECT DISTINCT media_id FROM {self._get_table_name()}
                WHERE conversation_id = $1 AND media_id IS NOT NULL""",
            conversation_id,
            conn=conn
        )

        return [row["media_id"] for row in rows]

    async def delete(self, message_id: int, conn=None) -> bool:
        result = await self.execute(
            f"DELETE FROM {self._get_table_name()} WHERE id = $1",
            message_id,
            conn=conn
        )

        return affected_rows(result) > 0

    async def delete_by_conversation(self, conversation_id: int, conn=None) -> int:
        result = await self.execute(
            f"DELETE FROM {self._get_table_name()} WHERE conversation_id = $1",
            conversation_id,
            conn=conn
        )

        return affected_rows(result)

    async def count(self, conversation_id: int | None = None) -> int:
        if conversation_id is None:
            return await self.fetchval(f"SELECT COUNT(*) FROM {self._get_table_name()}")

        return await self.fetchval(
            f"SELECT COUNT(*) FROM {self._get_table_name()} WHERE conversation_id = $1",
            conversation_id
        )


class DirectReactionsRepository(BaseDBRepository):
    """Repository for reactions on direct messages."""

    repository_name = "direct-reactions"
    table_name = "direct_reactions"

    async def get_by_id(self, reaction_id: int) -> ReactionDB | None:
        row = await self.fetchrow(
            f"SELECT * FROM {self._get_table_name()} WHERE id = $1",
            reaction_id
        )

        return ReactionDB(**row) if row else None

    async def get_by_message_ids(self, message_ids: list[int]) -> dict[int, list[ReactionDB]]:
        """Get reactions grouped by message, oldest first."""

        if not message_ids:
            return {}

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE message_id = ANY($1::bigint[])
                ORDER BY created_at ASC, id ASC""",
            message_ids
        )

        reactions: dict[int, list[ReactionDB]] = {}
        for row in rows:
            reactions.setdefault(row["message_id"], []).append(ReactionDB(**row))

        return reactions

    async def exists(self, message_id: int, user_id: int, emoji: str) -> bool:
        return await self.fetchval(
            f"""SELECT EXISTS(SELECT 1 FROM {self._get_table_name()}
                WHERE message_id = $1 AND user_id = $2 AND emoji = $3)""",
            message_id, user_id, emoji
        )

    async def create(self, message_id: int, user_id: int, emoji: str, created_at: datetime) -> int | None:
        """Create reaction and return ID, None on duplicate."""

        return await self.fetchval(
            f"""INSERT INTO {self._get_table_name()} (message_id, user_id, emoji, created_at)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (message_id, user_id, emoji) DO NOTHING
                RETURNING id""",
            message_id, user_id, emoji, created_at
        )

    async def delete(self, reaction_id: int) -> bool:
        result = await self.execute(
            f"DELETE FROM {self._get_table_name()} WHERE id = $1",
            reaction_id
        )

        return affected_rows(result) > 0

    async def delete_by_message(self, message_id: int, conn=None) -> int:
        result = await self.execute(
            f"DELETE FROM {self._get_table_name()} WHERE message_id = $1",
            message_id,
            conn=conn
        )

        return affected_rows(result)

    async def delete_by_conversation(self, conversation_id: int, conn=None) -> int:
        """Delete reactions on every message of a conversation."""

        result = await self.execute(
            f"""DELETE FROM {self._get_table_name()}
                WHERE message_id IN (
                    SELECT id FROM {self._table("direct_messages")} WHERE conversation_id = $1
                )""",
            conversation_id,
            conn=conn
        )

        return affected_rows(result)
