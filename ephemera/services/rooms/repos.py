"""Room repositories: rooms, members, messages and reactions."""

from datetime import datetime

from ephemera.common.base_repos import BaseDBRepository, affected_rows
from ephemera.models.db_models import ReactionDB, RoomDB, RoomMemberDB, RoomMessageDB
from ephemera.models.enums import MessageType, RoomStatus


class RoomsRepository(BaseDBRepository):
    """Repository for room operations."""

    repository_name = "rooms"
    table_name = "rooms"

    async def get_by_id(self, room_id: int, conn=None, for_update: bool = False) -> RoomDB | None:
        """Get room by ID, optionally locking the row."""

        lock = " FOR UPDATE" if for_update else ""
        row = await self.fetchrow(
            f"SELECT * FROM {self._get_table_name()} WHERE id = $1{lock}",
            room_id,
            conn=conn
        )

        return RoomDB(**row) if row else None

    async def get_by_invite_code(self, invite_code: str) -> RoomDB | None:
        row = await self.fetchrow(
            f"SELECT * FROM {self._get_table_name()} WHERE invite_code = $1",
            invite_code
        )

        return RoomDB(**row) if row else None

    async def invite_code_exists(self, invite_code: str) -> bool:
        return await self.fetchval(
            f"SELECT EXISTS(SELECT 1 FROM {self._get_table_name()} WHERE invite_code = $1)",
            invite_code
        )

    async def create(
        self,
        name: str,
        description: str | None,
        creator_id: int,
        invite_code: str,
        is_permanent: bool,
        created_at: datetime,
        conn=None
    ) -> int:
        """Create active room and return ID."""

        return await self.fetchval(
            f"""INSERT INTO {self._get_table_name()}
                (name, description, creator_id, invite_code, status, is_permanent, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING id""",
            name, description, creator_id, invite_code, RoomStatus.ACTIVE.value, is_permanent, created_at,
            conn=conn
        )

    async def list_for_user(self, user_id: int) -> list[RoomDB]:
        """Get non-archived rooms a user created or joined, newest first."""

        rows = await self.fetch(
            f"""SELECT DISTINCT r.* FROM {self._get_table_name()} r
                LEFT JOIN {self._table("room_members")} m ON m.room_id = r.id AND m.user_id = $1
                WHERE (r.creator_id = $1 OR m.user_id IS NOT NULL) AND r.status <> $2
                ORDER BY r.created_at DESC""",
            user_id, RoomStatus.ARCHIVED.value
        )

        return [RoomDB(**row) for row in rows]

    async def list_created_by(self, user_id: int) -> list[RoomDB]:
        """Get every room created by a user."""

        rows = await self.fetch(
            f"SELECT * FROM {self._get_table_name()} WHERE creator_id = $1",
            user_id
        )

        return [RoomDB(**row) for row in rows]

    async def list_active_temporary_created_by(self, user_id: int) -> list[RoomDB]:
        """Get active non-permanent rooms created by a user."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE creator_id = $1 AND status = $2 AND is_permanent = false""",
            user_id, RoomStatus.ACTIVE.value
        )

        return [RoomDB(**row) for row in rows]

    async def list_active(self) -> list[RoomDB]:
        rows = await self.fetch(
            f"SELECT * FROM {self._get_table_name()} WHERE status = $1 ORDER BY id",
            RoomStatus.ACTIVE.value
        )

        return [RoomDB(**row) for row in rows]

    async def list_public(self, limit: int = 20) -> list[RoomDB]:
        """Get active permanent rooms, newest first."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE status = $1 AND is_permanent = true
                ORDER BY created_at DESC
                LIMIT $2""",
            RoomStatus.ACTIVE.value, limit
        )

        return [RoomDB(**row) for row in rows]

    async def list_all(self, limit: int = 100, offset: int = 0, status: RoomStatus | None = None) -> list[RoomDB]:
        """Get rooms for moderation, newest first."""

        if status is None:
            rows = await self.fetch(
                f"SELECT * FROM {self._get_table_name()} ORDER BY created_at DESC LIMIT $1 OFFSET $2",
                limit, offset
            )
        else:
            rows = await self.fetch(
                f"""SELECT * FROM {self._get_table_name()} WHERE status = $3
                    ORDER BY created_at DESC LIMIT $1 OFFSET $2""",
                limit, offset, status.value
            )

        return [RoomDB(**row) for row in rows]

    async def update_details(self, room_id: int, name: str, description: str | None) -> None:
        await self.execute(
            f"UPDATE {self._get_table_name()} SET name = $1, description = $2 WHERE id = $3",
            name, description, room_id
        )

    async def set_expires_at(self, room_id: int, expires_at: datetime | None, conn=None) -> None:
        """Set or clear the mark-for-deletion timestamp."""

        await self.execute(
            f"UPDATE {self._get_table_name()} SET expires_at = $1 WHERE id = $2",
            expires_at, room_id,
            conn=conn
        )

    async def clear_marks_for_creator(self, user_id: int, conn=None) -> int:
        """Cancel pending deletion of every room created by a user."""

        result = await self.execute(
            f"""UPDATE {self._get_table_name()} SET expires_at = NULL
                WHERE creator_id = $1 AND expires_at IS NOT NULL""",
            user_id,
            conn=conn
        )

        return affected_rows(result)

    async def get_marked_expired(self, now: datetime) -> list[RoomDB]:
        """Get rooms whose deletion mark has passed."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE expires_at IS NOT NULL AND expires_at <= $1
                ORDER BY expires_at""",
            now
        )

        return [RoomDB(**row) for row in rows]

    async def get_completed_before(self, cutoff: datetime) -> list[RoomDB]:
        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE status = $1 AND completed_at IS NOT NULL AND completed_at <= $2""",
            RoomStatus.COMPLETED.value, cutoff
        )

        return [RoomDB(**row) for row in rows]

    async def set_status(self, room_id: int, status: RoomStatus, at: datetime, conn=None) -> None:
        """Change status, stamping completed_at or archived_at."""

        column = {
            RoomStatus.COMPLETED: "completed_at",
            RoomStatus.ARCHIVED: "archived_at",
        }.get(status)

        if column is None:
            await self.execute(
                f"UPDATE {self._get_table_name()} SET status = $1 WHERE id = $2",
                status.value, room_id,
                conn=conn
            )
            return

        await self.execute(
            f"UPDATE {self._get_table_name()} SET status = $1, {column} = $2, expires_at = NULL WHERE id = $3",
            status.value, at, room_id,
            conn=conn
        )

    async def delete(self, room_id: int, conn=None) -> bool:
        result = await self.execute(
            f"DELETE FROM {self._get_table_name()} WHERE id = $1",
            room_id,
            conn=conn
        )

        return affected_rows(result) > 0

    async def count(self, status: RoomStatus | None = None) -> int:
        if status is None:
            return await self.fetchval(f"SELECT COUNT(*) FROM {self._get_table_name()}")

        return await self.fetchval(
            f"SELECT COUNT(*) FROM {self._get_table_name()} WHERE status = $1",
            status.value
        )


class RoomMembersRepository(BaseDBRepository):
    """Repository for room members."""

    repository_name = "room-members"
    table_name = "room_members"

    async def is_member(self, room_id: int, user_id: int, conn=None) -> bool:
        """Check if user is member of room."""

        return await self.fetchval(
            f"SELECT EXISTS(SELECT 1 FROM {self._get_table_name()} WHERE room_id = $1 AND user_id = $2)",
            room_id, user_id,
            conn=conn
        )

    async def add_member(self, room_id: int, user_id: int, joined_at: datetime, conn=None) -> bool:
        """Add member, False if already present."""

        member_id = await self.fetchval(
            f"""INSERT INTO {self._get_table_name()} (room_id, user_id, joined_at)
                VALUES ($1, $2, $3)
                ON CONFLICT (room_id, user_id) DO NOTHING
                RETURNING id""",
            room_id, user_id, joined_at,
            conn=conn
        )

        return member_id is not None

    async def remove_member(self, room_id: int, user_id: int, conn=None) -> bool:
        result = await self.execute(
            f"DELETE FROM {self._get_table_name()} WHERE room_id = $1 AND user_id = $2",
            room_id, user_id,
            conn=conn
        )

        return affected_rows(result) > 0

    async def remove_user_from_all(self, user_id: int, conn=None) -> list[int]:
        """Remove user from every room, return the room IDs left."""

        rows = await self.fetch(
            f"DELETE FROM {self._get_table_name()} WHERE user_id = $1 RETURNING room_id",
            user_id,
            conn=conn
        )

        return [row["room_id"] for row in rows]

    async def delete_by_room(self, room_id: int, conn=None) -> int:
        result = await self.execute(
            f"DELETE FROM {self._get_table_name()} WHERE room_id = $1",
            room_id,
            conn=conn
        )

        return affected_rows(result)

    async def get_member_user_ids(self, room_id: int) -> list[int]:
        """Get user IDs of all members of room."""

        rows = await self.fetch(
            f"SELECT user_id FROM {self._get_table_name()} WHERE room_id = $1",
            room_id
        )

        return [row["user_id"] for row in rows]

    async def get_members(self, room_id: int) -> list[RoomMemberDB]:
        rows = await self.fetch(
            f"SELECT * FROM {self._get_table_name()} WHERE room_id = $1 ORDER BY joined_at",
            room_id
        )

        return [RoomMemberDB(**row) for row in rows]

    async def count_members(self, room_id: int) -> int:
        return await self.fetchval(
            f"SELECT COUNT(*) FROM {self._get_table_name()} WHERE room_id = $1",
            room_id
        )


class RoomMessagesRepository(BaseDBRepository):
    """Repository for room messages. Secret messages are visible to sender and recipient only."""

    repository_name = "room-messages"
    table_name = "room_messages"

    VISIBLE_TO = "(type <> 'secret' OR sender_id = $2 OR recipient_id = $2)"

    async def get_by_id(self, message_id: int, conn=None) -> RoomMessageDB | None:
        row = await self.fetchrow(
            f"SELECT * FROM {self._get_table_name()} WHERE id = $1",
            message_id,
            conn=conn
        )

        return RoomMessageDB(**row) if row else None

    async def get_by_ids(self, message_ids: list[int]) -> dict[int, RoomMessageDB]:
        if not message_ids:
            return {}

        rows = await self.fetch(
            f"SELECT * FROM {self._get_table_name()} WHERE id = ANY($1::bigint[])",
            list(set(message_ids))
        )

        return {row["id"]: RoomMessageDB(**row) for row in rows}

    async def create(
        self,
        room_id: int,
        sender_id: int,
        content: str,
        type: MessageType,
        created_at: datetime,
        recipient_id: int | None = None,
        caption: str | None = None,
        reply_to_id: int | None = None,
        media_id: int | None = None,
        conn=None
    ) -> int:
        """Create message and return ID."""

        return await self.fetchval(
            f"""INSERT INTO {self._get_table_name()}
                (room_id, sender_id, recipient_id, content, type, caption, reply_to_id, media_id, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING id""",
            room_id, sender_id, recipient_id, content, type.value, caption, reply_to_id, media_id, created_at,
            conn=conn
        )

    async def get_page(self, room_id: int, user_id: int, limit: int = 50, offset: int = 0) -> list[RoomMessageDB]:
        """Get a page of messages visible to user, counted from the newest, oldest first."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE room_id = $1 AND {self.VISIBLE_TO}
                ORDER BY created_at DESC, id DESC
                LIMIT $3 OFFSET $4""",
            room_id, user_id, limit, offset
        )

        return [RoomMessageDB(**row) for row in reversed(rows)]

    async def get_latest(self, room_id: int, limit: int = 50) -> list[RoomMessageDB]:
        """Get the newest messages including secret ones, oldest first (moderation)."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE room_id = $1
                ORDER BY created_at DESC, id DESC
                LIMIT $2""",
            room_id, limit
        )

        return [RoomMessageDB(**row) for row in reversed(rows)]

    async def get_after(self, room_id: int, user_id: int, after: datetime) -> list[RoomMessageDB]:
        """Get messages visible to user created after a timestamp."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE room_id = $1 AND {self.VISIBLE_TO} AND created_at > $3
                ORDER BY created_at ASC, id ASC""",
            room_id, user_id, after
        )

        return [RoomMessageDB(**row) for row in rows]

    async def delete_older_than(self, room_id: int, cutoff: datetime, conn=None) -> list[int | None]:
        """Delete messages created before cutoff, return media_id of every deleted row."""

        rows = await self.fetch(
            f"DELETE FROM {self._get_table_name()} WHERE room_id = $1 AND created_at < $2 RETURNING media_id",
            room_id, cutoff,
            conn=conn
        )

        return [row["media_id"] for row in rows]

    async def delete_keep_newest(self, room_id: int, keep: int, conn=None) -> list[int | None]:
        """Delete all but the newest messages, return media_id of every deleted row."""

        rows = await self.fetch(
            f"""DELETE FROM {self._get_table_name()}
                WHERE room_id = $1 AND id NOT IN (
                    SELECT id FROM {self._get_table_name()}
                    WHERE room_id = $1
                    ORDER BY created_at DESC, id DESC
                    LIMIT $2
                )
                RETURNING media_id""",
            room_id, keep,
            conn=conn
        )

        return [row["media_id"] for row in rows]

    async def get_media_ids(self, room_id: int, conn=None) -> list[int]:
        rows = await self.fetch(
            f"""SELECT DISTINCT media_id FROM {self._get_table_name()}
                WHERE room_id = $1 AND media_id IS NOT NULL""",
            room_id,
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

    async def delete_by_room(self, room_id: int, conn=None) -> int:
        result = await self.execute(
            f"DELETE FROM {self._get_table_name()} WHERE room_id = $1",
            room_id,
            conn=conn
        )

        return affected_rows(result)

    async def count(self, room_id: int | None = None) -> int:
        if room_id is None:
            return await self.fetchval(f"SELECT COUNT(*) FROM {self._get_table_name()}")

        return await self.fetchval(
            f"SELECT COUNT(*) FROM {self._get_table_name()} WHERE room_id = $1",
            room_id
        )


class RoomReactionsRepository(BaseDBRepository):
    """Repository for reactions on room messages. Rows cascade with their message."""

    repository_name = "room-reactions"
    table_name = "room_reactions"

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
