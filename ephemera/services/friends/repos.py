"""Friendship repository, one row per unordered pair of users."""

from datetime import datetime

from ephemera.common.base_repos import BaseDBRepository, affected_rows
from ephemera.models.db_models import FriendshipDB
from ephemera.models.api_models import Friendship
from ephemera.models.enums import FriendshipStatus


class FriendshipsRepository(BaseDBRepository):
    """Repository for friendship operations."""

    repository_name = "friendships"
    table_name = "friendships"

    async def get_by_id(self, friendship_id: int, conn=None) -> FriendshipDB | None:
        """Get friendship by ID."""

        row = await self.fetchrow(
            f"SELECT * FROM {self._get_table_name()} WHERE id = $1",
            friendship_id,
            conn=conn
        )

        return FriendshipDB(**row) if row else None

    async def get_between(self, user_id: int, other_id: int, conn=None) -> FriendshipDB | None:
        """Get the row of a pair regardless of direction."""

        row = await self.fetchrow(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE LEAST(requester_id, recipient_id) = LEAST($1::bigint, $2::bigint)
                  AND GREATEST(requester_id, recipient_id) = GREATEST($1::bigint, $2::bigint)""",
            user_id, other_id,
            conn=conn
        )

        return FriendshipDB(**row) if row else None

    async def create(
        self,
        requester_id: int,
        recipient_id: int,
        status: FriendshipStatus,
        created_at: datetime,
        conn=None
    ) -> int:
        """Create friendship row and return ID."""

        return await self.fetchval(
            f"""INSERT INTO {self._get_table_name()} (requester_id, recipient_id, status, created_at)
                VALUES ($1, $2, $3, $4)
                RETURNING id""",
            requester_id, recipient_id, status.value, created_at,
            conn=conn
        )

    async def set_status(self, friendship_id: int, status: FriendshipStatus, updated_at: datetime, conn=None) -> None:
        """Change status of a friendship."""

        await self.execute(
            f"UPDATE {self._get_table_name()} SET status = $1, updated_at = $2 WHERE id = $3",
            status.value, updated_at, friendship_id,
            conn=conn
        )

    async def set_blocked(
        self,
        friendship_id: int,
        blocker_id: int,
        blocked_id: int,
        updated_at: datetime,
        conn=None
    ) -> None:
        """Overwrite row as a block owned by blocker."""

        await self.execute(
            f"""UPDATE {self._get_table_name()}
                SET requester_id = $1, recipient_id = $2, status = $3, updated_at = $4
                WHERE id = $5""",
            blocker_id, blocked_id, FriendshipStatus.BLOCKED.value, updated_at, friendship_id,
            conn=conn
        )

    async def delete(self, friendship_id: int, conn=None) -> bool:
        """Delete friendship row."""

        result = await self.execute(
            f"DELETE FROM {self._get_table_name()} WHERE id = $1",
            friendship_id,
            conn=conn
        )

        return affected_rows(result) > 0

    async def list_accepted(self, user_id: int) -> list[FriendshipDB]:
        """Get accepted friendships of a user in both directions."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE (requester_id = $1 OR recipient_id = $1) AND status = $2
                ORDER BY COALESCE(updated_at, created_at) DESC""",
            user_id, FriendshipStatus.ACCEPTED.value
        )

        return [FriendshipDB(**row) for row in rows]

    async def list_incoming(self, user_id: int) -> list[FriendshipDB]:
        """Get pending requests addressed to a user."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE recipient_id = $1 AND status = $2
                ORDER BY created_at DESC""",
            user_id, FriendshipStatus.PENDING.value
        )

        return [FriendshipDB(**row) for row in rows]

    async def list_outgoing(self, user_id: int) -> list[FriendshipDB]:
        """Get pending requests sent by a user."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE requester_id = $1 AND status = $2
                ORDER BY created_at DESC""",
            user_id, FriendshipStatus.PENDING.value
        )

        return [FriendshipDB(**row) for row in rows]

    async def list_blocked_by(self, user_id: int) -> list[FriendshipDB]:
        """Get blocks issued by a user."""

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE requester_id = $1 AND status = $2
                ORDER BY COALESCE(updated_at, created_at) DESC""",
            user_id, FriendshipStatus.BLOCKED.value
        )

        return [FriendshipDB(**row) for row in rows]

    @staticmethod
    def to_api_model(friendship_db: FriendshipDB) -> Friendship:
        """Convert DB model to API model."""

        return Friendship(
            friendship_id=friendship_db.id,
            requester_id=friendship_db.requester_id,
            recipient_id=friendship_db.recipient_id,
            status=friendship_db.status,
            created_at=friendship_db.created_at.isoformat()
        )
