"""User repositories for accounts, login sessions and bans."""

from datetime import datetime

from ephemera.common.base_repos import BaseDBRepository, affected_rows
from ephemera.models.db_models import BanDB, UserDB, UserSessionDB
from ephemera.models.api_models import Ban, User
from ephemera.models.enums import Plan, Role, UserKind


class UsersRepository(BaseDBRepository):
    """Repository for user operations."""

    repository_name = "users"
    table_name = "users"

    async def get_by_id(self, user_id: int, conn=None) -> UserDB | None:
        """Get user by ID."""

        row = await self.fetchrow(
            f"SELECT * FROM {self._get_table_name()} WHERE id = $1",
            user_id,
            conn=conn
        )

        return UserDB(**row) if row else None

    async def get_by_ids(self, user_ids: list[int]) -> dict[int, UserDB]:
        """Get several users at once, keyed by ID."""

        if not user_ids:
            return {}

        rows = await self.fetch(
            f"SELECT * FROM {self._get_table_name()} WHERE id = ANY($1::bigint[])",
            list(set(user_ids))
        )

        return {row["id"]: UserDB(**row) for row in rows}

    async def get_by_login(self, username_or_email: str) -> UserDB | None:
        """Get user by username or email."""

        row = await self.fetchrow(
            f"SELECT * FROM {self._get_table_name()} WHERE username = $1 OR email = $1",
            username_or_email
        )

        return UserDB(**row) if row else None

    async def username_exists(self, username: str) -> bool:
        """Check if username already exists."""

        return await self.fetchval(
            f"SELECT EXISTS(SELECT 1 FROM {self._get_table_name()} WHERE username = $1)",
            username
        )

    async def email_exists(self, email: str) -> bool:
        """Check if email already exists."""

        return await self.fetchval(
            f"SELECT EXISTS(SELECT 1 FROM {self._get_table_name()} WHERE email = $1)",
            email
        )

    async def create(
        self,
        username: str,
        display_name: str,
        kind: UserKind,
        role: Role,
        created_at: datetime,
        password_hash: str | None = None,
        email: str | None = None,
        conn=None
    ) -> int:
        """Create new user (online, just logged in) and return ID."""

        user_id = await self.fetchval(
            f"""INSERT INTO {self._get_table_name()}
                (username, email, password_hash, display_name, kind, role,
                 is_online, created_at, last_login_at, last_seen_at)
                VALUES ($1, $2, $3, $4, $5, $6, true, $7, $7, $7)
                RETURNING id""",
            username, email, password_hash, display_name, kind.value, role.value, created_at,
            conn=conn
        )

        return user_id

    async def update_profile(
        self,
        user_id: int,
        display_name: str | None = None,
        email: str | None = None,
        conn=None
    ) -> bool:
        """Update profile fields."""

        updates = []
        params = []
        param_idx = 1

        if display_name is not None:
            updates.append(f"display_name = ${param_idx}")
            params.append(display_name)
            param_idx += 1

        if email is not None:
            updates.append(f"email = ${param_idx}")
            params.append(email)
            param_idx += 1

        if not updates:
            return False

        params.append(user_id)
        await self.execute(
            f"UPDATE {self._get_table_name()} SET {', '.join(updates)} WHERE id = ${param_idx}",
            *params,
            conn=conn
        )

        return True

    async def mark_login(self, user_id: int, at: datetime, conn=None) -> None:
        """Mark user online after a login."""

        await self.execute(
            f"""UPDATE {self._get_table_name()}
                SET is_online = true, last_login_at = $1, last_seen_at = $1
                WHERE id = $2""",
            at, user_id,
            conn=conn
        )

    async def set_online(self, user_id: int, is_online: bool, at: datetime, conn=None) -> None:
        """Toggle online flag and touch last_seen_at."""

        await self.execute(
            f"UPDATE {self._get_table_name()} SET is_online = $1, last_seen_at = $2 WHERE id = $3",
            is_online, at, user_id,
            conn=conn
        )

    async def set_role(self, user_id: int, role: Role, conn=None) -> None:
        """Change user role."""

        await self.execute(
            f"UPDATE {self._get_table_name()} SET role = $1 WHERE id = $2",
            role.value, user_id,
            conn=conn
        )

    async def set_plan(self, user_id: int, plan: Plan, conn=None) -> None:
        """Change storage plan."""

        await self.execute(
            f"UPDATE {self._get_table_name()} SET plan = $1 WHERE id = $2",
            plan.value, user_id,
            conn=conn
        )

    async def add_storage(self, user_id: int, delta: int, conn=None) -> None:
        """Adjust used storage, never below zero."""

        await self.execute(
            f"UPDATE {self._get_table_name()} SET storage_used = GREATEST(storage_used + $1, 0) WHERE id = $2",
            delta, user_id,
            conn=conn
        )

    async def delete(self, user_id: int, conn=None) -> bool:
        """Delete user (CASCADE removes sessions, bans, memberships and messages)."""

        result = await self.execute(
            f"DELETE FROM {self._get_table_name()} WHERE id = $1",
            user_id,
            conn=conn
        )

        return affected_rows(result) > 0

    async def list_online(self) -> list[UserDB]:
        """Get all online users."""

        rows = await self.fetch(
            f"SELECT * FROM {self._get_table_name()} WHERE is_online = true ORDER BY username"
        )

        return [UserDB(**row) for row in rows]

    async def search(
        self,
        role: Role | None = None,
        is_online: bool | None = None,
        query: str | None = None,
        limit: int = 100
    ) -> list[UserDB]:
        """Filter users for moderation screens."""

        conditions = []
        params = []

        if role is not None:
            params.append(role.value)
            conditions.append(f"role = ${len(params)}")

        if is_online is not None:
            params.append(is_online)
            conditions.append(f"is_online = ${len(params)}")

        if query:
            params.append(f"%{query}%")
            conditions.append(
                f"(username ILIKE ${len(params)} OR email ILIKE ${len(params)} OR display_name ILIKE ${len(params)})"
            )

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)

        rows = await self.fetch(
            f"""SELECT * FROM {self._get_table_name()} {where_clause}
                ORDER BY created_at DESC
                LIMIT ${len(params)}""",
            *params
        )

        return [UserDB(**row) for row in rows]

    async def count(
        self,
        kind: UserKind | None = None,
        role: Role | None = None,
        is_online: bool | None = None,
        created_since: datetime | None = None
    ) -> int:
        """Count users matching every given filter."""

        conditions = []
        params = []

        if kind is not None:
            params.append(kind.value)
            conditions.append(f"kind = ${len(params)}")

        if role is not None:
            params.append(role.value)
            conditions.append(f"role = ${len(params)}")

        if is_online is not None:
            params.append(is_online)
            conditions.append(f"is_online = ${len(params)}")

        if created_since is not None:
            params.append(created_since)
            conditions.append(f"created_at >= ${len(params)}")

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        return await self.fetchval(
            f"SELECT COUNT(*) FROM {self._get_table_name()} {where_clause}",
            *params
        )

    @staticmethod
    def to_api_model(user_db: UserDB) -> User:
        """Convert DB model to API model."""

        return User(
            user_id=user_db.id,
            username=user_db.username,
            display_name=user_db.display_name,
            kind=user_db.kind,
            role=user_db.role,
            plan=user_db.plan,
            is_online=user_db.is_online,
            created_at=user_db.created_at.isoformat()
        )


class UserSessionsRepository(BaseDBRepository):
    """Repository for login sessions."""

    repository_name = "user-sessions"
    table_name = "user_sessions"

    async def get_by_id(self, session_id: int) -> UserSessionDB | None:
        """Get session by ID."""

        row = await self.fetchrow(
            f"SELECT * FROM {self._get_table_name()} WHERE id = $1",
            session_id
        )

        return UserSessionDB(**row) if row else None

    async def create(self, user_id: int, login_at: datetime, conn=None) -> int:
        """Open a session and return ID."""

        return await self.fetchval(
            f"""INSERT INTO {self._get_table_name()} (user_id, login_at, is_active)
                VALUES ($1, $2, true)
                RETURNING id""",
            user_id, login_at,
            conn=conn
        )

    async def close(self, session_id: int, at: datetime, conn=None) -> bool:
        """Close one session."""

        result = await self.execute(
            f"""UPDATE {self._get_table_name()} SET logout_at = $1, is_active = false
                WHERE id = $2 AND is_active = true""",
            at, session_id,
            conn=conn
        )

        return affected_rows(result) > 0

    async def close_all_for_user(self, user_id: int, at: datetime, conn=None) -> int:
        """Close every active session of a user."""

        result = await self.execute(
            f"""UPDATE {self._get_table_name()} SET logout_at = $1, is_active = false
                WHERE user_id = $2 AND is_active = true""",
            at, user_id,
            conn=conn
        )

        return affected_rows(result)

    async def count_active(self, user_id: int, conn=None) -> int:
        return await self.fetchval(
            f"SELECT COUNT(*) FROM {self._get_table_name()} WHERE user_id = $1 AND is_active = true",
            user_id,
            conn=conn
        )


class BansRepository(BaseDBRepository):
    """Repository for bans."""

    repository_name = "bans"
    table_name = "bans"

    async def get_active(self, user_id: int, conn=None) -> BanDB | None:
        """Get the active ban of a user."""

        row = await self.fetchrow(
            f"""SELECT * FROM {self._get_table_name()}
                WHERE user_id = $1 AND is_active = true
                ORDER BY issued_at DESC
                LIMIT 1""",
            user_id,
            conn=conn
        )

        return BanDB(**row) if row else None

    async def get_by_user(self, user_id: int) -> list[BanDB]:
        """Get ban history of a user."""

        rows = await self.fetch(
            f"SELECT * FROM {self._get_table_name()} WHERE user_id = $1 ORDER BY issued_at DESC",
            user_id
        )

        return [BanDB(**row) for row in rows]

    async def create(
        self,
        user_id: int,
        issued_by: int,
        reason: str | None,
        issued_at: datetime,
        expires_at: datetime | None,
        is_permanent: bool,
        previous_role: Role,
        conn=None
    ) -> int:
        """Create an active ban and return ID."""

        return await self.fetchval(
            f"""INSERT INTO {self._get_table_name()}
                (user_id, issued_by, reason, issued_at, expires_at, is_permanent, is_active, previous_role)
                VALUES ($1, $2, $3, $4, $5, $6, true, $7)
                RETURNING id""",
            user_id, issued_by, reason, issued_at, expires_at, is_permanent, previous_role.value,
            conn=conn
        )

    async def deactivate(self, ban_id: int, conn=None) -> bool:
        """Deactivate one ban."""

        result = await self.execute(
            f"UPDATE {self._get_table_name()} SET is_active = false WHERE id = $1 AND is_active = true",
            ban_id,
            conn=conn
        )

        return affected_rows(result) > 0

    async def deactivate_for_user(self, user_id: int, conn=None) -> int:
        """Deactivate every active ban of a user."""

        result = await self.execute(
            f"UPDATE {self._get_table_name()} SET is_active = false WHERE user_id = $1 AND is_active = true",
            user_id,
            conn=conn
        )

        return affected_rows(result)

    @staticmethod
    def to_api_model(ban_db: BanDB) -> Ban:
        """Convert DB model to API model."""

        return Ban(
            ban_id=ban_db.id,
            user_id=ban_db.user_id,
            issued_by=ban_db.issued_by,
            reason=ban_db.reason,
            is_permanent=ban_db.is_permanent,
            is_active=ban_db.is_active,
            issued_at=ban_db.issued_at.isoformat(),
            expires_at=ban_db.expires_at.isoformat() if ban_db.expires_at else None
        )
