"""
PostgreSQL access for Ephemera.

One ``asyncpg`` pool per process. Repositories either run single statements
through the pool or join a transaction opened with ``DatabaseAPI.transaction()``
by passing its connection as ``conn=``.
"""
import logging
import asyncpg

from typing import Any, AsyncIterator, Optional
from contextlib import asynccontextmanager

from ephemera.config import settings
from ephemera.version import DB_SCHEMA_VERSION


SCHEMA_NAME = "eph_schema"


class DatabaseAPI:
    """Pooled PostgreSQL client."""

    def __init__(self):
        self.logger = logging.getLogger("db-api")
        self.logger.setLevel(settings.logging_level)

        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        # Timestamps come from the injected clock as aware UTC datetimes
        self.pool = await asyncpg.create_pool(
            host=settings.psql_server_host,
            port=settings.psql_server_port,
            user=settings.psql_user,
            password=settings.psql_password,
            database=settings.psql_db,
            min_size=settings.psql_pool_min_size,
            max_size=settings.psql_pool_max_size,
            server_settings={"application_name": "ephemera-server", "timezone": "UTC"}
        )

    async def safely_connect(self) -> None:
        """
        Open the pool and verify the schema.

        Raises:
            RuntimeError: Database unreachable, wrong credentials or outdated schema
        """

        try:
            await self.connect()

            if not await self.ping():
                raise RuntimeError("PostgreSQL ping failed")

            self.logger.info(
                f"PostgreSQL connected ({settings.psql_server_host}:{settings.psql_server_port}/{settings.psql_db})"
            )

            await self._check_schema_version()

        except asyncpg.InvalidPasswordError:
            self.logger.critical(f"PostgreSQL rejected credentials of '{settings.psql_user}'")
            raise RuntimeError("PostgreSQL authentication failed")

        except asyncpg.InvalidCatalogNameError:
            self.logger.critical(f"Database '{settings.psql_db}' does not exist")
            raise RuntimeError(f"Database '{settings.psql_db}' does not exist")

        except Exception as e:
            self.logger.critical(f"PostgreSQL startup failed: {e}")
            raise

    async def _check_schema_version(self) -> None:
        try:
            db_version = await self.fetchval(f"SELECT version FROM {SCHEMA_NAME}.schema_info LIMIT 1")

        except asyncpg.UndefinedTableError:
            raise RuntimeError(f"Schema '{SCHEMA_NAME}' is missing, apply migrations/001_initial.sql first")

        if db_version != DB_SCHEMA_VERSION:
            raise RuntimeError(
                f"Schema '{SCHEMA_NAME}' is at version {db_version}, server expects {DB_SCHEMA_VERSION}"
            )

        self.logger.info(f"Schema '{SCHEMA_NAME}' version {db_version}")

    async def disconnect(self) -> None:
        if self.pool:
            await self.pool.close()
            self.pool = None

    async def ping(self) -> bool:
        try:
            return await self.fetchval("SELECT 1") == 1
        except (OSError, asyncpg.PostgresError):
            return False

    async def execute(self, query: str, *args) -> str:
        """Run a statement, return its status string ("DELETE 3")."""

        return await self.pool.execute(query, *args)

    async def fetchrow(self, query: str, *args) -> Optional[asyncpg.Record]:
        return await self.pool.fetchrow(query, *args)

    async def fetch(self, query: str, *args) -> list[asyncpg.Record]:
        return await self.pool.fetch(query, *args)

    async def fetchval(self, query: str, *args) -> Any:
        return await self.pool.fetchval(query, *args)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """
        Yield a connection inside a transaction, committed on exit.

        Usage:
            async with app.db.transaction() as conn:
                await messages_repo.create(..., conn=conn)
                await rooms_repo.set_expires_at(..., conn=conn)
        """

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn
