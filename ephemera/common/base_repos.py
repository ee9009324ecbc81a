"""
Repository bases.

Database repositories run one statement per call. Passing ``conn=`` (a
connection from ``DatabaseAPI.transaction()``) makes the statement part of
that transaction; otherwise it goes straight through the pool.
"""

import logging

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.common.db import SCHEMA_NAME
from ephemera.config import settings


def affected_rows(status: str) -> int:
    """Row count of an asyncpg status string, "DELETE 3" -> 3."""

    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


class _Repository:
    repository_name = "base"

    def __init__(self, app: "Application"):
        self.logger = logging.getLogger(f"{self.repository_name}-repo")
        self.logger.setLevel(settings.logging_level)
        self.app = app


class BaseDBRepository(_Repository):
    """Raw-SQL repository bound to one table of the service schema."""

    table_name: Optional[str] = None
    schema_name = SCHEMA_NAME

    def __init__(self, app: "Application"):
        super().__init__(app)
        self.db = app.db

    def _table(self, name: str) -> str:
        return f"{self.schema_name}.{name}"

    def _get_table_name(self) -> str:
        if not self.table_name:
            raise ValueError(f"{type(self).__name__} has no table_name")

        return self._table(self.table_name)

    def _runner(self, conn):
        # asyncpg connections and DatabaseAPI share the query method names
        return conn if conn is not None else self.db

    async def execute(self, query: str, *args, conn=None) -> str:
        return await self._runner(conn).execute(query, *args)

    async def fetchrow(self, query: str, *args, conn=None) -> Optional[Any]:
        return await self._runner(conn).fetchrow(query, *args)

    async def fetch(self, query: str, *args, conn=None) -> list:
        return await self._runner(conn).fetch(query, *args)

    async def fetchval(self, query: str, *args, conn=None) -> Any:
        return await self._runner(conn).fetchval(query, *args)


class BaseS3Repository(_Repository):
    """Repository storing objects under a key prefix of the media bucket."""

    resources_dir = ""

    def __init__(self, app: "Application"):
        super().__init__(app)
        self.s3 = app.s3

    def _get_full_key(self, key: str) -> str:
        return self.resources_dir + key
