"""
Push channel: maps a user id to at most one live connection.

``PushChannel`` is the interface the rest of the server depends on;
``LocalPushChannel`` keeps the map in process memory. A deployment running
several instances swaps in an implementation backed by a shared pub/sub layer.
"""

import logging

from abc import ABC, abstractmethod
from typing import Any, Protocol

from ephemera.config import settings


class PushConnection(Protocol):
    """Anything able to deliver a JSON frame (a FastAPI WebSocket qualifies)."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class PushChannel(ABC):
    """Best-effort delivery of events to connected users."""

    @abstractmethod
    async def connect(self, user_id: int, connection: PushConnection) -> None:
        """Register the connection, displacing any previous one for the user."""

    @abstractmethod
    async def disconnect(self, user_id: int, connection: PushConnection | None = None) -> bool:
        """Remove the user's connection (only if it is still ``connection`` when given)."""

    @abstractmethod
    async def send(self, user_id: int, frame: dict[str, Any]) -> bool:
        """Deliver a frame; False when the user is not connected or delivery failed."""

    @abstractmethod
    def is_connected(self, user_id: int) -> bool:
        """Whether the user currently has a live connection."""

    @abstractmethod
    def connected_user_ids(self) -> list[int]:
        """Ids of every connected user."""


class LocalPushChannel(PushChannel):
    """In-memory, single-process push channel."""

    def __init__(self):
        self.logger = logging.getLogger("push-channel")
        self.logger.setLevel(settings.logging_level)

        # user_id -> connection
        self._connections: dict[int, PushConnection] = {}

    async def connect(self, user_id: int, connection: PushConnection) -> None:
        previous = self._connections.get(user_id)
        self._connections[user_id] = connection

        if previous is not None and previous is not connection:
            self.logger.info(f"User {user_id} reconnected, closing displaced connection")
            await self._close_quietly(previous)

        self.logger.info(f"User {user_id} connected. Total connections: {len(self._connections)}")

    async def disconnect(self, user_id: int, connection: PushConnection | None = None) -> bool:
        current = self._connections.get(user_id)

        if current is None:
            return False

        # A newer connection already displaced this one
        if connection is not None and current is not connection:
            return False

        del self._connections[user_id]

        if connection is None:
            await self._close_quietly(current)

        self.logger.info(f"User {user_id} disconnected. Total connections: {len(self._connections)}")

        return True

    async def send(self, user_id: int, frame: dict[str, Any]) -> bool:
        connection = self._connections.get(user_id)
        if connection is None:
            return False

        try:
            await connection.send_json(frame)
            return True

        except Exception as e:
            self.logger.warning(
                f"Push to user {user_id} failed, dropping connection: {type(e).__name__}: {e}"
            )
            if self._connections.get(user_id) is connection:
                del self._connections[user_id]
            return False

    def is_connected(self, user_id: int) -> bool:
        return user_id in self._connections

    def connected_user_ids(self) -> list[int]:
        return list(self._connections.keys())

    async def _close_quietly(self, connection: PushConnection) -> None:
        try:
            await connection.close(code=1000)
        except Exception as e:
            self.logger.debug(f"Closing connection failed: {type(e).__name__}: {e}")
