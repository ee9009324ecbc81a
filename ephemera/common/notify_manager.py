"""NotifyManager for building events and fanning them out over the push channel."""

import logging

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.services.rooms.repos import RoomMembersRepository
from ephemera.models.api_models import DirectMessage, Reaction, RoomMessage, User
from ephemera.models.enums import EventType, MessageType, PresenceAction

from ephemera.config import settings


@dataclass
class Event:
    """Event to be sent to users."""

    type: EventType
    data: dict[str, Any]

    def to_frame(self) -> dict[str, Any]:
        return {"type": self.type.value, "data": self.data}


class NotifyManager:
    """Resolves recipients and delivers events. Delivery is best-effort:
    persisted state never depends on it, failures are logged only."""

    def __init__(self, app: "Application"):
        """Initialize NotifyManager."""

        self.app = app
        self.logger = logging.getLogger("notify-manager")
        self.logger.setLevel(settings.logging_level)

        self.members_repo = RoomMembersRepository(app)

    @property
    def channel(self):
        return self.app.push

    async def notify_user(self, user_id: int, event: Event) -> bool:
        """Send event to a single user."""

        return await self.channel.send(user_id, event.to_frame())

    async def notify_users(
        self,
        user_ids: Iterable[int],
        event: Event,
        exclude_user_id: int | None = None
    ) -> int:
        """Send event to several users, return the number of deliveries."""

        sent = 0
        for user_id in user_ids:
            if exclude_user_id is not None and user_id == exclude_user_id:
                continue
            if await self.notify_user(user_id, event):
                sent += 1

        return sent

    async def notify_room(self, room_id: int, event: Event, exclude_user_id: int | None = None) -> int:
        """Send event to all members of a room."""

        member_ids = await self.members_repo.get_member_user_ids(room_id)
        sent = await self.notify_users(member_ids, event, exclude_user_id=exclude_user_id)

        self.logger.debug(f"Broadcast '{event.type.value}' to {sent} members of room {room_id}")

        return sent

    async def _deliver(self, description: str, coro) -> int:
        """Run a fan-out coroutine, downgrading any failure to a log line."""

        try:
            result = await coro
            return int(result)

        except Exception as e:
            self.logger.error(f"Push of {description} failed: {type(e).__name__}: {e}")
            return 0

    # Direct conversations

    async def send_new_direct_message(self, recipient_id: int, message: DirectMessage) -> int:
        """Send new_message event to the other participant."""

        event = Event(
            type=EventType.NEW_MESSAGE,
            data={
                "conversation_id": message.conversation_id,
                "message": message.model_dump(mode="json"),
            }
        )
        return await self._deliver("new_message", self.notify_user(recipient_id, event))

    async def send_message_read(
        self,
        sender_id: int,
        conversation_id: int,
        message_id: int,
        reader_id: int
    ) -> int:
        """Send message_read event to the original sender."""

        event = Event(
            type=EventType.MESSAGE_READ,
            data={"conversation_id": conversation_id, "message_id": message_id, "reader_id": reader_id}
        )
        return await self._deliver("message_read", self.notify_user(sender_id, event))

    async def send_direct_reaction(self, user_ids: list[int], conversation_id: int, reaction: Reaction) -> int:
        """Send message_reacted event to conversation participants."""

        event = Event(
            type=EventType.MESSAGE_REACTED,
            data={
                "conversation_id": conversation_id,
                "message_id": reaction.message_id,
                "reaction": reaction.model_dump(mode="json"),
            }
        )
        return await self._deliver("message_reacted", self.notify_users(user_ids, event))

    async def send_direct_reaction_removed(
        self,
        user_ids: list[int],
        conversation_id: int,
        message_id: int,
        reaction_id: int
    ) -> int:
        """Send reaction_removed event to conversation participants."""

        event = Event(
            type=EventType.REACTION_REMOVED,
            data={"conversation_id": conversation_id, "message_id": message_id, "reaction_id": reaction_id}
        )
        return await self._deliver("reaction_removed", self.notify_users(user_ids, event))

    # Rooms

    async def send_new_room_message(self, message: RoomMessage) -> int:
        """Send new_message event to room members (only the recipient for secret messages)."""

        event = Event(
            type=EventType.NEW_MESSAGE,
            data={"room_id": message.room_id, "message": message.model_dump(mode="json")}
        )

        if message.type == MessageType.SECRET:
            return await self._deliver("secret new_message", self.notify_user(message.recipient_id, event))

        return await self._deliver(
            "room new_message",
            self.notify_room(message.room_id, event, exclude_user_id=message.sender_id)
        )

    async def send_room_presence(self, room_id: int, user: User, action: PresenceAction) -> int:
        """Send room_presence event to the other members."""

        event = Event(
            type=EventType.ROOM_PRESENCE,
            data={"room_id": room_id, "user": user.model_dump(mode="json"), "action": action.value}
        )
        return await self._deliver(
            "room_presence",
            self.notify_room(room_id, event, exclude_user_id=user.user_id)
        )

    async def send_room_reaction(self, room_id: int, reaction: Reaction, visible_to: list[int] | None = None) -> int:
        """Send message_reacted event to members able to see the message."""

        event = Event(
            type=EventType.MESSAGE_REACTED,
            data={
                "room_id": room_id,
                "message_id": reaction.message_id,
                "reaction": reaction.model_dump(mode="json"),
            }
        )

        if visible_to is not None:
            return await self._deliver("secret message_reacted", self.notify_users(visible_to, event))

        return await self._deliver("room message_reacted", self.notify_room(room_id, event))

    async def send_room_reaction_removed(
        self,
        room_id: int,
        message_id: int,
        reaction_id: int,
        visible_to: list[int] | None = None
    ) -> int:
        """Send reaction_removed event to members able to see the message."""

        event = Event(
            type=EventType.REACTION_REMOVED,
            data={"room_id": room_id, "message_id": message_id, "reaction_id": reaction_id}
        )

        if visible_to is not None:
            return await self._deliver("secret reaction_removed", self.notify_users(visible_to, event))

        return await self._deliver("room reaction_removed", self.notify_room(room_id, event))

    async def send_room_expiring(self, message: RoomMessage, expires_at: str) -> int:
        """Send room_expiring event (with the system warning) to the other members."""

        event = Event(
            type=EventType.ROOM_EXPIRING,
            data={
                "room_id": message.room_id,
                "expires_at": expires_at,
                "message": message.model_dump(mode="json"),
            }
        )
        return await self._deliver(
            "room_expiring",
            self.notify_room(message.room_id, event, exclude_user_id=message.sender_id)
        )
