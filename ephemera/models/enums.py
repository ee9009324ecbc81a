"""Closed enumerations shared by the services."""

from enum import Enum


class UserKind(str, Enum):
    GUEST = "guest"
    REGISTERED = "registered"


class Role(str, Enum):
    GUEST = "guest"
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"
    BANNED = "banned"

    @property
    def is_staff(self) -> bool:
        return self in (Role.MODERATOR, Role.ADMIN)


class Plan(str, Enum):
    FREE = "free"
    PRO = "pro"


class FriendshipStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    BLOCKED = "blocked"


class RoomStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class MediaType(str, Enum):
    IMAGE = "image"
    GIF = "gif"
    AUDIO = "audio"
    VIDEO = "video"
    PDF = "pdf"
    DOCUMENT = "document"
    SPREADSHEET = "spreadsheet"
    PRESENTATION = "presentation"
    ARCHIVE = "archive"
    CODE = "code"


class MessageType(str, Enum):
    TEXT = "text"
    EMOJI = "emoji"
    IMAGE = "image"
    GIF = "gif"
    AUDIO = "audio"
    VIDEO = "video"
    PDF = "pdf"
    DOCUMENT = "document"
    SPREADSHEET = "spreadsheet"
    PRESENTATION = "presentation"
    ARCHIVE = "archive"
    CODE = "code"
    SYSTEM = "system"
    SECRET = "secret"

    @property
    def is_media(self) -> bool:
        return self.value in MediaType._value2member_map_

    @property
    def is_user_sendable(self) -> bool:
        """System and secret types are assigned by the server only."""

        return self not in (MessageType.SYSTEM, MessageType.SECRET)


class PresenceAction(str, Enum):
    JOINED = "joined"
    LEFT = "left"


class EventType(str, Enum):
    NEW_MESSAGE = "new_message"
    MESSAGE_READ = "message_read"
    ROOM_PRESENCE = "room_presence"
    MESSAGE_REACTED = "message_reacted"
    REACTION_REMOVED = "reaction_removed"
    ROOM_EXPIRING = "room_expiring"
