"""API models for client responses."""

from dataclasses import dataclass, field
from typing import Generic, TypeVar

from pydantic import BaseModel

from ephemera.models.enums import (
    FriendshipStatus,
    MediaType,
    MessageType,
    Plan,
    Role,
    RoomStatus,
    UserKind,
)


T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """Universal response wrapper."""

    success: bool

    errors: list[tuple[str, str]] = field(default_factory=list)  # [("NOT_FOUND", "Room not found")]
    data: T | None = None

    @classmethod
    def ok(cls, data: T | None = None) -> "Result[T]":
        return cls(success=True, errors=[], data=data)


class User(BaseModel):
    """Public user information."""

    user_id: int

    username: str
    display_name: str

    kind: UserKind
    role: Role
    plan: Plan

    is_online: bool

    created_at: str


class LoginResult(BaseModel):
    """Issued credential with its owner."""

    user: User
    token: str
    session_id: int


class ReplyPreview(BaseModel):
    """Short preview of a replied-to message."""

    message_id: int
    sender_id: int
    sender_username: str | None

    content: str
    type: MessageType
    caption: str | None

    created_at: str


class Reaction(BaseModel):
    """Emoji reaction on a message."""

    reaction_id: int
    message_id: int

    user_id: int
    username: str | None

    emoji: str

    created_at: str


class DirectMessage(BaseModel):
    """Direct message as seen by one participant."""

    message_id: int
    conversation_id: int

    sender_id: int
    sender_username: str | None

    content: str
    type: MessageType
    caption: str | None = None
    media_id: int | None = None

    is_read: bool
    visible: bool = True

    reply_to: ReplyPreview | None = None
    reactions: list[Reaction] = []

    created_at: str


class Conversation(BaseModel):
    """Conversation from the perspective of one participant."""

    conversation_id: int

    peer: User

    last_message: str | None = None
    last_message_at: str | None = None
    unread_count: int = 0

    created_at: str
    expires_at: str


class RoomMessage(BaseModel):
    """Room message."""

    message_id: int
    room_id: int

    sender_id: int
    sender_username: str | None
    recipient_id: int | None = None
    recipient_username: str | None = None

    content: str
    type: MessageType
    caption: str | None = None
    media_id: int | None = None

    reply_to: ReplyPreview | None = None
    reactions: list[Reaction] = []

    created_at: str


class Room(BaseModel):
    """Room (project) information."""

    room_id: int

    name: str
    description: str | None

    creator_id: int
    invite_code: str
    invite_url: str

    status: RoomStatus
    is_permanent: bool

    member_count: int

    expires_at: str | None = None
    created_at: str


class RoomInvitePreview(BaseModel):
    """Public preview of a room behind an invite link."""

    room_id: int
    name: str
    description: str | None
    creator_username: str | None
    invite_code: str


class RoomMember(BaseModel):
    """Room membership."""

    user: User
    joined_at: str


class Friendship(BaseModel):
    """Friendship row."""

    friendship_id: int

    requester_id: int
    recipient_id: int
    status: FriendshipStatus

    created_at: str


class FriendshipState(BaseModel):
    """Relationship between the caller and another user."""

    status: str
    friendship_id: int | None = None
    is_requester: bool | None = None


class Ban(BaseModel):
    """Ban record."""

    ban_id: int

    user_id: int
    issued_by: int
    reason: str | None

    is_permanent: bool
    is_active: bool

    issued_at: str
    expires_at: str | None


class Media(BaseModel):
    """Uploaded media reference."""

    media_id: int

    type: MediaType
    filename: str
    content_type: str
    size: int

    url: str | None

    created_at: str


class StorageInfo(BaseModel):
    """Media storage usage of a user."""

    plan: Plan
    used: int
    limit: int
    per_file_limit: int


class ConversationSummary(BaseModel):
    """Conversation as listed for moderators."""

    conversation_id: int

    user_a: User | None
    user_b: User | None

    message_count: int
    is_active: bool

    created_at: str
    expires_at: str


class Stats(BaseModel):
    """Platform counters."""

    total_users: int
    guest_users: int
    registered_users: int
    online_users: int
    banned_users: int
    new_users_24h: int

    active_conversations: int
    direct_messages: int

    active_rooms: int
    room_messages: int


class UserDetails(BaseModel):
    """User with moderation history."""

    user: User

    email: str | None
    storage_used: int
    last_login_at: str | None
    last_seen_at: str | None

    active_ban: Ban | None
    bans: list[Ban]


class RoomDetails(BaseModel):
    """Room with members and latest messages, for moderators."""

    room: Room
    creator_username: str | None

    members: list[RoomMember]
    recent_messages: list[RoomMessage]


class JoinResult(BaseModel):
    """Joined room, with the guest credential issued when none was given."""

    room: Room
    login: LoginResult | None = None
