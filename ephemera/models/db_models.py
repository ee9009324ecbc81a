"""PostgreSQL Database models."""

from datetime import datetime

from pydantic import BaseModel as BaseDBModel

from ephemera.models.enums import (
    FriendshipStatus,
    MediaType,
    MessageType,
    Plan,
    Role,
    RoomStatus,
    UserKind,
)


class UserDB(BaseDBModel):
    """User database model."""

    id: int

    username: str
    email: str | None = None
    password_hash: str | None = None
    display_name: str

    kind: UserKind
    role: Role
    plan: Plan = Plan.FREE
    storage_used: int = 0

    is_online: bool = False

    created_at: datetime
    last_login_at: datetime | None = None
    last_seen_at: datetime | None = None

    @property
    def is_guest(self) -> bool:
        return self.kind == UserKind.GUEST


class UserSessionDB(BaseDBModel):
    """Login session database model."""

    id: int
    user_id: int

    login_at: datetime
    logout_at: datetime | None = None
    is_active: bool


class BanDB(BaseDBModel):
    """Ban database model."""

    id: int
    user_id: int
    issued_by: int

    reason: str | None = None
    issued_at: datetime
    expires_at: datetime | None = None

    is_permanent: bool
    is_active: bool
    previous_role: Role


class FriendshipDB(BaseDBModel):
    """Friendship database model."""

    id: int

    requester_id: int
    recipient_id: int
    status: FriendshipStatus

    created_at: datetime
    updated_at: datetime | None = None


class ConversationDB(BaseDBModel):
    """Two-party conversation database model, user_a_id < user_b_id."""

    id: int

    user_a_id: int
    user_b_id: int

    created_at: datetime
    expires_at: datetime

    user_a_logged_out: bool = False
    user_b_logged_out: bool = False
    is_active: bool = True

    def has_participant(self, user_id: int) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)

    def is_user_a(self, user_id: int) -> bool:
        return user_id == self.user_a_id

    def peer_of(self, user_id: int) -> int:
        return self.user_b_id if user_id == self.user_a_id else self.user_a_id

    def logged_out(self, user_id: int) -> bool:
        return self.user_a_logged_out if user_id == self.user_a_id else self.user_b_logged_out


class DirectMessageDB(BaseDBModel):
    """Direct message database model."""

    id: int
    conversation_id: int
    sender_id: int

    content: str
    type: MessageType
    caption: str | None = None
    reply_to_id: int | None = None
    media_id: int | None = None

    is_read: bool = False
    read_at: datetime | None = None

    visible_to_a: bool = True
    visible_to_b: bool = True

    created_at: datetime


class RoomDB(BaseDBModel):
    """Room (project) database model."""

    id: int

    name: str
    description: str | None = None
    creator_id: int
    invite_code: str

    status: RoomStatus
    is_permanent: bool = False

    expires_at: datetime | None = None
    created_at: datetime
    completed_at: datetime | None = None
    archived_at: datetime | None = None


class RoomMemberDB(BaseDBModel):
    """Room member database model."""

    id: int

    room_id: int
    user_id: int

    joined_at: datetime


class RoomMessageDB(BaseDBModel):
    """Room message database model, recipient_id marks a secret message."""

    id: int
    room_id: int
    sender_id: int
    recipient_id: int | None = None

    content: str
    type: MessageType
    caption: str | None = None
    reply_to_id: int | None = None
    media_id: int | None = None

    created_at: datetime

    def visible_to(self, user_id: int) -> bool:
        if self.type == MessageType.SECRET:
            return user_id in (self.sender_id, self.recipient_id)
        return True


class ReactionDB(BaseDBModel):
    """Reaction database model (direct and room reactions share the shape)."""

    id: int
    message_id: int
    user_id: int

    emoji: str

    created_at: datetime


class MediaDB(BaseDBModel):
    """Uploaded media database model."""

    id: int
    user_id: int

    storage_key: str
    type: MediaType
    filename: str
    content_type: str
    size: int

    created_at: datetime
