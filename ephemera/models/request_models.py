"""Request bodies accepted by the HTTP endpoints."""

from pydantic import BaseModel, Field

from ephemera.models.enums import MessageType, Plan, Role


class GuestLoginRequest(BaseModel):
    name: str


class RegisterRequest(BaseModel):
    username: str
    password: str
    display_name: str | None = None
    email: str | None = None


class LoginRequest(BaseModel):
    username: str  # username or email
    password: str


class ProfileUpdateRequest(BaseModel):
    display_name: str | None = None
    email: str | None = None


class UpgradePlanRequest(BaseModel):
    plan: Plan


class OpenConversationRequest(BaseModel):
    user_id: int


class SendDirectMessageRequest(BaseModel):
    conversation_id: int
    content: str
    type: MessageType = MessageType.TEXT
    reply_to_id: int | None = None
    caption: str | None = None
    media_id: int | None = None


class ReactionRequest(BaseModel):
    emoji: str


class CreateRoomRequest(BaseModel):
    name: str
    description: str | None = None
    is_permanent: bool = False


class SendRoomMessageRequest(BaseModel):
    content: str
    type: MessageType = MessageType.TEXT
    reply_to_id: int | None = None
    caption: str | None = None
    recipient_id: int | None = None
    media_id: int | None = None


class JoinByInviteRequest(BaseModel):
    name: str | None = None  # guest name when joining without an account


class FriendRequestCreate(BaseModel):
    user_id: int


class BanRequest(BaseModel):
    duration_days: int | None = Field(default=None, description="None bans permanently")
    reason: str | None = None


class PromoteRequest(BaseModel):
    role: Role


class RoomUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
