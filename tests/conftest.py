import pytest

from ephemera.common.notify_manager import NotifyManager
from ephemera.models.enums import Role, UserKind
from ephemera.services.users.service import UserService
from ephemera.services.friends.service import FriendService
from ephemera.services.conversations.service import ConversationService
from ephemera.services.rooms.service import RoomService
from ephemera.services.media.service import MediaService
from ephemera.services.admin.service import AdminService
from ephemera.services.sweeper import RetentionSweeper

from tests.fakes import FakeConnection, FakeDB, ManualClock, MemoryStore, RecordingPushChannel, wire


class FakeApp:
    """Application wired to in-memory storage, a manual clock and a recording push channel."""

    def __init__(self):
        self.clock = ManualClock()
        self.db = FakeDB()
        self.s3 = None
        self.api = None

        self.push = RecordingPushChannel()
        self.notify_man = NotifyManager(self)

        self.user_service = UserService(self)
        self.friend_service = FriendService(self)
        self.conversation_service = ConversationService(self)
        self.room_service = RoomService(self)
        self.media_service = MediaService(self)
        self.admin_service = AdminService(self)

        self.sweeper = RetentionSweeper(self)

        self.store = MemoryStore()
        wire(self, self.store)

    async def add_user(
        self,
        username: str,
        kind: UserKind = UserKind.REGISTERED,
        role: Role | None = None,
        online: bool = True
    ) -> int:
        if role is None:
            role = Role.GUEST if kind == UserKind.GUEST else Role.USER

        user_id = await self.user_service.users_repo.create(
            username=username,
            display_name=username,
            kind=kind,
            role=role,
            created_at=self.clock.now()
        )
        if not online:
            await self.user_service.users_repo.set_online(user_id, False, self.clock.now())

        return user_id

    async def connect(self, user_id: int, fail: bool = False) -> FakeConnection:
        connection = FakeConnection(fail=fail)
        await self.push.connect(user_id, connection)
        return connection


@pytest.fixture
def app() -> FakeApp:
    return FakeApp()


@pytest.fixture
async def alice(app) -> int:
    return await app.add_user("alice")


@pytest.fixture
async def bob(app) -> int:
    return await app.add_user("bob")


@pytest.fixture
async def carol(app) -> int:
    return await app.add_user("carol")
