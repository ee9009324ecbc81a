import pytest

from ephemera.common.errors import Forbidden, InvalidState, NotFound, OwnerOffline, ValidationError
from ephemera.models.enums import EventType, MessageType, PresenceAction, Role, RoomStatus, UserKind
from ephemera.services.rooms.service import INVITE_CODE_LENGTH

from tests.fakes import message_types


@pytest.fixture
async def room(app, alice, bob):
    room = await app.room_service.create_room(alice, "Launch", "Weekly sync")
    await app.room_service.join_room(room.room_id, bob)
    return room


async def test_create_room_adds_creator_and_invite(app, alice):
    room = await app.room_service.create_room(alice, "  Design  ")

    assert room.name == "Design"
    assert room.member_count == 1
    assert room.status == RoomStatus.ACTIVE
    assert len(room.invite_code) == INVITE_CODE_LENGTH
    assert room.invite_code.isalnum()
    assert room.invite_url.endswith(f"/join/{room.invite_code}")


async def test_guests_cannot_create_rooms(app):
    guest = await app.add_user("guest-x-abc123", kind=UserKind.GUEST)

    with pytest.raises(Forbidden):
        await app.room_service.create_room(guest, "Nope")


async def test_permanent_rooms_are_admin_only(app, alice):
    admin = await app.add_user("root", role=Role.ADMIN)

    with pytest.raises(Forbidden):
        await app.room_service.create_room(alice, "Lobby", is_permanent=True)

    room = await app.room_service.create_room(admin, "Lobby", is_permanent=True)
    assert room.is_permanent


async def test_join_broadcasts_presence_and_is_idempotent(app, alice, bob):
    alice_connection = await app.connect(alice)
    room = await app.room_service.create_room(alice, "Launch")

    await app.room_service.join_room(room.room_id, bob)
    joined = await app.room_service.join_room(room.room_id, bob)

    assert joined.member_count == 2
    presence = [f for f in alice_connection.frames if f["type"] == EventType.ROOM_PRESENCE.value]
    assert len(presence) == 1
    assert presence[0]["data"]["action"] == PresenceAction.JOINED.value
    assert presence[0]["data"]["user"]["user_id"] == bob


async def test_join_requires_online_creator(app, alice, bob):
    room = await app.room_service.create_room(alice, "Launch")
    await app.user_service.users_repo.set_online(alice, False, app.clock.now())

    with pytest.raises(OwnerOffline):
        await app.room_service.join_room(room.room_id, bob)


async def test_join_by_invite(app, alice, bob):
    room = await app.room_service.create_room(alice, "Launch")

    preview = await app.room_service.preview_invite(room.invite_code)
    assert preview.room_id == room.room_id
    assert preview.creator_username == "alice"

    joined = await app.room_service.join_by_invite(room.invite_code, bob)
    assert joined.member_count == 2

    with pytest.raises(NotFound):
        await app.room_service.join_by_invite("doesnotexist", bob)


async def test_creator_cannot_leave(app, room, alice, bob):
    with pytest.raises(Forbidden):
        await app.room_service.leave_room(room.room_id, alice)

    await app.room_service.leave_room(room.room_id, bob)

    with pytest.raises(NotFound):
        await app.room_service.leave_room(room.room_id, bob)


async def test_room_keeps_newest_messages_only(app, room, alice):
    for i in range(205):
        await app.room_service.send_room_message(room.room_id, alice, f"message {i}")

    assert len(app.store.room_messages) == 200

    page = await app.room_service.fetch_room_messages(room.room_id, alice, limit=200)
    assert page[0].content == "message 5"
    assert page[-1].content == "message 204"


async def test_trimmed_messages_lose_their_reactions(app, room, alice, bob):
    first = await app.room_service.send_room_message(room.room_id, alice, "first")
    await app.room_service.react(first.message_id, bob, "🎉")

    for i in range(200):
        await app.room_service.send_room_message(room.room_id, bob, f"filler {i}")

    assert first.message_id not in app.store.room_messages
    assert not app.store.room_reactions


async def test_secret_message_visible_to_pair_only(app, room, alice, bob, carol):
    await app.room_service.join_room(room.room_id, carol)
    bob_connection = await app.connect(bob)
    carol_connection = await app.connect(carol)

    secret = await app.room_service.send_room_message(room.room_id, alice, "psst", recipient_id=bob)

    assert secret.type == MessageType.SECRET
    assert secret.recipient_username == "bob"

    for viewer in (alice, bob):
        page = await app.room_service.fetch_room_messages(room.room_id, viewer)
        assert [m.message_id for m in page] == [secret.message_id]
    assert await app.room_service.fetch_room_messages(room.room_id, carol) == []

    assert [f["type"] for f in bob_connection.frames] == [EventType.NEW_MESSAGE.value]
    assert all(f["type"] != EventType.NEW_MESSAGE.value for f in carol_connection.frames)

    with pytest.raises(NotFound):
        await app.room_service.react(secret.message_id, carol, "👀")


async def test_secret_message_recipient_checks(app, room, alice, carol):
    with pytest.raises(ValidationError):
        await app.room_service.send_room_message(room.room_id, alice, "me", recipient_id=alice)

    with pytest.raises(NotFound):
        await app.room_service.send_room_message(room.room_id, alice, "you", recipient_id=carol)


async def test_non_members_cannot_read_or_send(app, room, carol):
    with pytest.raises(Forbidden):
        await app.room_service.send_room_message(room.room_id, carol, "hi")

    with pytest.raises(Forbidden):
        await app.room_service.fetch_room_messages(room.room_id, carol)


async def test_room_broadcast_skips_sender(app, room, alice, bob):
    await app.connect(alice)
    await app.connect(bob)

    await app.room_service.send_room_message(room.room_id, alice, "hello room")

    assert [uid for uid, _ in app.push.attempts_of(EventType.NEW_MESSAGE.value)] == [bob]


async def test_fetch_new_room_messages(app, room, alice, bob):
    await app.room_service.send_room_message(room.room_id, alice, "old")
    checkpoint = app.clock.now()
    app.clock.advance(seconds=5)
    await app.room_service.send_room_message(room.room_id, bob, "new")

    messages = await app.room_service.fetch_new_room_messages(room.room_id, alice, checkpoint)

    assert [m.content for m in messages] == ["new"]


async def test_creator_logout_marks_room_then_sweep_deletes_it(app, room, alice, bob):
    bob_connection = await app.connect(bob)

    await app.user_service.logout(alice)

    room_db = app.store.rooms[room.room_id]
    assert (room_db.expires_at - app.clock.now()).total_seconds() == 600
    assert message_types(app.store, room.room_id) == [MessageType.SYSTEM]

    expiring = [f for f in bob_connection.frames if f["type"] == EventType.ROOM_EXPIRING.value]
    assert len(expiring) == 1
    assert expiring[0]["data"]["message"]["type"] == MessageType.SYSTEM.value

    app.clock.advance(minutes=9)
    assert await app.room_service.sweep_marked() == 0

    app.clock.advance(minutes=1)
    assert await app.room_service.sweep_marked() == 1

    assert room.room_id not in app.store.rooms
    assert not app.store.room_members
    assert not app.store.room_messages


async def test_creator_login_cancels_deletion(app, room, alice):
    await app.room_service.mark_creator_logged_out(alice)
    assert app.store.rooms[room.room_id].expires_at is not None

    await app.room_service.on_creator_login(alice)
    assert app.store.rooms[room.room_id].expires_at is None

    app.clock.advance(minutes=30)
    assert await app.room_service.sweep_marked() == 0


async def test_creator_message_cancels_deletion(app, room, alice):
    await app.room_service.mark_creator_logged_out(alice)

    await app.room_service.send_room_message(room.room_id, alice, "still here")

    assert app.store.rooms[room.room_id].expires_at is None


async def test_permanent_room_is_never_marked(app, bob):
    admin = await app.add_user("root", role=Role.ADMIN)
    lobby = await app.room_service.create_room(admin, "Lobby", is_permanent=True)

    assert await app.room_service.mark_creator_logged_out(admin) == 0
    assert app.store.rooms[lobby.room_id].expires_at is None

    await app.user_service.users_repo.set_online(admin, False, app.clock.now())
    joined = await app.room_service.join_room(lobby.room_id, bob)
    assert joined.member_count == 2


async def test_permanent_room_drops_messages_after_a_day(app, bob):
    admin = await app.add_user("root", role=Role.ADMIN)
    lobby = await app.room_service.create_room(admin, "Lobby", is_permanent=True)

    await app.room_service.send_room_message(lobby.room_id, admin, "yesterday")
    app.clock.advance(hours=24, seconds=1)

    assert await app.room_service.trim_all() == 1
    assert not app.store.room_messages


async def test_guest_logout_drops_memberships(app, room, alice):
    guest = await app.add_user("guest-g-000000", kind=UserKind.GUEST)
    await app.room_service.join_room(room.room_id, guest)

    await app.user_service.logout(guest)

    assert guest not in await app.room_service.members_repo.get_member_user_ids(room.room_id)


async def test_complete_then_archive(app, room, alice, bob):
    await app.room_service.send_room_message(room.room_id, bob, "done?")

    with pytest.raises(Forbidden):
        await app.room_service.complete_room(room.room_id, bob)

    completed = await app.room_service.complete_room(room.room_id, alice)
    assert completed.status == RoomStatus.COMPLETED

    with pytest.raises(InvalidState):
        await app.room_service.send_room_message(room.room_id, alice, "late")

    app.clock.advance(days=29)
    assert await app.room_service.archive_stale_completed() == 0

    app.clock.advance(days=1)
    assert await app.room_service.archive_stale_completed() == 1

    room_db = app.store.rooms[room.room_id]
    assert room_db.status == RoomStatus.ARCHIVED
    assert not app.store.room_messages
    assert not app.store.room_members


async def test_delete_room_creator_or_admin(app, room, alice, bob):
    with pytest.raises(Forbidden):
        await app.room_service.delete_room(room.room_id, bob)

    admin = await app.add_user("root", role=Role.ADMIN)
    await app.room_service.delete_room(room.room_id, admin)

    assert room.room_id not in app.store.rooms


async def test_public_rooms_list_only_active_permanent_rooms(app, alice):
    admin = await app.add_user("root", role=Role.ADMIN)
    lobby = await app.room_service.create_room(admin, "Lobby", is_permanent=True)
    closed = await app.room_service.create_room(admin, "Old lobby", is_permanent=True)
    await app.room_service.create_room(alice, "Private")

    await app.room_service.complete_room(closed.room_id, admin)

    assert [r.room_id for r in await app.room_service.list_public()] == [lobby.room_id]


async def test_check_joinable_matches_join_rules(app, room, alice):
    assert (await app.room_service.check_joinable(room.invite_code)).id == room.room_id

    app.store.update(app.store.users, alice, is_online=False)
    with pytest.raises(OwnerOffline):
        await app.room_service.check_joinable(room.invite_code)

    app.store.update(app.store.users, alice, is_online=True)
    await app.room_service.complete_room(room.room_id, alice)
    with pytest.raises(InvalidState):
        await app.room_service.check_joinable(room.invite_code)

    with pytest.raises(NotFound):
        await app.room_service.check_joinable("nope")
