import pytest

from ephemera.common.errors import Banned, Conflict, Forbidden, Unauthorized, ValidationError
from ephemera.common.security import create_access_token
from ephemera.models.enums import Plan, Role, UserKind


async def test_guest_login_creates_online_guest(app):
    result = await app.user_service.guest_login("Neo")

    assert result.user.username.startswith("guest-Neo-")
    assert result.user.kind == UserKind.GUEST
    assert result.user.role == Role.GUEST
    assert result.user.is_online

    user_db, session_id = await app.user_service.authenticate(result.token)
    assert user_db.id == result.user.user_id
    assert session_id == result.session_id


async def test_guest_name_is_validated(app):
    with pytest.raises(ValidationError):
        await app.user_service.guest_login("no spaces allowed")


async def test_register_and_login(app):
    registered = await app.user_service.register("trinity", "secret-pass", email="t@zion.io")
    await app.user_service.logout(registered.user.user_id, registered.session_id)

    assert not app.store.users[registered.user.user_id].is_online

    by_email = await app.user_service.login("t@zion.io", "secret-pass")
    assert by_email.user.user_id == registered.user.user_id
    assert by_email.user.is_online

    with pytest.raises(Unauthorized):
        await app.user_service.login("trinity", "wrong-pass")


async def test_register_rejects_taken_and_reserved_names(app):
    await app.user_service.register("morpheus", "secret-pass")

    with pytest.raises(Conflict):
        await app.user_service.register("morpheus", "another-pass")

    with pytest.raises(ValidationError):
        await app.user_service.register("guest-morpheus", "secret-pass")

    with pytest.raises(ValidationError):
        await app.user_service.register("tank", "123")


async def test_guests_cannot_login_with_password(app):
    guest = await app.user_service.guest_login("Dozer")

    with pytest.raises(Forbidden):
        await app.user_service.login(guest.user.username, "anything")


async def test_logout_closes_session(app):
    result = await app.user_service.guest_login("Mouse")

    await app.user_service.logout(result.user.user_id, result.session_id)

    with pytest.raises(Unauthorized):
        await app.user_service.authenticate(result.token)


async def test_authenticate_rejects_foreign_session(app, alice, bob):
    session_id = await app.user_service.sessions_repo.create(bob, app.clock.now())
    forged = create_access_token(alice, Role.USER.value, session_id, app.clock.now())

    with pytest.raises(Unauthorized):
        await app.user_service.authenticate(forged)

    with pytest.raises(Unauthorized):
        await app.user_service.authenticate("not-a-token")


async def test_banned_role_without_ban_record_is_permanent(app):
    user_id = await app.add_user("cypher", role=Role.BANNED)
    session_id = await app.user_service.sessions_repo.create(user_id, app.clock.now())
    token = create_access_token(user_id, Role.BANNED.value, session_id, app.clock.now())

    with pytest.raises(Banned) as exc_info:
        await app.user_service.authenticate(token)

    assert exc_info.value.details["banned_until"] == "permanent"


async def test_login_renews_conversations_and_rooms(app, bob):
    registered = await app.user_service.register("switch", "secret-pass")
    user_id = registered.user.user_id

    conversation = await app.conversation_service.open_conversation(user_id, bob)
    room = await app.room_service.create_room(user_id, "Nebuchadnezzar")

    await app.user_service.logout(user_id)
    assert app.store.conversations[conversation.conversation_id].logged_out(user_id)
    assert app.store.rooms[room.room_id].expires_at is not None

    await app.user_service.login("switch", "secret-pass")

    assert not app.store.conversations[conversation.conversation_id].logged_out(user_id)
    assert app.store.rooms[room.room_id].expires_at is None


async def test_update_profile(app, alice, bob):
    await app.user_service.update_profile(bob, email="bob@example.com")

    updated = await app.user_service.update_profile(alice, display_name="Alice L.")
    assert updated.display_name == "Alice L."

    with pytest.raises(Conflict):
        await app.user_service.update_profile(alice, email="bob@example.com")

    with pytest.raises(ValidationError):
        await app.user_service.update_profile(alice, display_name="  ")


async def test_storage_plan_upgrade(app, alice):
    info = await app.user_service.storage_info(alice)
    assert info.plan == Plan.FREE
    assert info.limit == 100 * 1024 * 1024

    upgraded = await app.user_service.upgrade_plan(alice, Plan.PRO)
    assert upgraded.per_file_limit == 100 * 1024 * 1024

    guest = await app.add_user("guest-a-111111", kind=UserKind.GUEST)
    with pytest.raises(Forbidden):
        await app.user_service.upgrade_plan(guest, Plan.PRO)


async def test_delete_account_removes_owned_data(app, alice, bob):
    conversation = await app.conversation_service.open_conversation(alice, bob)
    await app.conversation_service.send_direct_message(conversation.conversation_id, alice, "bye")
    room = await app.room_service.create_room(alice, "Temporary")

    await app.user_service.delete_account(alice)

    assert alice not in app.store.users
    assert not app.store.conversations
    assert not app.store.direct_messages
    assert room.room_id not in app.store.rooms


async def test_closing_one_of_several_sessions_keeps_user_present(app, bob):
    laptop = await app.user_service.register("apoc", "secret-pass")
    user_id = laptop.user.user_id
    phone = await app.user_service.login("apoc", "secret-pass")

    conversation = await app.conversation_service.open_conversation(user_id, bob)
    room = await app.room_service.create_room(user_id, "Hovercraft")
    await app.connect(user_id)

    await app.user_service.logout(user_id, laptop.session_id)

    with pytest.raises(Unauthorized):
        await app.user_service.authenticate(laptop.token)
    await app.user_service.authenticate(phone.token)

    assert app.store.users[user_id].is_online
    assert app.push.is_connected(user_id)
    assert not app.store.conversations[conversation.conversation_id].logged_out(user_id)
    assert app.store.rooms[room.room_id].expires_at is None

    await app.user_service.logout(user_id, phone.session_id)

    assert not app.store.users[user_id].is_online
    assert not app.push.is_connected(user_id)
    assert app.store.conversations[conversation.conversation_id].logged_out(user_id)
    assert app.store.rooms[room.room_id].expires_at is not None
