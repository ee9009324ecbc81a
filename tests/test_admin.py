import pytest

from ephemera.common.errors import Banned, Forbidden, NotFound, ValidationError
from ephemera.models.enums import MessageType, Role


@pytest.fixture
async def moderator(app):
    return await app.add_user("mod", role=Role.MODERATOR)


@pytest.fixture
async def admin(app):
    return await app.add_user("root", role=Role.ADMIN)


async def register(app, username):
    result = await app.user_service.register(username, "secret-pass")
    return result.user.user_id


async def test_ban_expires_after_three_days(app, moderator):
    target = await register(app, "smith")
    await app.connect(target)

    ban = await app.admin_service.ban_user(moderator, target, 3, reason="spam")

    assert ban.is_active
    assert app.store.users[target].role == Role.BANNED
    assert not app.push.is_connected(target)
    assert not any(s.is_active for s in app.store.sessions.values() if s.user_id == target)

    app.clock.advance(days=3, seconds=-1)
    with pytest.raises(Banned) as exc_info:
        await app.user_service.login("smith", "secret-pass")
    assert exc_info.value.details["reason"] == "spam"

    app.clock.advance(seconds=2)
    result = await app.user_service.login("smith", "secret-pass")

    assert result.user.role == Role.USER
    assert not any(b.is_active for b in app.store.bans.values())


async def test_ban_drops_conversations_and_memberships(app, admin, alice, bob):
    conversation = await app.conversation_service.open_conversation(alice, bob)
    room = await app.room_service.create_room(alice, "Ops")
    await app.room_service.join_room(room.room_id, bob)

    await app.admin_service.ban_user(admin, bob, None)

    assert not app.store.conversations[conversation.conversation_id].is_active
    assert bob not in await app.room_service.members_repo.get_member_user_ids(room.room_id)


async def test_moderator_limits(app, moderator, alice):
    other_moderator = await app.add_user("mod2", role=Role.MODERATOR)

    with pytest.raises(ValidationError):
        await app.admin_service.ban_user(moderator, alice, 7)

    with pytest.raises(Forbidden):
        await app.admin_service.ban_user(moderator, alice, None)

    with pytest.raises(Forbidden):
        await app.admin_service.ban_user(moderator, other_moderator, 1)

    with pytest.raises(Forbidden):
        await app.admin_service.ban_user(alice, moderator, 1)

    with pytest.raises(ValidationError):
        await app.admin_service.ban_user(moderator, moderator, 1)


async def test_admins_cannot_be_banned(app, admin):
    other_admin = await app.add_user("root2", role=Role.ADMIN)

    with pytest.raises(Forbidden):
        await app.admin_service.ban_user(admin, other_admin, None)


async def test_unban_restores_previous_role(app, admin, moderator):
    await app.admin_service.ban_user(admin, moderator, 30)
    assert app.store.users[moderator].role == Role.BANNED

    restored = await app.admin_service.unban_user(admin, moderator)

    assert restored.role == Role.MODERATOR

    with pytest.raises(NotFound):
        await app.admin_service.unban_user(admin, moderator)


async def test_moderator_lifts_only_own_bans(app, admin, moderator, alice):
    await app.admin_service.ban_user(admin, alice, 1)

    with pytest.raises(Forbidden):
        await app.admin_service.unban_user(moderator, alice)


async def test_promote_and_demote(app, alice):
    promoted = await app.admin_service.promote(alice, Role.MODERATOR)
    assert promoted.role == Role.MODERATOR

    with pytest.raises(ValidationError):
        await app.admin_service.promote(alice, Role.BANNED)

    demoted = await app.admin_service.demote(alice)
    assert demoted.role == Role.USER


async def test_user_details_and_stats(app, admin, alice, bob):
    await app.admin_service.ban_user(admin, bob, 1, reason="flood")
    await app.conversation_service.open_conversation(admin, alice)

    details = await app.admin_service.user_details(bob)
    assert details.active_ban.reason == "flood"
    assert len(details.bans) == 1

    stats = await app.admin_service.stats()
    assert stats.total_users == 3
    assert stats.banned_users == 1
    assert stats.active_conversations == 1
    assert stats.online_users == 2


async def test_moderators_read_chats_including_hidden_messages(app, alice, bob):
    conversation = await app.conversation_service.open_conversation(alice, bob)
    cid = conversation.conversation_id

    first = await app.conversation_service.send_direct_message(cid, alice, "before")
    await app.conversation_service.on_user_logout(bob)
    second = await app.conversation_service.send_direct_message(cid, alice, "after")

    assert await app.conversation_service.fetch_visible_messages(cid, bob) == []

    messages = await app.conversation_service.moderation_messages(cid)

    assert [m.message_id for m in messages] == [first.message_id, second.message_id]
    assert all(m.visible for m in messages)

    with pytest.raises(NotFound):
        await app.conversation_service.moderation_messages(9999)


async def test_room_details_show_members_and_secret_messages(app, alice, bob, carol):
    room = await app.room_service.create_room(alice, "Ops")
    await app.room_service.join_room(room.room_id, bob)
    await app.room_service.join_room(room.room_id, carol)

    await app.room_service.send_room_message(room.room_id, alice, "hi all")
    await app.room_service.send_room_message(room.room_id, bob, "psst", recipient_id=carol)

    details = await app.room_service.room_details(room.room_id)

    assert details.room.room_id == room.room_id
    assert details.creator_username == "alice"
    assert {m.user.user_id for m in details.members} == {alice, bob, carol}
    assert [m.type for m in details.recent_messages] == [MessageType.TEXT, MessageType.SECRET]

    with pytest.raises(NotFound):
        await app.room_service.room_details(9999)


async def test_update_room_details(app, alice):
    room = await app.room_service.create_room(alice, "Ops", "Old text")

    renamed = await app.room_service.update_room(room.room_id, name="  Operations ")
    assert renamed.name == "Operations"
    assert renamed.description == "Old text"

    cleared = await app.room_service.update_room(room.room_id, description="")
    assert cleared.name == "Operations"
    assert cleared.description is None

    with pytest.raises(ValidationError):
        await app.room_service.update_room(room.room_id)

    with pytest.raises(ValidationError):
        await app.room_service.update_room(room.room_id, name="   ")
