import pytest

from ephemera.common.errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError
from ephemera.models.enums import EventType, MessageType


async def test_open_conversation_is_symmetric(app, alice, bob):
    first = await app.conversation_service.open_conversation(alice, bob)
    second = await app.conversation_service.open_conversation(bob, alice)

    assert first.conversation_id == second.conversation_id
    assert first.peer.user_id == bob
    assert second.peer.user_id == alice
    assert len(app.store.conversations) == 1


async def test_open_conversation_requires_existing_peer(app, alice):
    with pytest.raises(NotFound):
        await app.conversation_service.open_conversation(alice, 9999)

    with pytest.raises(ValidationError):
        await app.conversation_service.open_conversation(alice, alice)


async def test_open_conversation_needs_no_friendship_or_presence(app, alice):
    offline = await app.add_user("offline", online=False)

    conversation = await app.conversation_service.open_conversation(alice, offline)

    assert conversation.peer.user_id == offline


async def test_blocked_pair_cannot_open_conversation(app, alice, bob):
    await app.friend_service.block(bob, alice)

    with pytest.raises(Forbidden):
        await app.conversation_service.open_conversation(alice, bob)


async def test_conversation_expires_after_ttl(app, alice, bob):
    conversation = await app.conversation_service.open_conversation(alice, bob)

    app.clock.advance(hours=24)

    with pytest.raises(InvalidState):
        await app.conversation_service.send_direct_message(conversation.conversation_id, alice, "too late")

    reopened = await app.conversation_service.open_conversation(alice, bob)
    assert reopened.conversation_id != conversation.conversation_id
    assert conversation.conversation_id not in app.store.conversations


async def test_send_pushes_exactly_once_to_peer(app, alice, bob):
    bob_connection = await app.connect(bob)
    conversation = await app.conversation_service.open_conversation(alice, bob)

    message = await app.conversation_service.send_direct_message(conversation.conversation_id, alice, " hi ")

    assert message.content == "hi"
    assert message.visible
    attempts = app.push.attempts_of(EventType.NEW_MESSAGE.value)
    assert [uid for uid, _ in attempts] == [bob]
    assert bob_connection.frames[0]["data"]["message"]["message_id"] == message.message_id


async def test_send_succeeds_when_push_fails(app, alice, bob):
    await app.connect(bob, fail=True)
    conversation = await app.conversation_service.open_conversation(alice, bob)

    message = await app.conversation_service.send_direct_message(conversation.conversation_id, alice, "hello")

    assert message.message_id in app.store.direct_messages
    assert len(app.push.attempts_of(EventType.NEW_MESSAGE.value)) == 1
    assert not app.push.is_connected(bob)


async def test_send_validations(app, alice, bob, carol):
    conversation = await app.conversation_service.open_conversation(alice, bob)
    cid = conversation.conversation_id

    with pytest.raises(ValidationError):
        await app.conversation_service.send_direct_message(cid, alice, "   ")

    with pytest.raises(ValidationError):
        await app.conversation_service.send_direct_message(cid, alice, "x", type=MessageType.SYSTEM)

    with pytest.raises(Forbidden):
        await app.conversation_service.send_direct_message(cid, carol, "intruder")

    with pytest.raises(NotFound):
        await app.conversation_service.send_direct_message(cid, alice, "reply", reply_to_id=12345)

    assert not app.store.direct_messages


async def test_visibility_follows_logout_flags(app, alice, bob):
    conversation = await app.conversation_service.open_conversation(alice, bob)
    cid = conversation.conversation_id

    await app.conversation_service.send_direct_message(cid, alice, "before")
    await app.conversation_service.on_user_logout(bob)

    assert await app.conversation_service.fetch_visible_messages(cid, bob) == []
    assert [m.content for m in await app.conversation_service.fetch_visible_messages(cid, alice)] == ["before"]

    # bob has left, so alice's new message is hidden from him
    await app.conversation_service.send_direct_message(cid, alice, "while away")
    assert await app.conversation_service.fetch_visible_messages(cid, bob) == []

    await app.conversation_service.on_user_login(bob)
    await app.conversation_service.send_direct_message(cid, alice, "after")

    assert [m.content for m in await app.conversation_service.fetch_visible_messages(cid, bob)] == ["after"]
    assert [m.content for m in await app.conversation_service.fetch_visible_messages(cid, alice)] == [
        "before", "while away", "after"
    ]


async def test_sending_clears_only_senders_flag(app, alice, bob):
    conversation = await app.conversation_service.open_conversation(alice, bob)
    cid = conversation.conversation_id

    await app.conversation_service.on_user_logout(alice)
    await app.conversation_service.send_direct_message(cid, alice, "back")

    conversation_db = app.store.conversations[cid]
    assert not conversation_db.logged_out(alice)
    assert not conversation_db.logged_out(bob)
    assert [m.content for m in await app.conversation_service.fetch_visible_messages(cid, bob)] == ["back"]


async def test_both_logouts_purge_everything(app, alice, bob):
    conversation = await app.conversation_service.open_conversation(alice, bob)
    cid = conversation.conversation_id

    first = await app.conversation_service.send_direct_message(cid, alice, "one")
    await app.conversation_service.send_direct_message(cid, bob, "two", reply_to_id=first.message_id)
    await app.conversation_service.react(first.message_id, bob, "👍")

    assert await app.conversation_service.on_user_logout(alice) == 0
    assert cid in app.store.conversations

    assert await app.conversation_service.on_user_logout(bob) == 1

    assert cid not in app.store.conversations
    assert not app.store.direct_messages
    assert not app.store.direct_reactions


async def test_mark_read_notifies_sender_per_message(app, alice, bob):
    conversation = await app.conversation_service.open_conversation(alice, bob)
    cid = conversation.conversation_id
    await app.connect(alice)

    await app.conversation_service.send_direct_message(cid, alice, "one")
    await app.conversation_service.send_direct_message(cid, alice, "two")
    await app.conversation_service.send_direct_message(cid, bob, "mine")

    assert (await app.conversation_service.get_conversation(cid, bob)).unread_count == 2
    assert await app.conversation_service.mark_read(cid, bob) == 2
    assert await app.conversation_service.mark_read(cid, bob) == 0

    read_events = app.push.attempts_of(EventType.MESSAGE_READ.value)
    assert [uid for uid, _ in read_events] == [alice, alice]
    assert (await app.conversation_service.get_conversation(cid, bob)).unread_count == 0


async def test_duplicate_reaction_conflicts(app, alice, bob):
    conversation = await app.conversation_service.open_conversation(alice, bob)
    message = await app.conversation_service.send_direct_message(conversation.conversation_id, alice, "hey")

    reaction = await app.conversation_service.react(message.message_id, bob, "🔥")

    with pytest.raises(Conflict):
        await app.conversation_service.react(message.message_id, bob, "🔥")

    with pytest.raises(Forbidden):
        await app.conversation_service.remove_reaction(reaction.reaction_id, alice)

    await app.conversation_service.remove_reaction(reaction.reaction_id, bob)
    assert not app.store.direct_reactions


async def test_list_conversations_skips_expired(app, alice, bob, carol):
    await app.conversation_service.open_conversation(alice, bob)
    app.clock.advance(hours=23)
    await app.conversation_service.open_conversation(alice, carol)
    app.clock.advance(hours=2)

    conversations = await app.conversation_service.list_conversations(alice)

    assert [c.peer.user_id for c in conversations] == [carol]


async def test_sweep_expired_deletes_conversations(app, alice, bob):
    conversation = await app.conversation_service.open_conversation(alice, bob)
    await app.conversation_service.send_direct_message(conversation.conversation_id, alice, "bye")

    assert await app.conversation_service.sweep_expired() == 0

    app.clock.advance(hours=24, seconds=1)

    assert await app.conversation_service.sweep_expired() == 1
    assert not app.store.conversations
    assert not app.store.direct_messages
