import pytest

from ephemera.common.errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError
from ephemera.models.enums import FriendshipStatus, UserKind


async def test_request_accept_flow(app, alice, bob):
    request = await app.friend_service.send_request(alice, bob)
    assert request.status == FriendshipStatus.PENDING

    assert [f.friendship_id for f in await app.friend_service.list_pending(bob)] == [request.friendship_id]
    assert [f.friendship_id for f in await app.friend_service.list_sent(alice)] == [request.friendship_id]

    with pytest.raises(NotFound):
        await app.friend_service.accept(request.friendship_id, alice)

    accepted = await app.friend_service.accept(request.friendship_id, bob)
    assert accepted.status == FriendshipStatus.ACCEPTED

    assert [u.user_id for u in await app.friend_service.list_friends(alice)] == [bob]
    assert [u.user_id for u in await app.friend_service.list_friends(bob)] == [alice]

    with pytest.raises(InvalidState):
        await app.friend_service.reject(request.friendship_id, bob)


async def test_duplicate_and_self_requests(app, alice, bob):
    await app.friend_service.send_request(alice, bob)

    with pytest.raises(Conflict):
        await app.friend_service.send_request(bob, alice)

    with pytest.raises(ValidationError):
        await app.friend_service.send_request(alice, alice)


async def test_guests_have_no_friends(app, alice):
    guest = await app.add_user("guest-f-222222", kind=UserKind.GUEST)

    with pytest.raises(Forbidden):
        await app.friend_service.send_request(alice, guest)


async def test_block_overrides_friendship(app, alice, bob):
    request = await app.friend_service.send_request(alice, bob)
    await app.friend_service.accept(request.friendship_id, bob)

    blocked = await app.friend_service.block(bob, alice)

    assert blocked.friendship_id == request.friendship_id
    assert blocked.requester_id == bob
    assert await app.friend_service.is_blocked(alice, bob)
    assert await app.friend_service.list_friends(alice) == []
    assert [u.user_id for u in await app.friend_service.list_blocked(bob)] == [alice]

    with pytest.raises(NotFound):
        await app.friend_service.unblock(alice, bob)

    await app.friend_service.unblock(bob, alice)

    assert not await app.friend_service.is_blocked(alice, bob)
    assert (await app.friend_service.status_between(alice, bob)).status == "none"


async def test_status_between(app, alice, bob):
    request = await app.friend_service.send_request(alice, bob)

    mine = await app.friend_service.status_between(alice, bob)
    theirs = await app.friend_service.status_between(bob, alice)

    assert mine.status == theirs.status == FriendshipStatus.PENDING.value
    assert mine.friendship_id == request.friendship_id
    assert mine.is_requester and not theirs.is_requester
