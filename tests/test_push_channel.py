from ephemera.common.push_channel import LocalPushChannel

from tests.fakes import FakeConnection


async def test_send_to_connected_user():
    channel = LocalPushChannel()
    connection = FakeConnection()
    await channel.connect(1, connection)

    assert await channel.send(1, {"type": "pong"})
    assert connection.frames == [{"type": "pong"}]
    assert await channel.send(2, {"type": "pong"}) is False


async def test_reconnect_displaces_previous_connection():
    channel = LocalPushChannel()
    old, new = FakeConnection(), FakeConnection()

    await channel.connect(1, old)
    await channel.connect(1, new)

    assert old.closed
    assert channel.connected_user_ids() == [1]

    await channel.send(1, {"type": "ping"})
    assert old.frames == []
    assert new.frames == [{"type": "ping"}]

    # the displaced socket finishing its loop must not unregister the new one
    assert await channel.disconnect(1, old) is False
    assert channel.is_connected(1)


async def test_failed_send_drops_connection():
    channel = LocalPushChannel()
    await channel.connect(1, FakeConnection(fail=True))

    assert await channel.send(1, {"type": "new_message"}) is False
    assert not channel.is_connected(1)


async def test_disconnect_without_connection_closes_socket():
    channel = LocalPushChannel()
    connection = FakeConnection()
    await channel.connect(1, connection)

    assert await channel.disconnect(1)
    assert connection.closed
    assert await channel.disconnect(1) is False
