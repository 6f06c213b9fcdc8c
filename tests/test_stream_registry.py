import asyncio

import pytest

from connection.errors import ConnectionTimeout
from connection.models import SessionType
from registry.stream import MessageType, StreamDeviceRegistry, recv_message, send_message


async def start_device(received: list, reply_hello: bool = True):
    """A fake AutoJs6 device in server mode."""

    async def handle(reader, writer):
        msg_type, data = await recv_message(reader)
        received.append((msg_type, data))
        if not reply_hello:
            await asyncio.sleep(1)
            writer.close()
            return
        await send_message(writer, MessageType.HELLO, {"device_id": "abc", "device_name": "Pixel"})
        await send_message(writer, MessageType.LOG, {"log": "script started"})
        msg_type, data = await recv_message(reader)
        received.append((msg_type, data))
        writer.close()

    return await asyncio.start_server(handle, "127.0.0.1", 0)


def test_session_lifecycle():
    received = []
    events = []

    async def scenario():
        server = await start_device(received)
        port = server.sockets[0].getsockname()[1]
        registry = StreamDeviceRegistry(connect_timeout=2)
        detached = asyncio.Event()

        async def on_new(device, session_type):
            events.append(("new", device.device_id, session_type))

        async def on_log(line):
            events.append(("log", line.log))

        async def on_detach(device):
            events.append(("detach", device.device_id))
            detached.set()

        registry.on_new_device(on_new)
        registry.on_log(on_log)
        registry.on_detach_device(on_detach)

        device = await registry.connect_to("127.0.0.1", port, SessionType.SERVER_LAN)
        assert device.device_name == "Pixel"
        assert registry.devices == [device]

        assert await registry.send_command("run", {"id": "/tmp/x.js"}) == 1
        await asyncio.wait_for(detached.wait(), timeout=2)
        assert registry.devices == []

        server.close()
        await server.wait_closed()

    asyncio.run(scenario())

    assert received[0] == (MessageType.HELLO, {"client": "AutoJs6 Bridge"})
    assert received[1] == (MessageType.COMMAND, {"command": "run", "id": "/tmp/x.js"})
    assert events == [
        ("new", "abc", SessionType.SERVER_LAN),
        ("log", "script started"),
        ("detach", "abc"),
    ]


def test_missing_handshake_times_out():
    async def scenario():
        server = await start_device([], reply_hello=False)
        port = server.sockets[0].getsockname()[1]
        registry = StreamDeviceRegistry(connect_timeout=0.1)
        try:
            with pytest.raises(ConnectionTimeout):
                await registry.connect_to("127.0.0.1", port, SessionType.SERVER_LAN)
        finally:
            server.close()

    asyncio.run(scenario())


def test_refused_connection_raises_oserror():
    async def scenario():
        server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()
        with pytest.raises(OSError):
            await StreamDeviceRegistry(connect_timeout=1).connect_to(
                "127.0.0.1", port, SessionType.SERVER_LAN
            )

    asyncio.run(scenario())
