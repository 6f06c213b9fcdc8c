import asyncio

from connection.models import SessionType
from registry.base import Device, LogLine


class StaticPrompter:
    def __init__(self, answer: bool) -> None:
        self.answer = answer
        self.questions: list[str] = []

    async def choose(self, title, placeholder, options):
        return None

    async def confirm(self, question):
        self.questions.append(question)
        return self.answer


def lan_device(host="10.0.0.2", device_id="d1") -> Device:
    return Device(device_id=device_id, host=host, port=6347, session_type=SessionType.SERVER_LAN)


def test_attach_records_address_and_membership(manager, registry, notifier):
    events = []

    async def record(event, data):
        events.append(event)

    manager.on_event(record)
    device = lan_device()
    asyncio.run(registry.attach(device))

    assert manager.connected_lan == {"10.0.0.2"}
    assert [r.ip for r in manager.history.records()] == ["10.0.0.2"]
    assert notifier.levels() == ["info"]
    assert events == ["device_attached"]


def test_client_lan_attach_is_not_server_membership(manager, registry):
    device = Device(device_id="d2", host="10.0.0.3", port=50123, session_type=SessionType.CLIENT_LAN)
    asyncio.run(registry.attach(device))
    assert manager.connected_lan == set()
    assert [r.ip for r in manager.history.records()] == ["10.0.0.3"]


def test_detach_clears_membership(manager, registry):
    device = lan_device()

    async def scenario():
        await registry.attach(device)
        await registry.detach(device)

    asyncio.run(scenario())
    assert manager.connected_lan == set()
    assert [r.ip for r in manager.history.records()] == ["10.0.0.2"]


def test_log_lines_are_republished(manager, registry):
    events = []

    async def record(event, data):
        events.append((event, data))

    manager.on_event(record)
    device = lan_device()
    asyncio.run(registry.emit_log(LogLine(device=device, log="hello")))
    assert events == [("device_log", {"device_id": "d1", "log": "hello"})]


def test_clear_history_requires_confirmation(manager, notifier):
    manager.history.replace(["10.0.0.2", "10.0.0.3"])

    declined = StaticPrompter(False)
    assert asyncio.run(manager.clear_history(declined)) is None
    assert len(manager.history.records()) == 2

    accepted = StaticPrompter(True)
    assert asyncio.run(manager.clear_history(accepted)) == 2
    assert manager.history.records() == []
    assert notifier.messages[-1] == ("info", "Cleared 2 record(s)", None)


def test_teardown_disconnects(manager, registry):
    async def scenario():
        await registry.attach(lan_device())
        await manager.teardown()

    asyncio.run(scenario())
    assert registry.disconnected == 1
    assert manager.connected_lan == set()
