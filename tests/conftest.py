"""Shared fakes for the connection tests."""

import asyncio

import pytest

from connection.adb import AdbBridge, AdbResult
from connection.errors import BridgeToolUnavailable
from connection.history import AddressHistoryStore
from connection.models import SessionType
from connection.session import SessionManager
from registry.base import Device


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str, str | None]] = []

    async def info(self, message, detail=None):
        self.messages.append(("info", message, detail))

    async def warning(self, message, detail=None):
        self.messages.append(("warning", message, detail))

    async def error(self, message, detail=None, link=None):
        self.messages.append(("error", message, detail))

    def levels(self) -> list[str]:
        return [level for level, _, _ in self.messages]


class FakeRegistry:
    def __init__(self) -> None:
        self.devices: list[Device] = []
        self.connects: list[tuple] = []
        self.commands: list[tuple] = []
        self.disconnected = 0
        self.connect_delay = 0.0
        self.connect_error: Exception | None = None
        self._new_device = []
        self._detach_device = []
        self._log = []

    def on_new_device(self, callback):
        self._new_device.append(callback)

    def on_detach_device(self, callback):
        self._detach_device.append(callback)

    def on_log(self, callback):
        self._log.append(callback)

    async def connect_to(self, host, port, session_type, adb_device_id=None):
        self.connects.append((host, port, session_type, adb_device_id))
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        device = Device(
            device_id=f"dev-{len(self.connects)}",
            host=host,
            port=port,
            session_type=session_type,
            adb_device_id=adb_device_id,
        )
        await self.attach(device)
        return device

    async def attach(self, device: Device, session_type: SessionType | None = None):
        self.devices.append(device)
        for cb in self._new_device:
            await cb(device, session_type if session_type is not None else device.session_type)

    async def detach(self, device: Device):
        self.devices.remove(device)
        for cb in self._detach_device:
            await cb(device)

    async def emit_log(self, line):
        for cb in self._log:
            await cb(line)

    async def send_command(self, name, payload=None, devices=None):
        targets = self.devices if devices is None else devices
        self.commands.append((name, payload, [d.device_id for d in targets]))
        return len(targets)

    async def disconnect(self):
        self.disconnected += 1
        for device in list(self.devices):
            await self.detach(device)


class FakeBridge(AdbBridge):
    """AdbBridge with scripted results instead of a real adb process."""

    def __init__(self) -> None:
        super().__init__(adb_path="adb")
        self.calls: list[tuple] = []
        self.responses: dict[tuple, AdbResult] = {}
        self.unavailable = False
        self.failures: dict[str, AdbResult] = {}

    def fail(self, command, stderr, returncode=1):
        self.failures[command] = AdbResult(returncode=returncode, stdout="", stderr=stderr)

    def respond(self, *args, stdout="", stderr="", returncode=0, serial=None):
        self.responses[(serial, *args)] = AdbResult(returncode=returncode, stdout=stdout, stderr=stderr)

    async def run(self, *args, serial=None):
        self.calls.append((serial, *args))
        if self.unavailable:
            raise BridgeToolUnavailable("Unable to run adb: not found")
        if args and args[0] in self.failures:
            return self.failures[args[0]]
        return self.responses.get((serial, *args), AdbResult(returncode=0, stdout="", stderr=""))

    def calls_for(self, *prefix) -> list[tuple]:
        return [c for c in self.calls if c[1:1 + len(prefix)] == prefix]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def bridge():
    return FakeBridge()


@pytest.fixture
def history(tmp_path):
    return AddressHistoryStore(path=tmp_path / "state.json")


@pytest.fixture
def manager(registry, history, bridge, notifier):
    manager = SessionManager(registry=registry, history=history, bridge=bridge, notifier=notifier)
    asyncio.run(manager.init())
    return manager
