"""Device registry interface the connection core depends on."""

from typing import Awaitable, Callable, Protocol

from pydantic import BaseModel

from connection.models import SessionType


class Device(BaseModel):
    """A connected script-execution device."""
    device_id: str
    host: str
    port: int
    session_type: SessionType
    adb_device_id: str | None = None
    device_name: str = ""

    def __str__(self) -> str:
        return f"{self.device_name or 'Device'} ({self.host}:{self.port})"


class LogLine(BaseModel):
    device: Device
    log: str


NewDeviceCallback = Callable[[Device, SessionType], Awaitable[None]]
DetachDeviceCallback = Callable[[Device], Awaitable[None]]
LogCallback = Callable[[LogLine], Awaitable[None]]


class DeviceRegistry(Protocol):
    """Opens and tracks device sessions; the transport behind it is opaque."""

    @property
    def devices(self) -> list[Device]: ...

    def on_new_device(self, callback: NewDeviceCallback) -> None: ...

    def on_detach_device(self, callback: DetachDeviceCallback) -> None: ...

    def on_log(self, callback: LogCallback) -> None: ...

    async def connect_to(
        self,
        host: str,
        port: int,
        session_type: SessionType,
        adb_device_id: str | None = None,
    ) -> Device: ...

    async def send_command(
        self, name: str, payload: dict | None = None, devices: list[Device] | None = None
    ) -> int:
        """Send to ``devices`` (default: all); returns how many received it."""
        ...

    async def disconnect(self) -> None: ...
