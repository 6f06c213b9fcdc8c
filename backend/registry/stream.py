"""
TCP stream transport for device sessions.

Messages are type-length-payload frames (1-byte type + 4-byte big-endian
length) carrying UTF-8 JSON.  A session starts with a HELLO exchange; after
that the device sends LOG frames and the editor sends COMMAND frames.
"""

import asyncio
import json
import logging
import struct
import uuid

from config import APP_NAME, CONNECT_TIMEOUT
from connection.errors import ConnectionTimeout
from connection.models import SessionType
from registry.base import (
    DetachDeviceCallback,
    Device,
    LogCallback,
    LogLine,
    NewDeviceCallback,
)

logger = logging.getLogger(__name__)

HEADER_FORMAT = "!BI"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)


class MessageType:
    HELLO = 0x01
    COMMAND = 0x02
    LOG = 0x03


async def send_message(writer: asyncio.StreamWriter, msg_type: int, data: dict) -> None:
    """Send a type-length-payload message."""
    payload = json.dumps(data).encode("utf-8")
    writer.write(struct.pack(HEADER_FORMAT, msg_type, len(payload)) + payload)
    await writer.drain()


async def recv_message(reader: asyncio.StreamReader) -> tuple[int, dict]:
    """Receive a type-length-payload message. Returns (type, data)."""
    header = await reader.readexactly(HEADER_SIZE)
    msg_type, length = struct.unpack(HEADER_FORMAT, header)
    payload = await reader.readexactly(length) if length > 0 else b"{}"
    return msg_type, json.loads(payload.decode("utf-8"))


class _Session:
    def __init__(self, device: Device, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.device = device
        self.reader = reader
        self.writer = writer
        self.task: asyncio.Task | None = None


class StreamDeviceRegistry:
    """Tracks device sessions opened over plain TCP streams."""

    def __init__(self, connect_timeout: float = CONNECT_TIMEOUT) -> None:
        self._connect_timeout = connect_timeout
        self._sessions: dict[str, _Session] = {}
        self._on_new_device: list[NewDeviceCallback] = []
        self._on_detach_device: list[DetachDeviceCallback] = []
        self._on_log: list[LogCallback] = []

    @property
    def devices(self) -> list[Device]:
        return [s.device for s in self._sessions.values()]

    def on_new_device(self, callback: NewDeviceCallback) -> None:
        self._on_new_device.append(callback)

    def on_detach_device(self, callback: DetachDeviceCallback) -> None:
        self._on_detach_device.append(callback)

    def on_log(self, callback: LogCallback) -> None:
        self._on_log.append(callback)

    async def _emit(self, callbacks: list, *args) -> None:
        for cb in callbacks:
            try:
                await cb(*args)
            except Exception as e:
                logger.error(f"Registry callback error: {e}", exc_info=True)

    async def connect_to(
        self,
        host: str,
        port: int,
        session_type: SessionType,
        adb_device_id: str | None = None,
    ) -> Device:
        logger.info(f"Connecting to {host}:{port} ({session_type.name})")
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self._connect_timeout
            )
        except asyncio.TimeoutError:
            raise ConnectionTimeout(f"Timed out connecting to {host}:{port}") from None

        try:
            await send_message(writer, MessageType.HELLO, {"client": APP_NAME})
            msg_type, hello = await asyncio.wait_for(
                recv_message(reader), timeout=self._connect_timeout
            )
            if msg_type != MessageType.HELLO:
                raise ConnectionError(f"Expected HELLO, got {msg_type:#x}")
        except asyncio.TimeoutError:
            writer.close()
            raise ConnectionTimeout(f"No handshake from {host}:{port}") from None
        except (asyncio.IncompleteReadError, ValueError) as e:
            writer.close()
            raise ConnectionError(f"Handshake with {host}:{port} failed: {e!r}") from None
        except ConnectionError:
            writer.close()
            raise

        device = Device(
            device_id=str(hello.get("device_id") or uuid.uuid4()),
            host=host,
            port=port,
            session_type=session_type,
            adb_device_id=adb_device_id,
            device_name=str(hello.get("device_name", "")),
        )
        session = _Session(device, reader, writer)
        self._sessions[device.device_id] = session
        session.task = asyncio.create_task(self._read_loop(session))

        logger.info(f"Device attached: {device}")
        await self._emit(self._on_new_device, device, session_type)
        return device

    async def _read_loop(self, session: _Session) -> None:
        try:
            while True:
                msg_type, data = await recv_message(session.reader)
                if msg_type == MessageType.LOG:
                    line = LogLine(device=session.device, log=str(data.get("log", "")))
                    await self._emit(self._on_log, line)
                else:
                    logger.debug(f"Ignoring message {msg_type:#x} from {session.device}")
        except (asyncio.IncompleteReadError, ConnectionError, ValueError) as e:
            logger.debug(f"Session with {session.device} ended: {e!r}")
        finally:
            await self._detach(session)

    async def _detach(self, session: _Session) -> None:
        if self._sessions.pop(session.device.device_id, None) is None:
            return
        session.writer.close()
        logger.info(f"Device detached: {session.device}")
        await self._emit(self._on_detach_device, session.device)

    async def send_command(
        self, name: str, payload: dict | None = None, devices: list[Device] | None = None
    ) -> int:
        targets = devices if devices is not None else self.devices
        data = {"command": name, **(payload or {})}
        sent = 0
        for device in targets:
            session = self._sessions.get(device.device_id)
            if session is None:
                continue
            try:
                await send_message(session.writer, MessageType.COMMAND, data)
                sent += 1
            except ConnectionError as e:
                logger.warning(f"Failed to send '{name}' to {device}: {e}")
        return sent

    async def disconnect(self) -> None:
        for session in list(self._sessions.values()):
            if session.task:
                session.task.cancel()
            await self._detach(session)
