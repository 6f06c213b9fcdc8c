"""
ADB tunnel connections.

Devices visible to the adb server are enumerated with ``adb devices -l``.
Connecting forwards two freshly leased local ports to the device's server
ports and opens a session over the first one.  If the session does not come
up within the handshake timeout, the device's debug-server provider is
queried so the user learns whether server mode is switched off.
"""

import asyncio
import logging
import re
import shutil
import sys
from pathlib import Path

from pydantic import BaseModel

from config import (
    ADB_COMMAND_TIMEOUT,
    ADB_HANDSHAKE_TIMEOUT,
    ADB_HELP_URL,
    ADB_PATH,
    DEBUG_SERVER_READY_STATE,
    DEBUG_SERVER_URI,
    DEFAULT_ADB_SERVER_PORT,
    DEFAULT_CLIENT_PORT,
    IP_LOOPBACK,
    PROVIDER_NOT_FOUND_MARKER,
)
from connection.errors import (
    BridgeCommandError,
    BridgeToolUnavailable,
    ForwardSetupFailed,
    NoAvailablePorts,
)
from connection.models import (
    AdbConnectResult,
    AttemptPorts,
    ConnectionAttempt,
    ConnectionKind,
    ConnectOutcome,
    DeviceDescriptor,
    SessionType,
)

logger = logging.getLogger(__name__)

DEVICE_LINE = re.compile(r"(\S+)\s+device\s(.+)")
STATE_TOKEN = re.compile(r"state=(\d+)")
SERVER_MODE_HINT = 'Make sure "Server mode" is switched on in the AutoJs6 side menu'


def find_adb_executable() -> Path | None:
    """
    Find the ADB executable.

    Search order:
    1. ``ADB_PATH`` environment variable
    2. Bundled ``tools`` folder next to the backend
    3. System PATH
    """
    if ADB_PATH:
        return Path(ADB_PATH)

    adb_name = "adb.exe" if sys.platform == "win32" else "adb"
    bundled = Path(__file__).resolve().parent.parent / "tools" / adb_name
    if bundled.exists():
        logger.debug(f"Found bundled ADB at: {bundled}")
        return bundled

    system_adb = shutil.which("adb")
    if system_adb:
        logger.debug(f"Found ADB in system PATH: {system_adb}")
        return Path(system_adb)

    logger.debug("ADB not found in any location")
    return None


class AdbResult(BaseModel):
    returncode: int
    stdout: str
    stderr: str


class AdbBridge:
    """Async wrapper around the adb command-line tool."""

    def __init__(self, adb_path: Path | str | None = None, timeout: float = ADB_COMMAND_TIMEOUT):
        self.adb_path = str(adb_path or find_adb_executable() or "adb")
        self._timeout = timeout

    async def run(self, *args: str, serial: str | None = None) -> AdbResult:
        cmd = [self.adb_path]
        if serial:
            cmd.extend(["-s", serial])
        cmd.extend(args)
        logger.debug(f"Running ADB command: {' '.join(cmd)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise BridgeToolUnavailable(f"Unable to run {self.adb_path}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(f"ADB command timed out after {self._timeout}s")
            return AdbResult(returncode=-1, stdout="", stderr="Command timed out")

        return AdbResult(
            returncode=proc.returncode or 0,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    async def run_or_raise(self, *args: str, serial: str | None = None) -> AdbResult:
        result = await self.run(*args, serial=serial)
        if result.returncode != 0:
            raise BridgeCommandError(list(args), result.returncode, result.stderr.strip())
        return result

    async def devices(self) -> str:
        return (await self.run("devices", "-l")).stdout

    async def get_prop(self, serial: str, prop: str) -> str:
        return (await self.run("shell", "getprop", prop, serial=serial)).stdout.strip()

    async def forward(self, serial: str, local_port: int, remote_port: int) -> None:
        await self.run_or_raise("forward", f"tcp:{local_port}", f"tcp:{remote_port}", serial=serial)

    async def forward_remove(self, serial: str, local_port: int) -> bool:
        result = await self.run("forward", "--remove", f"tcp:{local_port}", serial=serial)
        return result.returncode == 0

    async def content_query(self, serial: str, uri: str) -> AdbResult:
        return await self.run("shell", "content", "query", "--uri", uri, serial=serial)


def parse_properties(text: str) -> dict[str, str]:
    """
    Parse the ``key:value key:value`` tail of an ``adb devices -l`` line.

    Each value runs from its ``key:`` marker to the last space before the
    next marker.
    """
    props: dict[str, str] = {}
    start = 0
    colon = text.find(":")
    while colon >= 0:
        nxt = text.find(":", colon + 1)
        space = text.rfind(" ", colon + 1, nxt) if nxt != -1 else -1
        # a colon with no space before it belongs to the current value
        while nxt != -1 and space == -1:
            nxt = text.find(":", nxt + 1)
            space = text.rfind(" ", colon + 1, nxt) if nxt != -1 else -1
        key = text[start:colon].strip()
        if nxt == -1:
            props[key] = text[colon + 1:].strip()
            break
        props[key] = text[colon + 1:space]
        start = space + 1
        colon = nxt
    return props


def parse_device_line(line: str) -> DeviceDescriptor | None:
    matched = DEVICE_LINE.match(line.strip())
    if not matched:
        return None
    props = parse_properties(matched.group(2))
    props.pop("id", None)
    props.pop("name", None)
    return DeviceDescriptor(id=matched.group(1), **props)


class AdbConnectionEstablisher:
    """Enumerates adb devices and opens sessions to them through port forwards."""

    def __init__(
        self,
        manager: "SessionManager",
        bridge: AdbBridge,
        handshake_timeout: float = ADB_HANDSHAKE_TIMEOUT,
    ) -> None:
        self._manager = manager
        self._bridge = bridge
        self._handshake_timeout = handshake_timeout

    async def enumerate(self) -> dict[str, DeviceDescriptor]:
        """Return connected adb devices keyed by display name."""
        notifier = self._manager.notifier
        try:
            output = await self._bridge.devices()
        except BridgeToolUnavailable as e:
            logger.warning(f"{e}")
            await notifier.error(
                "ADB may not be installed or configured correctly",
                detail="See how to configure ADB",
                link=ADB_HELP_URL,
            )
            return {}

        devices: dict[str, DeviceDescriptor] = {}
        for line in output.splitlines():
            descriptor = parse_device_line(line)
            if descriptor is None:
                continue
            brand = await self._bridge.get_prop(descriptor.id, "ro.product.brand")
            if brand:
                descriptor.brand = brand
            descriptor.name = f"{descriptor.brand} {descriptor.model} ({descriptor.id})"
            devices[descriptor.name] = descriptor

        logger.debug(f"ADB devices: {list(devices)}")
        return devices

    async def connect_by_name(self, name: str) -> AdbConnectResult:
        devices = await self.enumerate()
        if not devices:
            await self._manager.notifier.error("No devices found over ADB")
            return AdbConnectResult(outcome=ConnectOutcome.FAILED, error_message="No devices found over ADB")
        descriptor = devices.get(name)
        if descriptor is None:
            return AdbConnectResult(outcome=ConnectOutcome.CANCELLED)
        return await self.connect(descriptor)

    async def connect(self, descriptor: DeviceDescriptor) -> AdbConnectResult:
        manager = self._manager
        logger.debug(f"adb device id: {descriptor.id}")

        # Sequential: the second lease must see the first one.
        try:
            client_port = await manager.ports.lease()
            bridge_port = await manager.ports.lease()
        except NoAvailablePorts as e:
            await manager.notifier.error(str(e))
            return AdbConnectResult(outcome=ConnectOutcome.FAILED, error_message=str(e))
        attempt = ConnectionAttempt(
            kind=ConnectionKind.ADB,
            target=descriptor.id,
            ports=AttemptPorts(client=client_port, adb_server=bridge_port),
        )

        try:
            for src, dst in ((client_port, DEFAULT_CLIENT_PORT), (bridge_port, DEFAULT_ADB_SERVER_PORT)):
                logger.debug(f"Forwarding tcp:{src} -> tcp:{dst}")
                try:
                    await self._bridge.forward(descriptor.id, src, dst)
                except BridgeCommandError as e:
                    raise ForwardSetupFailed(str(e)) from e
                manager.forwards.append((descriptor.id, src))
        except (ForwardSetupFailed, BridgeToolUnavailable) as e:
            await manager.notifier.error(str(e))
            return AdbConnectResult(outcome=ConnectOutcome.FAILED, attempt=attempt, error_message=str(e))

        loop = asyncio.get_running_loop()
        diagnostics: list[asyncio.Task] = []

        def on_timeout() -> None:
            logger.info(f"No session with {descriptor.name} after "
                        f"{self._handshake_timeout}s, querying debug server")
            diagnostics.append(asyncio.ensure_future(self.diagnose(descriptor)))

        timer = loop.call_later(self._handshake_timeout, on_timeout)
        try:
            await manager.registry.connect_to(
                IP_LOOPBACK, client_port, SessionType.SERVER_ADB, descriptor.id
            )
        except OSError as e:
            timer.cancel()
            logger.warning(f"ADB session to {descriptor.name} failed: {e}")
            if not diagnostics:
                diagnostics.append(asyncio.ensure_future(self.diagnose(descriptor)))
            return AdbConnectResult(outcome=ConnectOutcome.FAILED, attempt=attempt, error_message=str(e))
        else:
            timer.cancel()
            return AdbConnectResult(outcome=ConnectOutcome.CONNECTED, attempt=attempt)
        finally:
            if diagnostics:
                await asyncio.gather(*diagnostics)

    async def diagnose(self, descriptor: DeviceDescriptor) -> None:
        """Query the device's debug-server provider and warn when it is not ready."""
        try:
            result = await self._bridge.content_query(descriptor.id, DEBUG_SERVER_URI)
        except BridgeToolUnavailable as e:
            logger.warning(f"Debug server query failed: {e}")
            return

        logger.debug(f"Query result: stdout = {result.stdout!r}, stderr = {result.stderr!r}")

        if PROVIDER_NOT_FOUND_MARKER in result.stdout + result.stderr:
            await self._manager.notifier.warning(SERVER_MODE_HINT)
            return

        matched = STATE_TOKEN.search(result.stdout)
        if matched is None or int(matched.group(1)) != DEBUG_SERVER_READY_STATE:
            await self._manager.notifier.warning(SERVER_MODE_HINT)
