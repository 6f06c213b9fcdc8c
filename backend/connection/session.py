"""
Session manager: owns connection state for the lifetime of the app.

Holds the port-lease cache, the address history, the sets of devices
connected in server mode and the adb forwards created along the way, and
wires the device registry's lifecycle events to them.
"""

import logging

from connection.adb import AdbBridge, AdbConnectionEstablisher
from connection.history import AddressHistoryStore
from connection.lan import LanConnectionResolver
from connection.models import SessionType
from connection.ports import PortLeaseCache
from connection.ui import LogNotifier, Notifier, Prompter
from registry.base import Device, DeviceRegistry, LogLine

logger = logging.getLogger(__name__)


class SessionManager:
    """Process-wide connection state with an explicit init/teardown lifecycle."""

    def __init__(
        self,
        registry: DeviceRegistry,
        history: AddressHistoryStore,
        bridge: AdbBridge | None = None,
        notifier: Notifier | None = None,
        ports: PortLeaseCache | None = None,
    ) -> None:
        self.registry = registry
        self.history = history
        self.bridge = bridge or AdbBridge()
        self.notifier: Notifier = notifier or LogNotifier()
        self.ports = ports or PortLeaseCache()
        self.connected_adb: set[str] = set()
        self.connected_lan: set[str] = set()
        self.forwards: list[tuple[str, int]] = []  # (adb device id, local port)
        self._event_callbacks: list = []  # async fn(event_type, data)
        self._started = False

        self.lan = LanConnectionResolver(self)
        self.adb = AdbConnectionEstablisher(self, self.bridge)

    def on_event(self, callback) -> None:
        """Register callback: async fn(event_type: str, data: dict)."""
        self._event_callbacks.append(callback)

    async def _emit(self, event_type: str, data: dict) -> None:
        for cb in self._event_callbacks:
            try:
                await cb(event_type, data)
            except Exception as e:
                logger.error(f"Event callback error: {e}")

    async def init(self) -> None:
        """Subscribe to the device registry."""
        if self._started:
            return
        self.registry.on_new_device(self._on_new_device)
        self.registry.on_detach_device(self._on_detach_device)
        self.registry.on_log(self._on_log)
        self._started = True
        logger.info("Session manager started")

    async def teardown(self) -> None:
        """Disconnect every device and remove the adb forwards we created."""
        await self.registry.disconnect()
        for serial, port in self.forwards:
            try:
                await self.bridge.forward_remove(serial, port)
            except Exception as e:
                logger.warning(f"Failed to remove forward tcp:{port} on {serial}: {e}")
        self.forwards.clear()
        self.connected_adb.clear()
        self.connected_lan.clear()
        self.ports.reset()
        logger.info("Session manager stopped")

    async def clear_history(self, prompter: Prompter) -> int | None:
        """Empty the address history after the user confirms.  Returns the count removed."""
        if not await prompter.confirm("Clear all saved address records?"):
            return None
        total = self.history.clear()
        await self.notifier.info(f"Cleared {total} record(s)")
        return total

    async def _on_new_device(self, device: Device, session_type: SessionType) -> None:
        logger.debug(f"New device host: {device.host}")
        self.history.record_attach(device.host)

        if session_type == SessionType.SERVER_ADB and device.adb_device_id:
            self.connected_adb.add(device.adb_device_id)
        elif session_type == SessionType.SERVER_LAN:
            self.connected_lan.add(device.host)

        await self.notifier.info(f"AutoJs6 device attached: {device}")
        await self._emit("device_attached", device.model_dump(mode="json"))

    async def _on_detach_device(self, device: Device) -> None:
        if device.adb_device_id:
            self.connected_adb.discard(device.adb_device_id)
        self.connected_lan.discard(device.host)
        await self.notifier.info(f"AutoJs6 device detached: {device}")
        await self._emit("device_detached", device.model_dump(mode="json"))

    async def _on_log(self, line: LogLine) -> None:
        logging.getLogger(f"registry.device.{line.device.device_id}").info(line.log)
        await self._emit("device_log", {"device_id": line.device.device_id, "log": line.log})
