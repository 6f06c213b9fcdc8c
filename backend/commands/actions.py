"""Editor actions that can be triggered by name."""

import logging
import os

from config import DOCS_URL
from connection.errors import NoDeviceConnected
from connection.ui import Notifier
from registry.base import Device, DeviceRegistry

logger = logging.getLogger(__name__)


class EditorActions:
    """Actions sent to connected devices.  ``path`` identifies the script or project."""

    def __init__(self, registry: DeviceRegistry, notifier: Notifier) -> None:
        self._registry = registry
        self._notifier = notifier

    def _require_devices(self, devices: list[Device] | None = None) -> list[Device]:
        targets = self._registry.devices if devices is None else devices
        if not targets:
            raise NoDeviceConnected()
        return targets

    async def _send(self, name: str, payload: dict | None = None, devices: list[Device] | None = None) -> None:
        try:
            targets = self._require_devices(devices)
        except NoDeviceConnected as e:
            await self._notifier.error(str(e))
            return
        sent = await self._registry.send_command(name, payload, targets)
        logger.info(f"Sent '{name}' to {sent} device(s)")

    @staticmethod
    def _script_payload(path: str | None) -> dict:
        if not path:
            return {}
        return {"id": path, "name": os.path.basename(path.rstrip("/\\"))}

    async def view_document(self) -> None:
        await self._notifier.info("AutoJs6 documentation", detail=DOCS_URL)

    async def disconnect_all(self) -> None:
        await self._registry.disconnect()
        await self._notifier.info("All AutoJs6 connections closed")

    async def run(self, path: str | None = None) -> None:
        await self._send("run", self._script_payload(path))

    async def run_without_arguments(self) -> None:
        await self.run(None)

    async def run_on_device(self, path: str | None = None, devices: list[Device] | None = None) -> None:
        await self._send("run", self._script_payload(path), devices)

    async def stop(self, path: str | None = None) -> None:
        await self._send("stop", {"id": path} if path else {})

    async def stop_all(self) -> None:
        await self._send("stopAll")

    async def rerun(self, path: str | None = None) -> None:
        await self.stop(path)
        await self.run(path)

    async def save(self, path: str | None = None) -> None:
        await self._send("save", self._script_payload(path))

    async def save_to_device(self, path: str | None = None, devices: list[Device] | None = None) -> None:
        await self._send("save", self._script_payload(path), devices)

    async def run_project(self, path: str | None = None) -> None:
        await self._send("run_project", self._script_payload(path))

    async def save_project(self, path: str | None = None) -> None:
        await self._send("save_project", self._script_payload(path))
