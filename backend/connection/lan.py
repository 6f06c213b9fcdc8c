"""
LAN connections to a device running in server mode.

The address typed by the user (or picked from the history list) is
validated, stripped of any display prefix and connected to on the default
client port.  A typed address that is a strict substring of the picked
record is ambiguous and has to be settled with one more choice.
"""

import logging
import re
from typing import Awaitable, Callable

from config import DEFAULT_CLIENT_PORT, OPTIONAL_PREFIX, RECORD_PREFIX
from connection.errors import AmbiguousAddress, InvalidAddress
from connection.models import (
    ConnectOutcome,
    LanConnectResult,
    SessionType,
    ValidatedAddress,
)

logger = logging.getLogger(__name__)

_OCTET = r"(?:25[0-5]|2[0-4]\d|[01]?\d?\d)"
ADDRESS_PATTERN = re.compile(rf"^(?:{_OCTET}\.){{3}}{_OCTET}(?::(\d+))?$")

Chooser = Callable[[str, str, list[str]], Awaitable[str | None]]


def strip_display_prefix(label: str) -> str:
    label = label.strip()
    for prefix in (RECORD_PREFIX, OPTIONAL_PREFIX):
        if label.startswith(prefix):
            return label[len(prefix):].strip()
    return label


def is_address(text: str) -> bool:
    return ADDRESS_PATTERN.match(text) is not None


def find_ambiguity(typed: str, selected: str) -> list[str] | None:
    """Return the two competing labels when ``typed`` only partially matches ``selected``."""
    typed = typed.strip()
    pure = strip_display_prefix(selected)
    if typed and is_address(typed) and typed in pure and pure != typed:
        return [f"{OPTIONAL_PREFIX}{typed}", selected]
    return None


class LanConnectionResolver:
    """Validates LAN addresses and opens server-over-LAN sessions."""

    def __init__(self, manager: "SessionManager", port: int = DEFAULT_CLIENT_PORT) -> None:
        self._manager = manager
        self._port = port

    def resolve(self, text: str) -> ValidatedAddress:
        host = strip_display_prefix(text)
        matched = ADDRESS_PATTERN.match(host)
        if matched is None:
            raise InvalidAddress(text)

        ignored = None
        port_input = matched.group(1)
        if port_input is not None:
            host = host.split(":", 1)[0]
            if port_input != str(self._port):
                ignored = port_input
        return ValidatedAddress(host=host, port=self._port, ignored_port=ignored)

    async def connect(
        self,
        typed: str,
        selected: str | None = None,
        chooser: Chooser | None = None,
    ) -> LanConnectResult:
        """
        Connect to the address the user typed, or to the record they picked
        while ``typed`` was in the input box.
        """
        notifier = self._manager.notifier

        if selected is not None:
            try:
                self._check_ambiguity(typed, selected)
            except AmbiguousAddress as e:
                if chooser is None:
                    return LanConnectResult(
                        outcome=ConnectOutcome.NEEDS_DISAMBIGUATION, candidates=e.candidates
                    )
                choice = await chooser(
                    "IP address is ambiguous, please confirm",
                    "Select an IP address and press Enter to connect",
                    e.candidates,
                )
                if choice is None:
                    return LanConnectResult(outcome=ConnectOutcome.CANCELLED)
                return await self.connect(choice)

        target = selected if selected is not None else typed
        try:
            address = self.resolve(target)
        except InvalidAddress as e:
            await notifier.error(f"Failed to connect to the AutoJs6 server: {e}")
            return LanConnectResult(outcome=ConnectOutcome.INVALID, error_message=str(e))

        if address.ignored_port is not None:
            await notifier.warning(
                f"Port {address.ignored_port} has been ignored, using {address.port}"
            )

        await notifier.info(f"Connecting to the AutoJs6 server ({address.host})...")
        try:
            await self._manager.registry.connect_to(
                address.host, address.port, SessionType.SERVER_LAN
            )
        except OSError as e:
            logger.debug(f"LAN connect to {address.host}:{address.port} failed: {e!r}")
            await notifier.error(
                f"Unable to connect to the AutoJs6 server ({address.host})",
                detail=self.diagnostics(address.port),
            )
            return LanConnectResult(
                outcome=ConnectOutcome.FAILED, address=address, error_message=str(e)
            )

        return LanConnectResult(outcome=ConnectOutcome.CONNECTED, address=address)

    @staticmethod
    def _check_ambiguity(typed: str, selected: str) -> None:
        candidates = find_ambiguity(typed, selected)
        if candidates is not None:
            raise AmbiguousAddress(candidates)

    @staticmethod
    def diagnostics(port: int) -> str:
        checks = [
            'Check that "Server mode" is switched on in the AutoJs6 side menu',
            "Check that both devices are on the same local network",
            f"Check that the firewall on this machine allows traffic on port {port}",
            "Try another way of connecting, such as ADB",
        ]
        return "\n".join(f"- {check}" for check in checks)
