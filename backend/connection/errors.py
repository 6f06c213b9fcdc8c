"""Recoverable connection errors, surfaced to the user as notifications."""


class BridgeError(Exception):
    """Base class for all recoverable connection errors."""


class PortLocked(BridgeError):
    """An explicit port candidate is still held by the lease cache."""

    def __init__(self, port: int) -> None:
        super().__init__(f"{port} is locked")
        self.port = port


class NoAvailablePorts(BridgeError):
    def __init__(self) -> None:
        super().__init__("No available ports found")


class BridgeToolUnavailable(BridgeError):
    """The adb executable could not be spawned at all."""


class BridgeCommandError(BridgeError):
    """adb ran but exited with a non-zero status."""

    def __init__(self, args: list[str], returncode: int, output: str) -> None:
        super().__init__(output or f"adb {' '.join(args)} exited with {returncode}")
        self.returncode = returncode
        self.output = output


class ForwardSetupFailed(BridgeError):
    pass


class ConnectionTimeout(BridgeError, ConnectionError):
    """A session did not come up in time."""


class InvalidAddress(BridgeError):
    def __init__(self, text: str) -> None:
        super().__init__(f"Unable to parse address {text}")
        self.text = text


class AmbiguousAddress(BridgeError):
    def __init__(self, candidates: list[str]) -> None:
        super().__init__("IP address is ambiguous")
        self.candidates = candidates


class NoDeviceConnected(BridgeError):
    def __init__(self) -> None:
        super().__init__("No connected devices found")


class UnknownCommand(BridgeError):
    def __init__(self, cmd: str | None) -> None:
        super().__init__(f'Received unknown command "{cmd}"')
        self.cmd = cmd
