"""Pydantic models for connection attempts and address history."""

from datetime import datetime
from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict

from config import RECORD_PREFIX


class SessionType(IntEnum):
    """How a device session was established."""
    CLIENT_LAN = 0  # device connected to us over the LAN
    SERVER_LAN = 1  # we connected to the device's server over the LAN
    SERVER_ADB = 2  # we connected to the device's server through an adb forward


class ConnectionKind(str, Enum):
    LAN = "lan"
    ADB = "adb"


class AddressRecord(BaseModel):
    """A previously seen LAN address, persisted as ``ip|timestampMillis``."""
    ip: str
    last_seen_at: int | None = None  # milliseconds since the epoch

    @classmethod
    def parse(cls, raw: str) -> "AddressRecord":
        ip, _, ts = raw.partition("|")
        if ip.startswith(RECORD_PREFIX):
            ip = ip[len(RECORD_PREFIX):]
        return cls(ip=ip, last_seen_at=int(ts) if ts.isdigit() else None)

    def serialize(self) -> str:
        if self.last_seen_at is None:
            return self.ip
        return f"{self.ip}|{self.last_seen_at}"

    @property
    def label(self) -> str:
        return f"{RECORD_PREFIX}{self.ip}"

    @property
    def detail(self) -> str | None:
        if self.last_seen_at is None:
            return None
        try:
            seen = datetime.fromtimestamp(self.last_seen_at / 1000)
        except (OverflowError, OSError, ValueError):
            return None
        return f"Last connected: {seen:%Y/%m/%d %H:%M:%S}"


class DeviceDescriptor(BaseModel):
    """A device visible to the adb server.

    Extra ``key:value`` properties reported by ``adb devices -l``
    (product, device, transport_id, ...) are kept as extra fields.
    """
    model_config = ConfigDict(extra="allow")

    id: str
    brand: str = "Unknown"
    model: str = "Unknown"
    name: str = "NoName"

    @property
    def product(self) -> str | None:
        return (self.model_extra or {}).get("product")


class AttemptPorts(BaseModel):
    client: int
    adb_server: int | None = None


class ConnectionAttempt(BaseModel):
    """A single connection attempt; never persisted."""
    kind: ConnectionKind
    target: str  # host for LAN, adb device id for ADB
    ports: AttemptPorts


class ValidatedAddress(BaseModel):
    host: str
    port: int
    ignored_port: str | None = None


class ConnectOutcome(str, Enum):
    CONNECTED = "connected"
    CANCELLED = "cancelled"
    NEEDS_DISAMBIGUATION = "needs_disambiguation"
    INVALID = "invalid"
    FAILED = "failed"


class LanConnectResult(BaseModel):
    outcome: ConnectOutcome
    address: ValidatedAddress | None = None
    candidates: list[str] = []
    error_message: str | None = None


class AdbConnectResult(BaseModel):
    outcome: ConnectOutcome
    attempt: ConnectionAttempt | None = None
    error_message: str | None = None
