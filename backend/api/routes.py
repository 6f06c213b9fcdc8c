"""REST API routes for driving connections from the editor UI."""

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from commands.dispatcher import CommandDispatcher
from connection.errors import UnknownCommand
from connection.session import SessionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# These will be injected by main.py at startup
_session_manager: SessionManager | None = None
_dispatcher: CommandDispatcher | None = None


def init_routes(session_manager: SessionManager, dispatcher: CommandDispatcher) -> None:
    """Inject service dependencies into the routes module."""
    global _session_manager, _dispatcher
    _session_manager = session_manager
    _dispatcher = dispatcher


# --- Devices ---

@router.get("/devices")
async def list_devices():
    """Return devices with an open session."""
    devices = _session_manager.registry.devices
    return {"devices": [d.model_dump(mode="json") for d in devices]}


@router.get("/adb/devices")
async def list_adb_devices():
    """Return devices visible to the adb server, keyed by display name."""
    devices = await _session_manager.adb.enumerate()
    return {"devices": [d.model_dump() for d in devices.values()]}


# --- Connections ---

class AdbConnectBody(BaseModel):
    name: str


class LanConnectBody(BaseModel):
    address: str
    selected: str | None = None


@router.post("/connect/adb")
async def connect_adb(body: AdbConnectBody):
    result = await _session_manager.adb.connect_by_name(body.name)
    return result.model_dump(mode="json")


@router.post("/connect/lan")
async def connect_lan(body: LanConnectBody):
    """
    Connect to a typed address, or to the history record picked while
    ``address`` was typed.  An ambiguous pick returns both candidates;
    the UI posts the chosen one back as ``address``.
    """
    result = await _session_manager.lan.connect(body.address, body.selected)
    return result.model_dump(mode="json")


@router.post("/disconnect")
async def disconnect_all():
    await _dispatcher.dispatch("disconnectAll")
    return {"status": "disconnected"}


# --- Address history ---

class HistoryBody(BaseModel):
    addresses: list[str]


@router.get("/history")
async def get_history():
    records = _session_manager.history.records()
    return {
        "records": [
            {"ip": r.ip, "label": r.label, "detail": r.detail, "last_seen_at": r.last_seen_at}
            for r in records
        ]
    }


@router.put("/history")
async def replace_history(body: HistoryBody):
    _session_manager.history.replace(body.addresses)
    return {"status": "updated"}


class _RequestConfirmation:
    """Prompter answering from the ``confirm`` query flag the UI already asked for."""

    def __init__(self, confirmed: bool) -> None:
        self._confirmed = confirmed

    async def choose(self, title: str, placeholder: str, options: list[str]) -> str | None:
        return None

    async def confirm(self, question: str) -> bool:
        return self._confirmed


@router.delete("/history")
async def clear_history(confirm: bool = False):
    total = await _session_manager.clear_history(_RequestConfirmation(confirm))
    if total is None:
        raise HTTPException(status_code=400, detail="Confirmation required")
    return {"cleared": total}


# --- Commands ---

class CommandBody(BaseModel):
    path: str | None = None


@router.post("/commands/{cmd}")
async def run_command(cmd: str, body: CommandBody | None = None):
    try:
        _dispatcher.parse(cmd)
    except UnknownCommand as e:
        raise HTTPException(status_code=404, detail=str(e))
    path = body.path if body else None
    await _dispatcher.dispatch(cmd, *((path,) if path is not None else ()))
    return {"status": "executed", "cmd": cmd}
