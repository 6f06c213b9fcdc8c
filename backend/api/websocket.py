"""WebSocket hub: pushes notifications and device events to the editor UI."""

import asyncio
import logging
from collections import deque

from fastapi import WebSocket
from pydantic import BaseModel

logger = logging.getLogger(__name__)

BACKLOG_SIZE = 20


class Notification(BaseModel):
    type: str  # info | warning | error
    message: str
    detail: str | None = None
    link: str | None = None


class HubMessage(BaseModel):
    event: str
    data: dict


class NotificationHub:
    """
    Fans events out to every connected UI client and implements Notifier.

    The most recent notifications are kept and replayed to a client when it
    connects, so errors raised during startup still reach the editor.
    """

    def __init__(self, backlog: int = BACKLOG_SIZE) -> None:
        self._clients: list[WebSocket] = []
        self._lock = asyncio.Lock()
        self._backlog: deque[str] = deque(maxlen=backlog)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            for text in self._backlog:
                await websocket.send_text(text)
            self._clients.append(websocket)
        logger.info(f"UI attached ({len(self._clients)} open, {len(self._backlog)} replayed)")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            if websocket in self._clients:
                self._clients.remove(websocket)
        logger.info(f"UI detached ({len(self._clients)} open)")

    async def broadcast(self, event: str, payload: BaseModel | dict) -> str:
        """Send ``payload`` as ``{"event", "data"}`` to every client; returns the frame."""
        data = payload.model_dump(mode="json") if isinstance(payload, BaseModel) else payload
        text = HubMessage(event=event, data=data).model_dump_json()
        async with self._lock:
            for ws in list(self._clients):
                try:
                    await ws.send_text(text)
                except Exception as e:
                    logger.debug(f"Dropping UI client: {e!r}")
                    self._clients.remove(ws)
        return text

    async def handle_event(self, event_type: str, data: dict) -> None:
        """SessionManager.on_event() callback."""
        await self.broadcast(event_type, data)

    async def _notify(self, notification: Notification) -> None:
        logger.log(logging.getLevelName(notification.type.upper()), notification.message)
        self._backlog.append(await self.broadcast("notification", notification))

    async def info(self, message: str, detail: str | None = None) -> None:
        await self._notify(Notification(type="info", message=message, detail=detail))

    async def warning(self, message: str, detail: str | None = None) -> None:
        await self._notify(Notification(type="warning", message=message, detail=detail))

    async def error(self, message: str, detail: str | None = None, link: str | None = None) -> None:
        await self._notify(Notification(type="error", message=message, detail=detail, link=link))
