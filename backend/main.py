"""
AutoJs6 Bridge: FastAPI application entry point.

Wires the device registry, session manager and command dispatcher
together, runs the ``/exec`` command server next to the control API,
and pushes notifications to the editor UI over ``/ws``.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from api.ingest import CommandIngestServer
from api.routes import init_routes, router
from api.websocket import NotificationHub
from commands.actions import EditorActions
from commands.dispatcher import CommandDispatcher
from config import API_HOST, API_PORT, APP_NAME, HTTP_SERVER_PORT
from connection.history import AddressHistoryStore
from connection.session import SessionManager
from registry.stream import StreamDeviceRegistry

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

hub = NotificationHub()
registry = StreamDeviceRegistry()
session_manager = SessionManager(
    registry=registry,
    history=AddressHistoryStore(),
    notifier=hub,
)
dispatcher = CommandDispatcher(EditorActions(registry, hub), hub)
ingest_server = CommandIngestServer()


async def on_ingest_event(event: str, data: dict) -> None:
    if event == "ready":
        logger.info(f"Command server listening on port {data['port']}")
    elif event == "error":
        # The bridge stays usable without /exec; the editor UI is told why.
        await hub.error(
            f"Unable to start the command server on port {HTTP_SERVER_PORT}",
            detail=str(data.get("error")),
        )
    else:
        await dispatcher.handle_exec(event, data)


@asynccontextmanager
async def lifespan(app: FastAPI):
    session_manager.on_event(hub.handle_event)
    ingest_server.on_event(on_ingest_event)

    await session_manager.init()
    await ingest_server.start()
    logger.info(f"{APP_NAME} control API on {API_HOST}:{API_PORT}")

    try:
        yield
    finally:
        await ingest_server.stop()
        await session_manager.teardown()
        logger.info(f"{APP_NAME} stopped")


app = FastAPI(title=APP_NAME, version="1.0.0", lifespan=lifespan)

init_routes(session_manager, dispatcher)
app.include_router(router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await hub.connect(websocket)
    try:
        # The UI only listens; incoming text is drained and ignored.
        async for _ in websocket.iter_text():
            pass
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(websocket)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT, log_level="info")
