"""
Inbound command server.

Devices on the same network call ``GET /exec?cmd=<name>&path=<path>`` to
trigger an editor action.  Every other path is answered with an empty 404.
"""

import asyncio
import logging
import socket

import uvicorn
from fastapi import BackgroundTasks, FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import HTTP_SERVER_HOST, HTTP_SERVER_PORT

logger = logging.getLogger(__name__)


class CommandIngestServer:
    """Long-lived HTTP listener publishing ``ready``, ``error`` and ``exec`` events."""

    def __init__(self, host: str = HTTP_SERVER_HOST, port: int = HTTP_SERVER_PORT) -> None:
        self.host = host
        self.port = port
        self.is_started = False
        self._event_callbacks: list = []  # async fn(event_type, data)
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task | None = None
        self.app = self._build_app()

    def on_event(self, callback) -> None:
        """Register callback: async fn(event_type: str, data: dict)."""
        self._event_callbacks.append(callback)

    async def _emit(self, event_type: str, data: dict) -> None:
        for cb in self._event_callbacks:
            try:
                await cb(event_type, data)
            except Exception as e:
                logger.error(f"Event callback error: {e}", exc_info=True)

    def _build_app(self) -> FastAPI:
        app = FastAPI(title="AutoJs6 command ingest", docs_url=None, redoc_url=None, openapi_url=None)

        @app.exception_handler(StarletteHTTPException)
        async def empty_error(request: Request, exc: StarletteHTTPException):
            return Response(status_code=exc.status_code)

        @app.api_route("/exec", methods=["GET", "POST"])
        async def exec_command(
            background_tasks: BackgroundTasks,
            cmd: str | None = None,
            path: str | None = None,
        ):
            logger.debug(f"Received request for /exec: cmd={cmd!r}, path={path!r}")
            background_tasks.add_task(self._emit, "exec", {"cmd": cmd, "path": path})
            return PlainTextResponse(f"this command is:{cmd}-->{path}")

        return app

    async def start(self) -> None:
        """Bind the listener and serve in the background."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            logger.error(f"HTTP server error: {e}")
            await self._emit("error", {"error": str(e)})
            return

        self.port = sock.getsockname()[1]
        config = uvicorn.Config(self.app, log_level="warning", lifespan="off")
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[sock]))

        while not self._server.started:
            if self._serve_task.done():
                exc = self._serve_task.exception() if not self._serve_task.cancelled() else None
                logger.error(f"HTTP server error: {exc}")
                await self._emit("error", {"error": str(exc)})
                return
            await asyncio.sleep(0.05)

        self.is_started = True
        logger.info(f"Command server listening on port {self.port}")
        await self._emit("ready", {"port": self.port})

    async def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._serve_task is not None:
            await self._serve_task
        self.is_started = False
        logger.info("Command server stopped")
