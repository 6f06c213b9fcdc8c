import asyncio
import json

from fastapi import FastAPI, WebSocket
from fastapi.testclient import TestClient

from api.websocket import NotificationHub


class FakeSocket:
    def __init__(self, broken: bool = False) -> None:
        self.sent: list[dict] = []
        self.broken = broken

    async def accept(self):
        pass

    async def send_text(self, text):
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(text))


def test_notifications_and_events_reach_clients():
    hub = NotificationHub()
    ws = FakeSocket()

    async def scenario():
        await hub.connect(ws)
        await hub.warning("Port 5555 has been ignored, using 6347")
        await hub.handle_event("device_log", {"device_id": "d1", "log": "hi"})

    asyncio.run(scenario())
    assert ws.sent == [
        {
            "event": "notification",
            "data": {
                "type": "warning",
                "message": "Port 5555 has been ignored, using 6347",
                "detail": None,
                "link": None,
            },
        },
        {"event": "device_log", "data": {"device_id": "d1", "log": "hi"}},
    ]


def test_failing_client_is_dropped():
    hub = NotificationHub()
    good, bad = FakeSocket(), FakeSocket(broken=True)

    async def scenario():
        await hub.connect(good)
        await hub.connect(bad)
        await hub.info("first")
        await hub.info("second")

    asyncio.run(scenario())
    assert [m["data"]["message"] for m in good.sent] == ["first", "second"]


def test_late_client_receives_recent_notifications_only():
    hub = NotificationHub(backlog=2)

    async def before_ui():
        await hub.info("one")
        await hub.handle_event("device_attached", {"device_id": "d1"})
        await hub.info("two")
        await hub.error("Unable to start the command server", detail="in use", link="https://example.org")

    asyncio.run(before_ui())

    app = FastAPI()

    @app.websocket("/ws")
    async def endpoint(websocket: WebSocket):
        await hub.connect(websocket)
        try:
            async for _ in websocket.iter_text():
                pass
        finally:
            await hub.disconnect(websocket)

    with TestClient(app).websocket_connect("/ws") as ws:
        assert ws.receive_json()["data"]["message"] == "two"
        last = ws.receive_json()
    assert last == {
        "event": "notification",
        "data": {
            "type": "error",
            "message": "Unable to start the command server",
            "detail": "in use",
            "link": "https://example.org",
        },
    }
