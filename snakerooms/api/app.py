from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from snakerooms.api.relay import MessageRelay
from snakerooms.common.config import Settings, settings
from snakerooms.persist.base import Leaderboard
from snakerooms.persist.memory import MemoryLeaderboard
from snakerooms.rooms.registry import RoomRegistry
from snakerooms.rooms.rounds import RoundCoordinator

logger = logging.getLogger(__name__)

SEND_TIMEOUT = 1.0


@dataclass
class Connection:
    ws: WebSocket
    queue: asyncio.Queue[str]
    task: asyncio.Task


class ConnectionHub:
    """Per-connection outbound queues drained by one writer task each.

    Delivery never blocks the caller: a full queue drops the frame.
    """

    def __init__(self, queue_size: int = 256) -> None:
        self.queue_size = queue_size
        self.connections: Dict[str, Connection] = {}

    def register(self, conn_id: str, ws: WebSocket) -> Connection:
        queue: asyncio.Queue[str] = asyncio.Queue(maxsize=self.queue_size)
        task = asyncio.create_task(self._writer(conn_id, ws, queue))
        conn = Connection(ws=ws, queue=queue, task=task)
        self.connections[conn_id] = conn
        return conn

    async def unregister(self, conn_id: str) -> None:
        conn = self.connections.pop(conn_id, None)
        if conn is None:
            return
        conn.task.cancel()
        try:
            await conn.task
        except asyncio.CancelledError:
            pass

    def deliver(self, conn_id: str, frame: str) -> None:
        conn = self.connections.get(conn_id)
        if conn is None:
            return
        try:
            conn.queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("Outbound queue full for %s; frame dropped", conn_id)

    async def _writer(self, conn_id: str, ws: WebSocket, queue: asyncio.Queue[str]) -> None:
        while True:
            frame = await queue.get()
            try:
                await asyncio.wait_for(ws.send_text(frame), timeout=SEND_TIMEOUT)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Failed to send frame to %s", conn_id)


async def round_loop(relay: MessageRelay, interval: float) -> None:
    while True:
        relay.poll()
        await asyncio.sleep(interval)


def create_app(config: Settings = settings, leaderboard: Leaderboard | None = None) -> FastAPI:
    app = FastAPI(title="snakerooms")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    hub = ConnectionHub(config.outbox_size)
    relay = MessageRelay(
        RoomRegistry(),
        RoundCoordinator(
            countdown_seconds=config.countdown_seconds,
            round_timeout_seconds=config.round_timeout_seconds,
        ),
        hub,
        leaderboard=leaderboard if leaderboard is not None else MemoryLeaderboard(),
        max_name_length=config.max_name_length,
    )
    app.state.hub = hub
    app.state.relay = relay
    app.state.round_task = None

    if config.ws_debug:
        logging.getLogger("snakerooms").setLevel(logging.DEBUG)

    @app.on_event("startup")
    async def _startup() -> None:
        app.state.round_task = asyncio.create_task(
            round_loop(relay, config.round_poll_seconds)
        )
        logger.info("Round loop started (poll every %ss)", config.round_poll_seconds)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        task = app.state.round_task
        if task is not None:
            task.cancel()

    @app.get("/health")
    async def health() -> Dict[str, bool]:
        return {"ok": True}

    @app.get("/", response_class=PlainTextResponse)
    async def banner() -> str:
        return "snakerooms ws server"

    async def game_socket(ws: WebSocket) -> None:
        await ws.accept()
        conn_id = relay.connect()
        hub.register(conn_id, ws)
        try:
            while True:
                try:
                    frame = await ws.receive_text()
                except WebSocketDisconnect:
                    break
                except Exception:
                    logger.exception("Websocket receive failed for %s", conn_id)
                    break
                relay.handle(conn_id, frame)
        finally:
            relay.disconnect(conn_id)
            await hub.unregister(conn_id)

    app.add_api_websocket_route("/", game_socket)
    app.add_api_websocket_route("/ws", game_socket)
    return app


app = create_app()
