from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from snakerooms.api.messages import Hello, NetMessage, NetModel, decode, encode

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]


class ConnState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class NetClient:
    """One socket to the room server.

    Frames sent while not connected are dropped, never buffered; a
    reconnect always starts a fresh hello handshake.
    """

    def __init__(
        self,
        url: str,
        on_message: Callable[[NetMessage], None] | None = None,
        on_open: Callable[[], None] | None = None,
        on_close: Callable[[], None] | None = None,
        connector: Connector = websockets.connect,
    ) -> None:
        self.url = url
        self.on_message = on_message
        self.on_open = on_open
        self.on_close = on_close
        self.connector = connector
        self.state = ConnState.DISCONNECTED
        self._ws: Any = None
        self._outgoing: asyncio.Queue[str] | None = None
        self._reader: asyncio.Task | None = None
        self._writer: asyncio.Task | None = None

    @property
    def connected(self) -> bool:
        return self.state == ConnState.CONNECTED

    async def connect(self, room: str, client_token: str | None = None, create: bool = False) -> bool:
        if self.state == ConnState.CONNECTING:
            return False
        await self.disconnect()
        self.state = ConnState.CONNECTING
        try:
            self._ws = await self.connector(self.url)
        except (OSError, asyncio.TimeoutError, InvalidHandshake):
            logger.warning("Could not connect to %s", self.url)
            self.state = ConnState.DISCONNECTED
            if self.on_close:
                self.on_close()
            return False
        self.state = ConnState.CONNECTED
        self._outgoing = asyncio.Queue()
        self._writer = asyncio.create_task(self._write_loop(self._ws, self._outgoing))
        self.send(Hello(type="hello", room=room, client_id=client_token, create=create))
        if self.on_open:
            self.on_open()
        self._reader = asyncio.create_task(self._read_loop(self._ws))
        return True

    def send(self, msg: NetModel) -> bool:
        if self.state != ConnState.CONNECTED or self._outgoing is None:
            return False
        self._outgoing.put_nowait(encode(msg))
        return True

    async def disconnect(self) -> None:
        ws, self._ws = self._ws, None
        for task in (self._reader, self._writer):
            if task is not None and task is not asyncio.current_task():
                task.cancel()
        self._reader = self._writer = None
        self._outgoing = None
        self.state = ConnState.DISCONNECTED
        if ws is not None:
            try:
                await ws.close()
            except Exception:
                logger.debug("Error while closing socket", exc_info=True)

    def dispatch(self, raw: str | bytes) -> None:
        msg = decode(raw)
        if msg is None:
            return
        if self.on_message:
            self.on_message(msg)

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self.dispatch(raw)
        except ConnectionClosed:
            pass
        finally:
            if self._ws is ws:
                self._ws = None
                self._outgoing = None
                self.state = ConnState.DISCONNECTED
                if self._writer is not None:
                    self._writer.cancel()
                if self.on_close:
                    self.on_close()

    async def _write_loop(self, ws: Any, outgoing: asyncio.Queue[str]) -> None:
        while True:
            frame = await outgoing.get()
            try:
                await ws.send(frame)
            except ConnectionClosed:
                return
            except Exception:
                logger.exception("Failed to send frame")
