from __future__ import annotations

import asyncio
import logging

from snakerooms.api.messages import Error, NetMessage, Seed, Welcome
from snakerooms.client.net import Connector, NetClient
from snakerooms.client.session import VersusSession
from snakerooms.common.constants import (
    COUNTDOWN_POLL_SECONDS,
    CREATE_RETRY_ATTEMPTS,
    CREATE_RETRY_STEP_SECONDS,
    DEEP_LINK_RETRY_ATTEMPTS,
    DEEP_LINK_RETRY_STEP_SECONDS,
    PREVIEW_INTERVAL_SECONDS,
)
from snakerooms.engine.engine import tick_interval_ms

logger = logging.getLogger(__name__)


class VersusClient:
    """Async driver wiring a NetClient to a VersusSession.

    Every background loop captures the session epoch when it starts and
    stops as soon as the epoch moves on, so callbacks from a torn-down
    session never touch the current one.
    """

    def __init__(
        self,
        url: str,
        room: str,
        player_name: str | None = None,
        client_token: str | None = None,
        room_name: str | None = None,
        connector: Connector | None = None,
    ) -> None:
        kwargs = {"connector": connector} if connector is not None else {}
        self.net = NetClient(
            url,
            on_message=self._on_message,
            on_open=self._on_open,
            on_close=self._on_close,
            **kwargs,
        )
        self.session = VersusSession(
            self.net,
            room,
            player_name=player_name,
            client_token=client_token,
            room_name=room_name,
        )
        self.create = False
        self.deep_link = False
        self._got_welcome = False
        self._create_attempts = 0
        self._deep_link_attempts = 0
        self._tasks: set[asyncio.Task] = set()
        self._countdown_task: asyncio.Task | None = None

    async def join(self, create: bool = False, deep_link: bool = False) -> bool:
        self.create = create
        self.deep_link = deep_link
        self._got_welcome = False
        self._create_attempts = 0
        epoch = self.session.epoch
        # Started before connecting: a create retry reconnects without join.
        self._spawn(self._preview_loop(epoch))
        self._spawn(self._auto_restart_loop(epoch))
        return await self._connect()

    async def leave(self) -> None:
        self.session.leave()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        await self.net.disconnect()

    async def _connect(self) -> bool:
        return await self.net.connect(
            self.session.room, client_token=self.session.client_token, create=self.create
        )

    # NetClient callbacks

    def _on_open(self) -> None:
        self.session.on_open()

    def _on_close(self) -> None:
        if self.create and not self._got_welcome and self._create_attempts < CREATE_RETRY_ATTEMPTS:
            self._create_attempts += 1
            delay = CREATE_RETRY_STEP_SECONDS * self._create_attempts
            self._spawn(self._retry_after(delay, self.session.epoch))
            return
        self.session.on_close()

    def _on_message(self, msg: NetMessage) -> None:
        self.session.apply(msg)
        if isinstance(msg, Welcome):
            self._got_welcome = True
            self._deep_link_attempts = 0
        elif isinstance(msg, Error):
            self._on_join_error()
        elif isinstance(msg, Seed):
            self._ensure_countdown()

    def _on_join_error(self) -> None:
        self._spawn(self.net.disconnect())
        if not self.deep_link or self._deep_link_attempts >= DEEP_LINK_RETRY_ATTEMPTS:
            return
        self._deep_link_attempts += 1
        delay = DEEP_LINK_RETRY_STEP_SECONDS * self._deep_link_attempts
        logger.debug("Room missing; retrying deep link in %.1fs", delay)
        self._spawn(self._retry_after(delay, self.session.epoch))

    # Background loops

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _ensure_countdown(self) -> None:
        if self._countdown_task is None or self._countdown_task.done():
            self._countdown_task = self._spawn(self._countdown_loop(self.session.epoch))

    async def _retry_after(self, delay: float, epoch: int) -> None:
        await asyncio.sleep(delay)
        if self.session.is_current(epoch) and not self.net.connected:
            await self._connect()

    async def _countdown_loop(self, epoch: int) -> None:
        while self.session.is_current(epoch) and self.session.countdown_deadline is not None:
            if self.session.countdown_tick():
                self._spawn(self._game_loop(epoch))
                return
            await asyncio.sleep(COUNTDOWN_POLL_SECONDS)

    async def _game_loop(self, epoch: int) -> None:
        session = self.session
        engine = session.engine
        while session.is_current(epoch) and session.engine is engine and session.running:
            session.step()
            await asyncio.sleep(tick_interval_ms(session.apples_eaten) / 1000)

    async def _preview_loop(self, epoch: int) -> None:
        while self.session.is_current(epoch):
            await asyncio.sleep(PREVIEW_INTERVAL_SECONDS)
            if self.session.is_current(epoch) and self.net.connected:
                self.session.send_preview()

    async def _auto_restart_loop(self, epoch: int) -> None:
        while self.session.is_current(epoch):
            await asyncio.sleep(COUNTDOWN_POLL_SECONDS)
            if self.session.is_current(epoch) and self.net.connected:
                self.session.maybe_auto_restart()
