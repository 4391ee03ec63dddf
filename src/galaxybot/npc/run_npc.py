"""Headless controller that plays the role of the bot's UI."""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Optional

from loguru import logger

from galaxybot.npc.prison_bot import BotState, BotTimings, PrisonBot
from galaxybot.npc.settings import BotSettings, FilterLists
from galaxybot.utils.api_client import AsyncGalaxyClient, GalaxyEvent
from galaxybot.utils.config import ClientConfig

MIN_IDLE_RECONNECT = 1.0
LOG_HISTORY = 500


class BotRunner:
    """Owns one client and one PrisonBot.

    Joins the configured planet after authentication, arms the bot once the
    planet is joined, timestamps log lines for display, and reconnects after an
    unexpected disconnect when the ``reconnect`` setting allows it. The
    engine's own fast reconnect cycle is left alone.
    """

    def __init__(
        self,
        config: ClientConfig,
        settings: Optional[BotSettings] = None,
        filters: Optional[FilterLists] = None,
        *,
        auto_start: bool = True,
        client: Optional[AsyncGalaxyClient] = None,
        timings: Optional[BotTimings] = None,
        sink: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self.config = config
        self.auto_start = auto_start
        self.client = client or AsyncGalaxyClient(
            config.ws_url, token_strategy=config.token_strategy
        )
        self.bot = PrisonBot(
            self.client,
            settings,
            filters,
            timings=timings,
            log_callback=self.add_log,
            armed_callback=self._on_armed_changed,
        )
        self.bot.set_planet(config.planet)
        self.connected = False
        self.bot_armed = False
        self.lines: Deque[str] = deque(maxlen=LOG_HISTORY)
        self._sink = sink
        self._stopping = False
        self._idle_reconnect: Optional[asyncio.Task] = None
        self._finished = asyncio.Event()
        self._wired = False

    def add_log(self, message: str) -> None:
        stamped = f"[{datetime.now().strftime('%H:%M:%S')}] {message}"
        self.lines.append(stamped)
        if self._sink is not None:
            self._sink(stamped)

    def _wire(self) -> None:
        if self._wired:
            return
        self._wired = True
        self.bot.attach()
        self.client.add_event_handler(GalaxyEvent.LOG, self.add_log)
        self.client.add_event_handler(GalaxyEvent.CONNECTED, self._on_connected)
        self.client.add_event_handler(GalaxyEvent.DISCONNECTED, self._on_disconnected)
        self.client.add_event_handler(GalaxyEvent.AUTHENTICATED, self._on_authenticated)
        self.client.add_event_handler(GalaxyEvent.PLANET_JOINED, self._on_planet_joined)

    # Commands

    async def connect(self) -> bool:
        self._wire()
        self._stopping = False
        if not self.config.recovery_code:
            self.add_log("Recovery code required")
            return False
        return await self.client.connect(self.config.recovery_code)

    async def disconnect(self) -> None:
        """User-initiated disconnect; suppresses the idle reconnect."""
        self._stopping = True
        self._cancel_idle_reconnect()
        self.bot.stop()
        await self.client.disconnect()

    def start_bot(self) -> bool:
        if not self.connected:
            self.add_log("Not connected")
            return False
        return self.bot.start()

    async def travel(self, planet: str) -> bool:
        self.config.planet = planet
        self.bot.set_planet(planet)
        return await self.client.join_planet(planet)

    async def run(self) -> None:
        """Connect and keep running until ``stop()`` is called."""
        await self.connect()
        await self._finished.wait()

    async def stop(self) -> None:
        await self.disconnect()
        self.bot.close()
        self._finished.set()

    # Client events

    def _on_connected(self, _payload: Any = None) -> None:
        self.connected = True

    async def _on_authenticated(self, _payload: Any = None) -> None:
        # After its own reconnect cycle the bot re-joins the planet itself.
        if self.bot.armed or not self.config.planet:
            return
        await self.client.join_planet(self.config.planet)

    def _on_planet_joined(self, planet: Optional[str] = None) -> None:
        self.add_log(f"Joined planet: {planet or self.config.planet}")
        if self.auto_start and not self.bot.armed:
            self.bot.start()

    def _on_disconnected(self, _payload: Any = None) -> None:
        self.connected = False
        if self._stopping or self.bot.state is BotState.RECONNECTING:
            return
        settings = self.bot.settings
        if not settings.reconnect or settings.prison_and_off:
            return
        delay = max(MIN_IDLE_RECONNECT, settings.reconnect_interval)
        self._cancel_idle_reconnect()
        self._idle_reconnect = asyncio.create_task(self._reconnect_later(delay))

    def _on_armed_changed(self, armed: bool) -> None:
        self.bot_armed = armed

    async def _reconnect_later(self, delay: float) -> None:
        self.add_log(f"Reconnecting in {delay:.1f}s")
        await asyncio.sleep(delay)
        if self._stopping or self.connected:
            return
        logger.debug("Idle reconnect after {:.1f}s", delay)
        await self.client.connect(self.config.recovery_code)

    def _cancel_idle_reconnect(self) -> None:
        task = self._idle_reconnect
        self._idle_reconnect = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
