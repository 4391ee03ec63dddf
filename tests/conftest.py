"""Shared fakes for the galaxybot unit tests."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Dict, List, Optional

import pytest

from galaxybot.npc.prison_bot import BotTimings
from galaxybot.utils.api_client import GalaxyEvent


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent: List[str] = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(None)

    def push(self, data: str) -> None:
        self._incoming.put_nowait(data)

    def server_close(self) -> None:
        self._incoming.put_nowait(None)

    @property
    def lines(self) -> List[str]:
        return [item.removesuffix("\r\n") for item in self.sent]

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeGalaxyClient:
    """Records commands and lets tests emit client events by hand."""

    def __init__(self, *, authenticated: bool = True) -> None:
        self.handlers: Dict[GalaxyEvent, List[Any]] = {}
        self.authenticated = authenticated
        self.connected = True
        self.prisoned: List[str] = []
        self.joined: List[str] = []
        self.connect_calls: List[Optional[str]] = []
        self.disconnect_calls = 0

    def add_event_handler(self, event_name, handler):
        self.handlers.setdefault(event_name, []).append(handler)
        return (event_name, handler)

    def remove_event_handler(self, token):
        event_name, handler = token
        handlers = self.handlers.get(event_name, [])
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    async def emit(self, event_name, payload=None):
        for handler in list(self.handlers.get(event_name, [])):
            result = handler(payload)
            if inspect.isawaitable(result):
                await result

    def is_authenticated(self) -> bool:
        return self.authenticated

    def is_connected(self) -> bool:
        return self.connected

    async def prison_user(self, user_id: str) -> bool:
        if not self.authenticated:
            return False
        self.prisoned.append(user_id)
        return True

    async def join_planet(self, name: str) -> bool:
        if not self.authenticated:
            return False
        self.joined.append(name)
        return True

    async def connect(self, recovery_code: Optional[str] = None) -> bool:
        self.connect_calls.append(recovery_code)
        self.connected = True
        await self.emit(GalaxyEvent.CONNECTED)
        self.authenticated = True
        await self.emit(GalaxyEvent.AUTHENTICATED)
        return True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if not self.connected:
            return
        self.connected = False
        self.authenticated = False
        await self.emit(GalaxyEvent.DISCONNECTED)


async def drain(rounds: int = 10) -> None:
    """Let pending zero-delay tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


FAST_TIMINGS = BotTimings(
    join_grace=3.0,
    tick_interval=0.01,
    idle_interval=0.01,
    cooldown_min=5.0,
    cooldown_max=8.0,
    reconnect_delay=0.0,
    min_interval=0.0,
    min_attack_delay=0.0,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_client() -> FakeGalaxyClient:
    return FakeGalaxyClient()


@pytest.fixture
def fake_ws() -> FakeWebSocket:
    return FakeWebSocket()
