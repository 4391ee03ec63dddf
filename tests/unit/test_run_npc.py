import asyncio
import re

import pytest

from conftest import FAST_TIMINGS, FakeGalaxyClient, drain
from galaxybot.npc import run_npc
from galaxybot.npc.prison_bot import BotState
from galaxybot.npc.run_npc import BotRunner
from galaxybot.npc.settings import BotSettings
from galaxybot.utils.api_client import GalaxyEvent
from galaxybot.utils.config import ClientConfig


def make_runner(client=None, *, code="CODE", settings=None, **kwargs) -> BotRunner:
    config = ClientConfig(recovery_code=code, planet="main")
    return BotRunner(
        config,
        settings or BotSettings(timer_reconnect="0"),
        client=client or FakeGalaxyClient(authenticated=False),
        timings=FAST_TIMINGS,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_connect_requires_recovery_code():
    client = FakeGalaxyClient()
    runner = make_runner(client, code="")

    assert await runner.connect() is False
    assert client.connect_calls == []
    assert runner.lines[-1].endswith("Recovery code required")


@pytest.mark.asyncio
async def test_authentication_joins_planet_and_planet_join_arms_bot():
    client = FakeGalaxyClient(authenticated=False)
    runner = make_runner(client)

    assert await runner.connect()
    assert client.connect_calls == ["CODE"]
    assert client.joined == ["main"]
    assert runner.connected
    assert not runner.bot_armed

    await client.emit(GalaxyEvent.PLANET_JOINED, "main")
    assert runner.bot_armed
    assert runner.bot.state is BotState.ACTIVE_WAITING
    assert any("Joined planet: main" in line for line in runner.lines)

    await runner.stop()
    assert not runner.bot_armed


@pytest.mark.asyncio
async def test_no_start_keeps_bot_idle():
    client = FakeGalaxyClient(authenticated=False)
    runner = make_runner(client, auto_start=False)
    await runner.connect()
    await client.emit(GalaxyEvent.PLANET_JOINED, "main")

    assert runner.bot.state is BotState.IDLE
    assert runner.start_bot()
    assert runner.bot.state is BotState.ACTIVE_WAITING
    await runner.stop()


def test_start_bot_requires_connection():
    runner = make_runner()
    assert runner.start_bot() is False
    assert runner.lines[-1].endswith("Not connected")


@pytest.mark.asyncio
async def test_unexpected_disconnect_schedules_idle_reconnect(monkeypatch):
    monkeypatch.setattr(run_npc, "MIN_IDLE_RECONNECT", 0.0)
    client = FakeGalaxyClient(authenticated=False)
    runner = make_runner(client)
    await runner.connect()
    await client.emit(GalaxyEvent.PLANET_JOINED, "main")

    await client.disconnect()
    assert not runner.connected
    assert runner.bot.state is BotState.IDLE

    await asyncio.sleep(0.05)
    assert client.connect_calls == ["CODE", "CODE"]
    assert client.joined == ["main", "main"]
    await runner.stop()


@pytest.mark.asyncio
async def test_user_disconnect_suppresses_reconnect(monkeypatch):
    monkeypatch.setattr(run_npc, "MIN_IDLE_RECONNECT", 0.0)
    client = FakeGalaxyClient(authenticated=False)
    runner = make_runner(client)
    await runner.connect()

    await runner.disconnect()
    await asyncio.sleep(0.05)

    assert client.connect_calls == ["CODE"]


@pytest.mark.asyncio
async def test_reconnect_setting_off_suppresses_reconnect(monkeypatch):
    monkeypatch.setattr(run_npc, "MIN_IDLE_RECONNECT", 0.0)
    client = FakeGalaxyClient(authenticated=False)
    runner = make_runner(client, settings=BotSettings(reconnect=False))
    await runner.connect()

    await client.disconnect()
    await asyncio.sleep(0.05)

    assert client.connect_calls == ["CODE"]
    await runner.stop()


@pytest.mark.asyncio
async def test_idle_reconnect_waits_at_least_the_floor():
    client = FakeGalaxyClient(authenticated=False)
    runner = make_runner(client)
    await runner.connect()

    await client.disconnect()
    await asyncio.sleep(0.05)

    assert client.connect_calls == ["CODE"]
    assert runner.lines[-1].endswith("Reconnecting in 1.0s")
    await runner.stop()


@pytest.mark.asyncio
async def test_travel_updates_planet():
    client = FakeGalaxyClient(authenticated=False)
    runner = make_runner(client)
    await runner.connect()

    assert await runner.travel("moon")
    assert runner.config.planet == "moon"
    assert runner.bot.planet == "moon"
    assert client.joined[-1] == "moon"
    await runner.stop()


@pytest.mark.asyncio
async def test_log_lines_are_timestamped_and_forwarded():
    seen = []
    runner = make_runner(sink=seen.append)
    await runner.connect()

    await runner.client.emit(GalaxyEvent.LOG, "hello")

    assert re.fullmatch(r"\[\d{2}:\d{2}:\d{2}\] hello", runner.lines[-1])
    assert seen[-1] == runner.lines[-1]
    await runner.stop()


@pytest.mark.asyncio
async def test_run_returns_after_stop():
    client = FakeGalaxyClient(authenticated=False)
    runner = make_runner(client)

    task = asyncio.create_task(runner.run())
    await drain()
    assert client.connect_calls == ["CODE"]

    await runner.stop()
    await asyncio.wait_for(task, timeout=1)
    assert client.disconnect_calls == 1
