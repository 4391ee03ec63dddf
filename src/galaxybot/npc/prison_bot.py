"""Prison bot decision engine built on top of AsyncGalaxyClient."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from loguru import logger

from galaxybot.npc.enemy_tracker import EnemyTracker
from galaxybot.npc.roster import RosterTracker
from galaxybot.npc.scheduler import ActionScheduler
from galaxybot.npc.settings import BotSettings, FilterLists, compute_interval, should_target
from galaxybot.utils.api_client import AsyncGalaxyClient, GalaxyEvent, HandlerToken
from galaxybot.utils.protocol import Participant

AGGRESSION_MIN = 0.7
AGGRESSION_MAX = 1.4
AGGRESSION_STEP = 0.1

ACTION_KINDS = ("attack", "defense")


class BotState(str, Enum):
    IDLE = "idle"
    ACTIVE_WAITING = "active_waiting"
    ACTING = "acting"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class BotTimings:
    """Pacing constants, in seconds."""

    join_grace: float = 3.0
    tick_interval: float = 0.25
    idle_interval: float = 0.5
    cooldown_min: float = 5.0
    cooldown_max: float = 8.0
    reconnect_delay: float = 0.12
    min_interval: float = 0.4
    min_attack_delay: float = 0.6
    fast_gap: float = 2.5
    slow_gap: float = 6.0


class PrisonBot:
    """Chooses targets and paces prison actions for one client.

    All state lives on the event loop that drives the client: protocol events
    and timer callbacks run one at a time, so plain flags are enough. At most
    one timer (tick, attack, defense or reconnect) is pending at any moment.
    """

    def __init__(
        self,
        client: AsyncGalaxyClient,
        settings: Optional[BotSettings] = None,
        filters: Optional[FilterLists] = None,
        *,
        timings: Optional[BotTimings] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
        log_callback: Optional[Callable[[str], Any]] = None,
        armed_callback: Optional[Callable[[bool], Any]] = None,
    ) -> None:
        self.client = client
        self._settings = settings or BotSettings()
        self._filters = filters or FilterLists()
        self.timings = timings or BotTimings()
        self._clock = clock
        self._rng = rng or random.Random()
        self._log_callback = log_callback
        self._armed_callback = armed_callback

        self.roster = RosterTracker(clock=clock)
        self.enemies = EnemyTracker(clock=clock)
        self.scheduler = ActionScheduler()
        self._handler_tokens: List[HandlerToken] = []

        self._state = BotState.IDLE
        self._in_flight = False
        self._pending_target: Optional[str] = None
        self._join_ready_at = 0.0
        self._cooldown_until = 0.0
        self._aggression = 1.0
        self._last_settled_at: Optional[float] = None
        self._planet: Optional[str] = None
        self._targets_dirty = False
        self._rejoin_pending = False
        self._sent_cycle: Optional[int] = None

    async def __aenter__(self) -> "PrisonBot":
        self.attach()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def attach(self) -> None:
        """Subscribe to client events if not already subscribed."""

        if self._handler_tokens:
            return
        wiring = (
            (GalaxyEvent.AUTHENTICATED, self._on_authenticated),
            (GalaxyEvent.PLANET_JOINED, self._on_planet_joined),
            (GalaxyEvent.USER_JOIN, self._on_user_join),
            (GalaxyEvent.USER_PART, self._on_user_part),
            (GalaxyEvent.ENEMY_ACTION, self._on_enemy_action),
            (GalaxyEvent.ACTION_SETTLED, self._on_action_settled),
            (GalaxyEvent.DISCONNECTED, self._on_disconnected),
        )
        for event, handler in wiring:
            self._handler_tokens.append(self.client.add_event_handler(event, handler))

    def close(self) -> None:
        """Stop the bot and unsubscribe from the client."""

        self.stop()
        for token in self._handler_tokens:
            self.client.remove_event_handler(token)
        self._handler_tokens.clear()

    # ------------------------------------------------------------------
    # Public inspection helpers
    # ------------------------------------------------------------------

    @property
    def state(self) -> BotState:
        return self._state

    @property
    def armed(self) -> bool:
        return self._state is not BotState.IDLE

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def aggression(self) -> float:
        return self._aggression

    @property
    def cooldown_until(self) -> float:
        return self._cooldown_until

    @property
    def join_ready_at(self) -> float:
        return self._join_ready_at

    @property
    def pending_action(self) -> Optional[str]:
        kind = self.scheduler.pending_kind
        return kind if kind in ACTION_KINDS else None

    @property
    def planet(self) -> Optional[str]:
        return self._planet

    @property
    def settings(self) -> BotSettings:
        return self._settings

    @property
    def filters(self) -> FilterLists:
        return self._filters

    def current_target(self) -> Optional[str]:
        return self.roster.current_target()

    def targets(self) -> List[str]:
        return self.roster.queue()

    def can_act(self) -> bool:
        now = self._clock()
        if self._state is not BotState.ACTIVE_WAITING:
            return False
        if self._in_flight:
            return False
        if now < self._join_ready_at:
            return False
        if now < self._cooldown_until:
            return False
        return self.client.is_authenticated()

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Arm the bot. Must be called from a running event loop.

        Returns ``False`` if it was already armed.
        """
        if self._state is not BotState.IDLE:
            return False
        self.scheduler.invalidate()
        self._in_flight = False
        self._pending_target = None
        self._set_state(BotState.ACTIVE_WAITING)
        self._arm_join_grace()
        self._refresh_targets()
        self._log("Bot armed")
        self.scheduler.arm("tick", 0.0, self._tick)
        return True

    def stop(self) -> None:
        """Cancel pending timers and return to idle."""
        self.scheduler.invalidate()
        self._in_flight = False
        self._pending_target = None
        self._rejoin_pending = False
        if self._state is not BotState.IDLE:
            self._set_state(BotState.IDLE)
            self._log("Bot stopped")

    def update_settings(self, settings: BotSettings) -> None:
        self._settings = settings
        self._mark_targets_dirty()

    def update_filters(self, filters: FilterLists) -> None:
        self._filters = filters
        self._mark_targets_dirty()

    def set_planet(self, name: Optional[str]) -> None:
        self._planet = name or None

    def should_target_user(self, nick: str, clan: str) -> bool:
        return should_target(self._settings, self._filters, nick, clan)

    def add_target(self, user_id: str, priority: int = 1) -> None:
        self.roster.add_target(user_id, priority)

    def remove_target(self, user_id: str) -> None:
        self.roster.remove_target(user_id)

    # ------------------------------------------------------------------
    # Pacing
    # ------------------------------------------------------------------

    def attack_delay(self) -> float:
        settings = self._settings
        interval = compute_interval(
            settings.attack_min,
            settings.attack_max,
            settings.attack_plus_minus,
            settings.pm_tm_a,
            self._rng,
            floor_ms=self.timings.min_interval * 1000,
        )
        return max(self.timings.min_attack_delay, interval / 1000 / self._aggression)

    def defense_delay(self) -> float:
        settings = self._settings
        interval = compute_interval(
            settings.defense_min,
            settings.defense_max,
            settings.defense_plus_minus,
            settings.pm_tm_z,
            self._rng,
            floor_ms=self.timings.min_interval * 1000,
        )
        return interval / 1000

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _tick(self) -> None:
        if self._state is not BotState.ACTIVE_WAITING:
            return
        if self._targets_dirty:
            self._refresh_targets()
        if not self.can_act():
            self.scheduler.arm("tick", self.timings.tick_interval, self._tick)
            return
        target = self.roster.current_target()
        if target is None:
            self.scheduler.arm("tick", self.timings.idle_interval, self._tick)
            return
        self._arm_action("attack", target, self.attack_delay())

    def _arm_action(self, kind: str, target: str, delay: float) -> None:
        self._in_flight = True
        self._pending_target = target
        self._set_state(BotState.ACTING)
        logger.debug("Armed {} on {} in {:.2f}s", kind, target, delay)

        async def fire() -> None:
            await self._fire_action(kind, target)

        self.scheduler.arm(kind, delay, fire)

    async def _fire_action(self, kind: str, target: str) -> None:
        self._pending_target = None
        if await self.client.prison_user(target):
            self._sent_cycle = self.scheduler.cycle
            self._log(f"{kind.capitalize()}: prison {self._label(target)}")
            return
        # Not sent: nothing will settle, so release the slot ourselves.
        logger.debug("{} on {} not sent", kind, target)
        self._in_flight = False
        if self._state is BotState.ACTING:
            self._set_state(BotState.ACTIVE_WAITING)
            self.scheduler.arm("tick", self.timings.tick_interval, self._tick)

    def _settle(self, now: float) -> None:
        self._in_flight = False
        self._pending_target = None
        self._sent_cycle = None

        if self._last_settled_at is not None:
            gap = now - self._last_settled_at
            if gap < self.timings.fast_gap:
                self._aggression = round(max(AGGRESSION_MIN, self._aggression - AGGRESSION_STEP), 2)
            elif gap > self.timings.slow_gap:
                self._aggression = round(min(AGGRESSION_MAX, self._aggression + AGGRESSION_STEP), 2)
        self._last_settled_at = now

        self._cooldown_until = now + self._rng.uniform(
            self.timings.cooldown_min, self.timings.cooldown_max
        )
        self.roster.rotate()
        self._set_state(BotState.ACTIVE_WAITING)

    async def _begin_reconnect_cycle(self, reason: str) -> None:
        self.scheduler.invalidate()
        self._in_flight = False
        self._pending_target = None

        if not self._settings.reconnect:
            self._log(f"{reason}: auto-reconnect is off, halting")
            self._set_state(BotState.IDLE)
            await self.client.disconnect()
            return

        self._log(f"Reconnecting ({reason})")
        self._set_state(BotState.RECONNECTING)
        await self.client.disconnect()
        if self._state is not BotState.RECONNECTING:
            return
        self.scheduler.arm("reconnect", self.timings.reconnect_delay, self._finish_reconnect)

    async def _finish_reconnect(self) -> None:
        if self._state is not BotState.RECONNECTING:
            return
        self._rejoin_pending = True
        self._set_state(BotState.ACTIVE_WAITING)
        self._arm_join_grace()
        self.scheduler.arm("tick", self.timings.tick_interval, self._tick)
        await self.client.connect()

    # ------------------------------------------------------------------
    # Client events
    # ------------------------------------------------------------------

    async def _on_authenticated(self, _payload: Any = None) -> None:
        if not self._rejoin_pending:
            return
        self._rejoin_pending = False
        if self._planet and self._state is not BotState.IDLE:
            await self.client.join_planet(self._planet)

    async def _on_planet_joined(self, planet: Optional[str] = None) -> None:
        if planet:
            self._planet = planet
        if self._state is not BotState.IDLE:
            self._arm_join_grace()

    async def _on_user_join(self, participant: Participant) -> None:
        self.roster.upsert(participant)
        if self.roster.is_target(participant.id):
            # Seen again: bump priority and refresh last-seen.
            self.roster.add_target(participant.id)
            return
        if self.should_target_user(participant.nick, participant.clan):
            self.roster.add_target(participant.id)
            self._log(f"Target acquired: {participant.nick}")

    async def _on_user_part(self, user_id: str) -> None:
        was_target = self.roster.is_target(user_id)
        self.roster.discard(user_id)
        if not was_target:
            return

        if self._pending_target == user_id and self.pending_action is not None:
            self.scheduler.cancel()
            self._in_flight = False
            self._pending_target = None
            self._set_state(BotState.ACTIVE_WAITING)
            self.scheduler.arm("tick", self.timings.tick_interval, self._tick)

        if (
            self._settings.user_part
            and self._state in (BotState.ACTIVE_WAITING, BotState.ACTING)
            and not self.roster.queue()
        ):
            await self._on_targets_departed()

    async def _on_targets_departed(self) -> None:
        if self._settings.re_fly_join and self._planet:
            self._log(f"Last target left, re-joining {self._planet}")
            self._arm_join_grace()
            await self.client.join_planet(self._planet)
            return
        await self._begin_reconnect_cycle("last target left")

    async def _on_enemy_action(self, user_id: str) -> None:
        profile = self.enemies.register_hit(user_id)
        self.roster.add_target(user_id, profile.priority)
        self._log(
            f"Enemy {self._label(user_id)} acted (hits={profile.hits}, danger={profile.danger})"
        )
        if self._settings.stand_on_enemy and self.can_act():
            self._arm_action("defense", user_id, self.defense_delay())

    async def _on_action_settled(self, _payload: Any = None) -> None:
        if not self._awaiting_settlement():
            logger.debug("Ignoring settlement with no action sent in this cycle")
            return
        self.scheduler.cancel()
        self._settle(self._clock())

        if self._settings.prison_and_off:
            self._log("Action done, disconnecting")
            self.stop()
            await self.client.disconnect()
            return
        if self._settings.disconnect_action:
            await self._begin_reconnect_cycle("disconnect after action")
            return
        self.scheduler.arm("tick", self.timings.tick_interval, self._tick)

    async def _on_disconnected(self, _payload: Any = None) -> None:
        self.roster.clear()
        if self._state in (BotState.IDLE, BotState.RECONNECTING):
            return
        self.stop()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _mark_targets_dirty(self) -> None:
        if self._state is BotState.IDLE:
            self._refresh_targets()
        else:
            self._targets_dirty = True

    def _refresh_targets(self) -> None:
        self._targets_dirty = False
        for participant in self.roster.participants():
            wanted = self.should_target_user(participant.nick, participant.clan)
            if wanted and not self.roster.is_target(participant.id):
                self.roster.add_target(participant.id)
            elif (
                not wanted
                and self.roster.is_target(participant.id)
                and not self.enemies.is_active(participant.id)
            ):
                self.roster.remove_target(participant.id)

    def _awaiting_settlement(self) -> bool:
        return (
            self._state is BotState.ACTING
            and self._in_flight
            and self.pending_action is None
            and self._sent_cycle == self.scheduler.cycle
        )

    def _arm_join_grace(self) -> None:
        self._join_ready_at = self._clock() + self.timings.join_grace

    def _set_state(self, state: BotState) -> None:
        was_armed = self.armed
        self._state = state
        if self._armed_callback is not None and was_armed != self.armed:
            self._armed_callback(self.armed)

    def _label(self, user_id: str) -> str:
        participant = self.roster.get(user_id)
        return f"{participant.nick} ({user_id})" if participant else user_id

    def _log(self, message: str) -> None:
        logger.info(message)
        if self._log_callback is not None:
            self._log_callback(message)
