"""Profiles of players seen acting against us."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

DANGER_STEP = 15
DANGER_CAP = 100
DANGER_THRESHOLD = 60
ACTIVITY_WINDOW = 60.0

BASE_ENEMY_PRIORITY = 2
DANGEROUS_ENEMY_PRIORITY = 3


@dataclass
class EnemyProfile:
    user_id: str
    hits: int = 0
    danger: int = 0
    last_seen: float = 0.0

    @property
    def dangerous(self) -> bool:
        return self.danger >= DANGER_THRESHOLD

    @property
    def priority(self) -> int:
        return DANGEROUS_ENEMY_PRIORITY if self.dangerous else BASE_ENEMY_PRIORITY


class EnemyTracker:
    """Accumulates hits and a capped danger score per enemy.

    A profile that has been quiet for longer than ``window`` seconds starts
    over on its next hit.
    """

    def __init__(
        self,
        *,
        window: float = ACTIVITY_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window = window
        self._clock = clock
        self._profiles: Dict[str, EnemyProfile] = {}

    def register_hit(self, user_id: str) -> EnemyProfile:
        now = self._clock()
        profile = self._profiles.get(user_id)
        if profile is None:
            profile = EnemyProfile(user_id=user_id, last_seen=now)
            self._profiles[user_id] = profile
        elif now - profile.last_seen > self.window:
            profile.hits = 0
            profile.danger = 0

        profile.hits += 1
        profile.last_seen = now
        profile.danger = min(DANGER_CAP, profile.danger + DANGER_STEP)
        return profile

    def get(self, user_id: str) -> Optional[EnemyProfile]:
        return self._profiles.get(user_id)

    def is_active(self, user_id: str) -> bool:
        profile = self._profiles.get(user_id)
        return profile is not None and self._clock() - profile.last_seen <= self.window

    def priority_enemies(self) -> List[str]:
        """Enemies active within the window, most hits first."""
        now = self._clock()
        active = [p for p in self._profiles.values() if now - p.last_seen <= self.window]
        active.sort(key=lambda p: p.hits, reverse=True)
        return [p.user_id for p in active]

    def forget(self, user_id: str) -> None:
        self._profiles.pop(user_id, None)

    def reset(self) -> None:
        self._profiles.clear()
