"""Single-handle timer used by the prison bot."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger

TimerCallback = Callable[[], Awaitable[None]]


class ActionScheduler:
    """Holds at most one pending timer.

    Arming a timer cancels the previous one. ``invalidate()`` also bumps the
    cycle id, and a timer only runs its callback if the cycle it was armed in
    is still current, so nothing armed before a stop/start can fire later.
    """

    def __init__(self) -> None:
        self._task: Optional[asyncio.Task] = None
        self._kind: Optional[str] = None
        self._cycle = 0

    @property
    def cycle(self) -> int:
        return self._cycle

    @property
    def pending_kind(self) -> Optional[str]:
        """Kind of the pending timer (``"tick"``, ``"attack"``...) or ``None``."""
        return self._kind

    def arm(self, kind: str, delay: float, callback: TimerCallback) -> None:
        self.cancel()
        self._kind = kind
        self._task = asyncio.create_task(self._fire(self._cycle, kind, max(0.0, delay), callback))

    def cancel(self) -> None:
        task = self._task
        self._task = None
        self._kind = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def invalidate(self) -> int:
        """Cancel the pending timer and start a new cycle."""
        self.cancel()
        self._cycle += 1
        return self._cycle

    async def _fire(self, cycle: int, kind: str, delay: float, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        if cycle != self._cycle:
            return
        if self._task is asyncio.current_task():
            self._task = None
            self._kind = None
        try:
            await callback()
        except Exception:  # noqa: BLE001
            logger.exception("{} timer callback failed", kind)
