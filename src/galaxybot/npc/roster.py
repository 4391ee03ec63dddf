"""Participants on the current planet and the ranked target queue."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from galaxybot.utils.protocol import Participant


@dataclass
class TargetMeta:
    priority: int
    last_seen: float


class RosterTracker:
    """Tracks participants and the subset of them scheduled for action.

    The target queue is rebuilt after every mutation: priority descending, then
    last-seen ascending so equal-priority targets take turns oldest first.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._participants: Dict[str, Participant] = {}
        self._targets: Dict[str, TargetMeta] = {}
        self._queue: List[str] = []
        self._offset = 0

    # Participants

    def upsert(self, participant: Participant) -> None:
        self._participants[participant.id] = participant

    def discard(self, user_id: str) -> Optional[Participant]:
        """Forget a participant and any target entry for it."""
        participant = self._participants.pop(user_id, None)
        self.remove_target(user_id)
        return participant

    def get(self, user_id: str) -> Optional[Participant]:
        return self._participants.get(user_id)

    def participants(self) -> List[Participant]:
        return list(self._participants.values())

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._participants

    def __len__(self) -> int:
        return len(self._participants)

    def clear(self) -> None:
        self._participants.clear()
        self._targets.clear()
        self._queue = []
        self._offset = 0

    # Targets

    def add_target(self, user_id: str, priority: int = 1) -> TargetMeta:
        """Insert a target, or bump an existing one and refresh its last-seen time.

        A bumped target gains one priority level but never ends below
        ``priority``.
        """
        now = self._clock()
        meta = self._targets.get(user_id)
        if meta is None:
            meta = TargetMeta(priority=priority, last_seen=now)
            self._targets[user_id] = meta
        else:
            meta.priority = max(meta.priority + 1, priority)
            meta.last_seen = now
        self._rebuild()
        return meta

    def remove_target(self, user_id: str) -> bool:
        if self._targets.pop(user_id, None) is None:
            return False
        self._rebuild()
        return True

    def is_target(self, user_id: str) -> bool:
        return user_id in self._targets

    def target_meta(self, user_id: str) -> Optional[TargetMeta]:
        meta = self._targets.get(user_id)
        return TargetMeta(meta.priority, meta.last_seen) if meta else None

    def queue(self) -> List[str]:
        return list(self._queue)

    def current_target(self) -> Optional[str]:
        if not self._queue:
            return None
        return self._queue[self._offset]

    def rotate(self) -> Optional[str]:
        """Advance to the next queue entry, wrapping around."""
        if not self._queue:
            return None
        self._offset = (self._offset + 1) % len(self._queue)
        return self._queue[self._offset]

    def _rebuild(self) -> None:
        self._queue = sorted(
            self._targets,
            key=lambda uid: (-self._targets[uid].priority, self._targets[uid].last_seen),
        )
        if self._offset >= len(self._queue):
            self._offset = 0
