"""Bot settings and name filters supplied by the controlling UI."""

from __future__ import annotations

import json
import random
import re
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple, Union

MIN_INTERVAL_MS = 400.0


class SettingsError(ValueError):
    """Raised when a settings or filter file cannot be read."""


def parse_interval(value: Any) -> float:
    """Coerce a UI interval value (milliseconds, usually a string) to a float.

    Anything that is not a finite number becomes ``0.0``.
    """
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return 0.0
    if number != number or number in (float("inf"), float("-inf")):
        return 0.0
    return number


def compute_interval(
    minimum: Any,
    maximum: Any,
    jitter: Any,
    use_jitter: bool,
    rng: random.Random,
    *,
    floor_ms: float = MIN_INTERVAL_MS,
) -> float:
    """Random delay in milliseconds from UI interval bounds.

    Uniform over ``[minimum, maximum]``, or ``(minimum + maximum) / 2 ± jitter``
    when ``use_jitter`` is set. Never below ``floor_ms``.
    """
    low = parse_interval(minimum)
    high = parse_interval(maximum)
    if use_jitter:
        base = (low + high) / 2
        spread = parse_interval(jitter)
        value = base + (rng.random() * 2 - 1) * spread
    else:
        value = low + rng.random() * (high - low)
    return max(floor_ms, value)


def _snake_case(name: str) -> str:
    name = re.sub(r"([0-9]+)([A-Z])", r"\1_\2", name)
    name = re.sub(r"([a-z])([A-Z0-9])", r"\1_\2", name)
    return name.lower()


# camelCase keys used by the web form that do not snake-case cleanly
_KEY_ALIASES = {
    "timeout3_sec": "timeout_3sec",
    "timeout_3_sec": "timeout_3sec",
}


@dataclass(frozen=True)
class BotSettings:
    """Settings replaced wholesale by the UI; the engine never mutates them.

    Interval bounds are milliseconds kept as the raw UI strings.
    """

    prison_all: bool = True
    user_part: bool = True
    timeout_3sec: bool = True  # carried from the form; the join grace always applies
    disconnect_action: bool = False
    reconnect: bool = True
    stand_on_enemy: bool = False
    prison_and_off: bool = False
    re_fly_join: bool = False
    timer_reconnect: str = "0"
    attack_min: str = "1700"
    attack_max: str = "2000"
    attack_plus_minus: str = "5"
    defense_min: str = "1600"
    defense_max: str = "1600"
    defense_plus_minus: str = "5"
    pm_tm_a: bool = False
    pm_tm_z: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BotSettings":
        """Build settings from a dict with camelCase or snake_case keys.

        Unknown keys are ignored; missing keys keep their defaults.
        """
        known = {f.name: f for f in fields(cls)}
        values: Dict[str, Any] = {}
        for raw_key, raw_value in data.items():
            key = _snake_case(str(raw_key))
            key = _KEY_ALIASES.get(key, key)
            field_def = known.get(key)
            if field_def is None:
                continue
            if field_def.type in ("bool", bool):
                values[key] = _as_bool(raw_value)
            else:
                values[key] = "" if raw_value is None else str(raw_value)
        return cls(**values)

    def with_updates(self, **changes: Any) -> "BotSettings":
        return replace(self, **changes)

    @property
    def reconnect_interval(self) -> float:
        """Idle auto-reconnect delay in seconds."""
        return max(0.0, parse_interval(self.timer_reconnect)) / 1000.0


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def split_lines(text: Union[str, Iterable[str], None]) -> FrozenSet[str]:
    """Split a newline-separated block into trimmed, non-empty entries."""
    if text is None:
        return frozenset()
    lines = text.splitlines() if isinstance(text, str) else text
    return frozenset(line.strip() for line in lines if line and line.strip())


@dataclass(frozen=True)
class FilterLists:
    """Black/white lists of clans and nicks. Matching is exact and case-sensitive."""

    black_clan: FrozenSet[str] = field(default_factory=frozenset)
    black_nick: FrozenSet[str] = field(default_factory=frozenset)
    white_clan: FrozenSet[str] = field(default_factory=frozenset)
    white_nick: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_text(
        cls,
        *,
        black_clan: Union[str, Iterable[str], None] = None,
        black_nick: Union[str, Iterable[str], None] = None,
        white_clan: Union[str, Iterable[str], None] = None,
        white_nick: Union[str, Iterable[str], None] = None,
    ) -> "FilterLists":
        return cls(
            black_clan=split_lines(black_clan),
            black_nick=split_lines(black_nick),
            white_clan=split_lines(white_clan),
            white_nick=split_lines(white_nick),
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "FilterLists":
        blocks: Dict[str, Any] = {}
        for raw_key, value in data.items():
            key = _snake_case(str(raw_key))
            if key in {"black_clan", "black_nick", "white_clan", "white_nick"}:
                blocks[key] = value
        return cls.from_text(**blocks)

    def is_whitelisted(self, nick: str, clan: str) -> bool:
        return nick in self.white_nick or clan in self.white_clan

    def is_blacklisted(self, nick: str, clan: str) -> bool:
        return nick in self.black_nick or clan in self.black_clan


def should_target(settings: BotSettings, filters: FilterLists, nick: str, clan: str) -> bool:
    """Target selection: target-all, else whitelist wins, else blacklist, else no."""
    if settings.prison_all:
        return True
    if filters.is_whitelisted(nick, clan):
        return False
    return filters.is_blacklisted(nick, clan)


def load_settings_file(path: Optional[Path]) -> Tuple[BotSettings, FilterLists]:
    """Load settings and filters from a TOML or JSON file.

    The file may hold a ``[settings]`` table and a ``[filters]`` table; a flat
    file is read as settings only. ``None`` yields the defaults.
    """
    if path is None:
        return BotSettings(), FilterLists()

    try:
        raw = Path(path).read_bytes()
    except OSError as exc:
        raise SettingsError(f"Cannot read settings file {path}: {exc}") from exc

    try:
        if Path(path).suffix.lower() == ".json":
            data = json.loads(raw.decode("utf-8"))
        else:
            data = tomllib.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise SettingsError(f"Invalid settings file {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise SettingsError(f"Settings file {path} must contain a table/object")

    settings_data = data.get("settings", data)
    filters_data = data.get("filters", {})
    if not isinstance(settings_data, dict) or not isinstance(filters_data, dict):
        raise SettingsError(f"Settings file {path} has malformed sections")
    return BotSettings.from_mapping(settings_data), FilterLists.from_mapping(filters_data)


__all__ = [
    "BotSettings",
    "FilterLists",
    "SettingsError",
    "compute_interval",
    "load_settings_file",
    "parse_interval",
    "should_target",
    "split_lines",
]
