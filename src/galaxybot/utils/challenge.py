"""Challenge token derivation for the login handshake.

The server sends a seed with ``HAAAPSI`` and expects a token derived from it in
the ``USER`` registration line. Two derivations have been seen in the wild and
neither is known to be canonical, so they are registered by name and the client
takes whichever one it is configured with.
"""

from __future__ import annotations

import hashlib
from typing import Callable, Dict, Union

TokenStrategy = Callable[[str], str]

TOKEN_LENGTH = 10
DEFAULT_STRATEGY = "rolling"


def _utf16_units(text: str) -> list[int]:
    raw = text.encode("utf-16-le")
    return [int.from_bytes(raw[i : i + 2], "little") for i in range(0, len(raw), 2)]


def rolling_checksum(seed: str) -> str:
    """Signed 32-bit ``h * 31 + unit`` checksum over UTF-16 code units, hex encoded."""

    value = 0
    for unit in _utf16_units(seed):
        value = ((value << 5) - value + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return format(abs(value), "x")[:TOKEN_LENGTH]


def md5_digest(seed: str) -> str:
    """Hex MD5 of the UTF-8 seed, truncated to the token length."""

    return hashlib.md5(seed.encode("utf-8")).hexdigest()[:TOKEN_LENGTH]


TOKEN_STRATEGIES: Dict[str, TokenStrategy] = {
    "rolling": rolling_checksum,
    "md5": md5_digest,
}


def resolve_strategy(strategy: Union[str, TokenStrategy, None]) -> TokenStrategy:
    """Return a token strategy from a registered name or a callable."""

    if strategy is None:
        return TOKEN_STRATEGIES[DEFAULT_STRATEGY]
    if callable(strategy):
        return strategy
    try:
        return TOKEN_STRATEGIES[strategy.strip().lower()]
    except KeyError:
        known = ", ".join(sorted(TOKEN_STRATEGIES))
        raise ValueError(
            f"Unknown token strategy {strategy!r} (expected one of: {known})"
        ) from None


__all__ = [
    "DEFAULT_STRATEGY",
    "TOKEN_STRATEGIES",
    "TokenStrategy",
    "md5_digest",
    "resolve_strategy",
    "rolling_checksum",
]
