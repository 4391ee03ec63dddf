"""Line grammar for the Galaxy chat protocol.

Inbound frames carry one or more CRLF-terminated lines. Each line is split on
whitespace into a command and positional arguments; anything after the first
colon is the free-text content. Parsing never raises: malformed input yields
``None`` or an empty result and the caller drops it.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

LINE_TERMINATOR = "\r\n"

IDENT_LINE = ":ru IDENT 352 -2 4030 1 2 :GALA"
QUIT_LINE = "QUIT :disconnect"

# Inbound commands
CMD_PING = "PING"
CMD_CHALLENGE = "HAAAPSI"
CMD_REGISTER = "REGISTER"
CMD_AUTH_OK = "999"
CMD_PLANET_JOINED = "900"
CMD_JOIN = "JOIN"
CMD_ROSTER = "353"
CMD_PART = "PART"
CMD_SLEEP = "SLEEP"
CMD_ACTION = "ACTION"
CMD_PRISONED = "PRISONED"
FATAL_CODES = frozenset({"451", "452"})

PRISON_ACTION_TYPE = "3"

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class ParsedLine:
    """One tokenized inbound line."""

    command: str
    args: Tuple[str, ...]
    content: str
    raw: str

    def arg(self, index: int) -> str:
        """Positional argument ``index`` (0 is the first after the command) or ``""``."""
        if 0 <= index < len(self.args):
            return self.args[index]
        return ""


@dataclass
class Participant:
    """Another player seen on the current planet."""

    id: str
    nick: str
    clan: str = ""
    level: str = "1"
    joined_at: float = field(default_factory=time.time)


def split_frame(data: str) -> List[str]:
    """Split a transport frame into non-blank lines."""

    if not data:
        return []
    return [line for line in data.split(LINE_TERMINATOR) if line.strip()]


def parse_line(line: str) -> Optional[ParsedLine]:
    """Tokenize ``line``; returns ``None`` for blank input."""

    stripped = line.strip()
    if not stripped:
        return None
    parts = _WHITESPACE.split(stripped)
    colon = line.find(":")
    content = line[colon + 1 :].strip() if colon != -1 else ""
    return ParsedLine(
        command=parts[0],
        args=tuple(parts[1:]),
        content=content,
        raw=line,
    )


def parse_join(args: Tuple[str, ...], self_id: str = "") -> Optional[Participant]:
    """Parse the arguments of a ``JOIN`` line.

    Short form is ``nick id``. Long form is ``- nick id ...`` where the clan is
    the first ``[...]`` token after the id.
    """

    nick = ""
    user_id = ""
    clan = ""
    if args and args[0] == "-":
        nick = args[1] if len(args) > 1 else ""
        user_id = args[2] if len(args) > 2 else ""
        for token in args[3:]:
            if len(token) >= 2 and token.startswith("[") and token.endswith("]"):
                clan = token[1:-1]
                break
    else:
        nick = args[0] if args else ""
        user_id = args[1] if len(args) > 1 else ""

    if not user_id or user_id == self_id:
        return None
    return Participant(id=user_id, nick=nick, clan=clan)


def parse_roster(content: str, self_id: str = "") -> List[Participant]:
    """Parse a roster snapshot payload of alternating ``nick id`` tokens."""

    tokens = content.split(" ")
    participants: List[Participant] = []
    for index in range(len(tokens) - 1):
        candidate = tokens[index + 1]
        if candidate.isascii() and candidate.isdigit() and candidate != self_id:
            participants.append(Participant(id=candidate, nick=tokens[index]))
    return participants


# Outbound command builders


def pong() -> str:
    return "PONG"


def recover(code: str) -> str:
    return f"RECOVER {code}"


def register_user(user_id: str, first: str, second: str, token: str) -> str:
    return f"USER {user_id} {first} {second} {token}"


def join_planet(name: str) -> str:
    return f"JOIN {name}"


def prison(user_id: str) -> str:
    return f"ACTION {PRISON_ACTION_TYPE} {user_id}"
