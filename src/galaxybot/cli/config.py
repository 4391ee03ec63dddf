"""Environment variable schema for the galaxybot CLI."""

from dataclasses import dataclass

from galaxybot.utils.challenge import DEFAULT_STRATEGY
from galaxybot.utils.config import DEFAULT_PLANET, DEFAULT_WS_URL, LOCAL_ENV_FILE


@dataclass
class EnvVar:
    """Definition of an environment variable."""

    name: str
    description: str
    default: str | None = None
    secret: bool = False  # If True, mask value in display


ENV_VARS: list[EnvVar] = [
    EnvVar(
        name="GALAXY_WS_URL",
        description="Websocket endpoint of the game server",
        default=DEFAULT_WS_URL,
    ),
    EnvVar(
        name="GALAXY_RECOVERY_CODE",
        description="Account recovery code used to log in",
        secret=True,
    ),
    EnvVar(
        name="GALAXY_PLANET",
        description="Planet joined after login",
        default=DEFAULT_PLANET,
    ),
    EnvVar(
        name="GALAXY_TOKEN_STRATEGY",
        description="Challenge token derivation (rolling, md5)",
        default=DEFAULT_STRATEGY,
    ),
    EnvVar(
        name="GALAXY_SETTINGS_FILE",
        description="TOML/JSON file with [settings] and [filters]",
    ),
    EnvVar(
        name="LOGURU_LEVEL",
        description="Log level for stderr output",
        default="INFO",
    ),
]

ENV_VAR_MAP: dict[str, EnvVar] = {var.name: var for var in ENV_VARS}

__all__ = ["ENV_VARS", "ENV_VAR_MAP", "EnvVar", "LOCAL_ENV_FILE"]
