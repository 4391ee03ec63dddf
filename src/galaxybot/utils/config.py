import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from galaxybot.utils.challenge import DEFAULT_STRATEGY

DEFAULT_WS_URL = "wss://cs.mobstudio.ru:6672/"
DEFAULT_PLANET = "main"
LOCAL_ENV_FILE = ".env.local"


@dataclass
class ClientConfig:
    """Connection parameters resolved from the environment."""

    ws_url: str = DEFAULT_WS_URL
    recovery_code: str = ""
    planet: str = DEFAULT_PLANET
    token_strategy: str = DEFAULT_STRATEGY
    settings_file: Optional[Path] = None


def load_env_file(env_path: Optional[Path] = None, *, override: bool = False) -> bool:
    """Load ``.env.local`` (or ``env_path``) into ``os.environ`` if it exists."""
    path = env_path or Path.cwd() / LOCAL_ENV_FILE
    if not path.exists():
        return False
    return load_dotenv(path, override=override)


def get_client_config() -> ClientConfig:
    """Build a ClientConfig from ``GALAXY_*`` environment variables."""
    settings_file = os.getenv("GALAXY_SETTINGS_FILE")
    return ClientConfig(
        ws_url=os.getenv("GALAXY_WS_URL") or DEFAULT_WS_URL,
        recovery_code=(os.getenv("GALAXY_RECOVERY_CODE") or "").strip(),
        planet=os.getenv("GALAXY_PLANET") or DEFAULT_PLANET,
        token_strategy=os.getenv("GALAXY_TOKEN_STRATEGY") or DEFAULT_STRATEGY,
        settings_file=Path(settings_file) if settings_file else None,
    )
