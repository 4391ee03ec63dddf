"""Utility functions for the galaxybot CLI."""

import os
import sys

from loguru import logger

from galaxybot.cli.config import ENV_VAR_MAP, ENV_VARS


def configure_logging(level: str | None = None) -> None:
    """Send loguru output to stderr at ``level`` (default ``LOGURU_LEVEL`` or INFO)."""
    resolved = (level or os.getenv("LOGURU_LEVEL", "INFO")).upper()
    logger.configure(handlers=[{"sink": sys.stderr, "level": resolved}])


def get_current_env_values() -> dict[str, str | None]:
    """Get current values for all known env vars from os.environ."""
    return {var.name: os.environ.get(var.name) for var in ENV_VARS}


def display_value(name: str, value: str | None) -> str:
    """Render an env value for display, masking secrets."""
    if value is None:
        return "[dim]not set[/dim]"
    var_config = ENV_VAR_MAP.get(name)
    if var_config and var_config.secret:
        if len(value) > 8:
            return f"{value[:4]}...{value[-4:]}"
        return "***"
    return value
