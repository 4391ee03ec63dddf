"""Galaxy prison bot CLI.

Usage:
    pip install -e .
    galaxybot --help
"""

from galaxybot.cli.app import app

__all__ = ["app"]
