"""Entry point for running the CLI as a module.

Usage:
    python -m galaxybot.cli
"""

from galaxybot.cli.app import app

if __name__ == "__main__":
    app()
