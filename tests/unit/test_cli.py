import sys

import pytest
from loguru import logger
from typer.testing import CliRunner

from galaxybot.cli import app
from galaxybot.utils.challenge import md5_digest, rolling_checksum

runner = CliRunner()


def reset_logging() -> None:
    """Point loguru back at the live stderr after CliRunner swapped it out."""
    logger.configure(handlers=[{"sink": sys.stderr, "level": "DEBUG"}])


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in (
        "GALAXY_WS_URL",
        "GALAXY_RECOVERY_CODE",
        "GALAXY_PLANET",
        "GALAXY_TOKEN_STRATEGY",
        "GALAXY_SETTINGS_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    reset_logging()


def test_token_prints_every_strategy():
    result = runner.invoke(app, ["token", "hello"])
    assert result.exit_code == 0
    assert f"md5: {md5_digest('hello')}" in result.stdout
    assert f"rolling: {rolling_checksum('hello')}" in result.stdout


def test_token_rejects_unknown_strategy():
    result = runner.invoke(app, ["token", "hello", "--strategy", "sha1"])
    assert result.exit_code == 1
    assert "Unknown token strategy" in result.stdout


def test_run_without_recovery_code_fails():
    result = runner.invoke(app, ["run"])
    assert result.exit_code == 1
    assert "Recovery code required" in result.stdout


def test_run_with_bad_settings_file_fails(tmp_path):
    broken = tmp_path / "bot.json"
    broken.write_text("{oops", encoding="utf-8")
    result = runner.invoke(app, ["run", "--code", "ABC", "--settings", str(broken)])
    assert result.exit_code == 1
    assert "Error" in result.stdout


def test_settings_show_reads_file(tmp_path):
    path = tmp_path / "bot.toml"
    path.write_text('[settings]\nattackMin = "900"\n\n[filters]\nblackNick = "Evil"\n', encoding="utf-8")

    result = runner.invoke(app, ["settings", "show", str(path)])

    assert result.exit_code == 0
    assert "attack_min" in result.stdout
    assert "900" in result.stdout
    assert "Evil" in result.stdout


def test_env_show_masks_recovery_code(monkeypatch):
    monkeypatch.setenv("GALAXY_RECOVERY_CODE", "SUPERSECRETCODE")
    result = runner.invoke(app, ["env", "show"])
    assert result.exit_code == 0
    assert "SUPERSECRETCODE" not in result.stdout


def test_logging_still_works_after_cli_run(capsys):
    runner.invoke(app, ["token", "hello"])
    reset_logging()

    logger.info("still logging")

    err = capsys.readouterr().err
    assert "still logging" in err
    assert "Logging error" not in err
