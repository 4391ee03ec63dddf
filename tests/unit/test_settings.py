import json
import random

import pytest

from galaxybot.npc.settings import (
    BotSettings,
    FilterLists,
    SettingsError,
    compute_interval,
    load_settings_file,
    parse_interval,
    should_target,
    split_lines,
)


def test_from_mapping_accepts_form_field_names():
    settings = BotSettings.from_mapping(
        {
            "prisonAll": False,
            "userPart": "false",
            "timeout3Sec": False,
            "disconnectAction": True,
            "standOnEnemy": "yes",
            "reFlyJoin": 1,
            "timerReconnect": "2500",
            "attackMin": 1500,
            "attackPlusMinus": "12",
            "pmTmA": True,
            "pmTmZ": "off",
            "somethingElse": "ignored",
        }
    )

    assert settings.prison_all is False
    assert settings.user_part is False
    assert settings.timeout_3sec is False
    assert settings.disconnect_action is True
    assert settings.stand_on_enemy is True
    assert settings.re_fly_join is True
    assert settings.timer_reconnect == "2500"
    assert settings.attack_min == "1500"
    assert settings.attack_plus_minus == "12"
    assert settings.pm_tm_a is True
    assert settings.pm_tm_z is False
    # untouched fields keep defaults
    assert settings.attack_max == "2000"
    assert settings.reconnect is True


def test_from_mapping_accepts_snake_case():
    settings = BotSettings.from_mapping({"prison_all": False, "timeout_3sec": False})
    assert settings.prison_all is False
    assert settings.timeout_3sec is False


def test_reconnect_interval_is_seconds():
    assert BotSettings(timer_reconnect="2500").reconnect_interval == 2.5
    assert BotSettings(timer_reconnect="soon").reconnect_interval == 0.0
    assert BotSettings(timer_reconnect="-10").reconnect_interval == 0.0


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("1700", 1700.0), (" 12.5 ", 12.5), (300, 300.0), ("", 0.0), ("abc", 0.0), (None, 0.0), ("nan", 0.0), (True, 0.0)],
)
def test_parse_interval_coerces_bad_values_to_zero(raw, expected):
    assert parse_interval(raw) == expected


def test_compute_interval_uniform_stays_in_bounds():
    rng = random.Random(3)
    for _ in range(500):
        value = compute_interval("1700", "2000", "5", False, rng)
        assert 1700 <= value <= 2000


def test_compute_interval_plus_minus_centers_on_midpoint():
    rng = random.Random(4)
    for _ in range(500):
        value = compute_interval("1000", "2000", "100", True, rng)
        assert 1400 <= value <= 1600


def test_compute_interval_floors_and_tolerates_garbage():
    rng = random.Random(5)
    assert compute_interval("abc", "", "x", False, rng) == 400
    assert compute_interval("0", "0", "0", True, rng, floor_ms=0) == 0


def test_split_lines_trims_and_drops_blanks():
    assert split_lines("  Evil \n\n Bad\r\n   \n") == frozenset({"Evil", "Bad"})
    assert split_lines(None) == frozenset()
    assert split_lines(["a", " ", "b "]) == frozenset({"a", "b"})


def test_whitelist_wins_over_blacklist():
    settings = BotSettings(prison_all=False)
    filters = FilterLists.from_text(black_nick="Evil", white_clan="Allies")

    assert should_target(settings, filters, "Evil", "Allies") is False
    assert should_target(settings, filters, "Evil", "") is True
    assert should_target(settings, filters, "Someone", "") is False


def test_prison_all_ignores_filters():
    settings = BotSettings(prison_all=True)
    filters = FilterLists.from_text(white_nick="Friend", white_clan="Allies")
    assert should_target(settings, filters, "Friend", "Allies") is True


def test_matching_is_case_sensitive():
    settings = BotSettings(prison_all=False)
    filters = FilterLists.from_text(black_clan="Raiders")
    assert should_target(settings, filters, "x", "Raiders") is True
    assert should_target(settings, filters, "x", "raiders") is False


def test_load_settings_file_toml(tmp_path):
    path = tmp_path / "bot.toml"
    path.write_text(
        """
[settings]
prisonAll = false
attackMin = "900"

[filters]
blackNick = \"\"\"
Evil
  Worse
\"\"\"
whiteClan = ["Allies"]
""",
        encoding="utf-8",
    )

    settings, filters = load_settings_file(path)

    assert settings.prison_all is False
    assert settings.attack_min == "900"
    assert filters.black_nick == frozenset({"Evil", "Worse"})
    assert filters.white_clan == frozenset({"Allies"})


def test_load_settings_file_flat_json(tmp_path):
    path = tmp_path / "bot.json"
    path.write_text(json.dumps({"standOnEnemy": True}), encoding="utf-8")

    settings, filters = load_settings_file(path)

    assert settings.stand_on_enemy is True
    assert filters == FilterLists()


def test_load_settings_file_defaults_and_errors(tmp_path):
    assert load_settings_file(None) == (BotSettings(), FilterLists())

    with pytest.raises(SettingsError):
        load_settings_file(tmp_path / "missing.toml")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(SettingsError):
        load_settings_file(broken)

    listed = tmp_path / "list.json"
    listed.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(SettingsError):
        load_settings_file(listed)
