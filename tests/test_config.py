import pytest

from mapfulfillment.core.config import (
    Config,
    _parse_bool,
    _parse_float,
    _parse_int,
    config,
    reload_config_from_env,
)


@pytest.mark.parametrize(
    "value,expected",
    [("1", True), ("Yes", True), (" on ", True), ("0", False), ("off", False)],
)
def test_parse_bool(value, expected):
    assert _parse_bool(value) is expected


def test_parse_bool_unknown_keeps_default():
    assert _parse_bool("maybe", default=True) is True
    assert _parse_bool(None) is False


def test_parse_numbers():
    assert _parse_int("12", 5) == 12
    assert _parse_int("abc", 5) == 5
    assert _parse_int("0", 5, min_value=1) == 1
    assert _parse_float("2.5", 1.0) == 2.5
    assert _parse_float("", 1.0) == 1.0
    assert _parse_float("0.1", 300.0, min_value=1.0) == 1.0


def test_defaults(monkeypatch):
    for name in ("GENERATION_TIMEOUT_SECONDS", "DEFAULT_MAP_STYLE", "STRAVA_API_URL"):
        monkeypatch.delenv(name, raising=False)

    settings = Config()

    assert settings.GENERATION_TIMEOUT_SECONDS == 300.0
    assert settings.DEFAULT_MAP_STYLE == "outdoors-v12"
    assert settings.STRAVA_API_URL == "https://www.strava.com/api/v3"


def test_validate_configuration_rejects_bad_values(monkeypatch):
    monkeypatch.setenv("STRAVA_API_URL", "ftp://strava")
    with pytest.raises(ValueError, match="STRAVA_API_URL"):
        Config().validate_configuration()

    monkeypatch.setenv("STRAVA_API_URL", "https://www.strava.com/api/v3")
    monkeypatch.setenv("DEFAULT_ROUTE_COLOR", "orange")
    with pytest.raises(ValueError, match="DEFAULT_ROUTE_COLOR"):
        Config().validate_configuration()


def test_reload_updates_shared_instance(monkeypatch):
    monkeypatch.setenv("GENERATION_TIMEOUT_SECONDS", "42")
    try:
        assert reload_config_from_env() is config
        assert config.GENERATION_TIMEOUT_SECONDS == 42.0
    finally:
        monkeypatch.undo()
        reload_config_from_env()
