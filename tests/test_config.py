import unittest.mock as mock
from pathlib import Path

import pytest
import tomllib

from api_platform import Configurator

builtin_open = open


# Mock custom config.toml with specific REFRESH_MARGIN value
def mock_open_with_custom_config_toml(*args, **kwargs):
    if args[0].name == "config.toml":
        # mocked open for path "config.toml"
        return mock.mock_open(read_data=b"REFRESH_MARGIN = 120")(*args, **kwargs)
    # unpatched version for every other path
    return builtin_open(*args, **kwargs)


def test_default_config():
    config = Configurator()

    assert config.REFRESH_MARGIN == 300
    assert config.ACCESS_TOKEN_ENDPOINT == "/authentication_token"
    assert config.SOFT_DELETES is False

    # Make sure all config keys are defined
    with open(Path(__file__).parent.parent / "api_platform/config_default.toml", "rb") as f:
        assert config.configuration.keys() == tomllib.load(f).keys()


@mock.patch("pathlib.Path.exists", lambda self: True)
@mock.patch("builtins.open", mock_open_with_custom_config_toml)
def test_custom_config_file_override():
    config = Configurator()

    assert config.REFRESH_MARGIN == 120


def test_env_override(monkeypatch):
    monkeypatch.setenv("BASE_URL", "api.example.com/")
    monkeypatch.setenv("REFRESH_MARGIN", "60")
    monkeypatch.setenv("SOFT_DELETES", "yes")
    monkeypatch.setenv("EVENT_RETRY_DELAY", "0.5")
    config = Configurator()

    assert config.BASE_URL == "http://api.example.com"
    assert config.REFRESH_MARGIN == 60
    assert config.SOFT_DELETES is True
    assert config.EVENT_RETRY_DELAY == 0.5


def test_invalid_margin(monkeypatch):
    monkeypatch.setenv("REFRESH_MARGIN", "-1")
    with pytest.raises(ValueError):
        Configurator()


def test_override():
    config = Configurator()
    config.override(MERCURE_URL="https://hub.example.com/.well-known/mercure")

    assert config.MERCURE_URL == "https://hub.example.com/.well-known/mercure"
