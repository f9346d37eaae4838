"""
Tests for settings loading and log level mapping.
"""

import logging

import pytest

from core.config import Settings
from core.logging import resolve_level


def test_settings_from_environment(monkeypatch):
    """Test that environment variables feed the frozen server config."""
    monkeypatch.setenv("API_PORT", "4100")
    monkeypatch.setenv("API_CORS_DOMAIN_CSV", "https://cockpit.example")
    monkeypatch.setenv("STORAGE_PLUGIN_OPTIONS_JSON", '{"initial": {}}')
    monkeypatch.setenv("LOG_LEVEL", "warn")

    config = Settings(_env_file=None).to_server_config()

    assert config.api_port == 4100
    assert config.api_cors_domain_csv == "https://cockpit.example"
    assert config.storage_plugin_options_json == '{"initial": {}}'
    assert config.log_level == "warn"
    assert config.storage_plugin_package == "memory"


def test_server_config_is_frozen(make_config):
    config = make_config()

    with pytest.raises(Exception):
        config.api_port = 1


@pytest.mark.parametrize(
    "name, level",
    [
        ("trace", logging.DEBUG),
        ("debug", logging.DEBUG),
        ("info", logging.INFO),
        ("WARN", logging.WARNING),
        ("error", logging.ERROR),
    ],
)
def test_resolve_level(name, level):
    assert resolve_level(name) == level


def test_resolve_level_rejects_unknown():
    with pytest.raises(ValueError):
        resolve_level("verbose")
