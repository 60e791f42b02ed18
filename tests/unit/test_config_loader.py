"""Tests for configuration discovery, validation and persistence."""

import os
import stat

import pytest

from bridgemail.config.credentials import resolve_password, resolve_username
from bridgemail.config.loader import (
    CONFIG_ENV,
    LoadedConfig,
    default_state_dir,
    load_config,
    save_config,
    set_config_value,
)
from bridgemail.config.schema import AppConfig, BridgeSettings
from bridgemail.errors import ConfigError


def test_missing_file_yields_defaults_at_xdg_location(isolated_environment):
    loaded = load_config()

    assert not loaded.exists
    assert loaded.path == isolated_environment / "bridgemail" / "config.yaml"
    assert loaded.config.bridge.imap_port == 1143
    assert loaded.config.bridge.smtp_port == 1025
    assert loaded.config.defaults.mailbox == "INBOX"


def test_explicit_path_wins_over_environment(tmp_path, monkeypatch):
    explicit = tmp_path / "explicit.yaml"
    explicit.write_text("bridge:\n  email: explicit@example.com\n")
    from_env = tmp_path / "env.yaml"
    from_env.write_text("bridge:\n  email: env@example.com\n")
    monkeypatch.setenv(CONFIG_ENV, str(from_env))

    assert load_config(explicit).config.bridge.email == "explicit@example.com"
    assert load_config().config.bridge.email == "env@example.com"


def test_partial_file_keeps_other_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("defaults:\n  limit: 50\nwatch:\n  interval: 10\n")

    loaded = load_config(path)

    assert loaded.exists
    assert loaded.config.defaults.limit == 50
    assert loaded.config.watch.interval == 10
    assert loaded.config.bridge.imap_host == "127.0.0.1"


@pytest.mark.parametrize(
    "content",
    [
        "bridge: [unclosed\n",
        "- just\n- a list\n",
        "bridge:\n  unknown_key: 1\n",
        "bridge:\n  imap_port: 70000\n",
        "defaults:\n  format: xml\n",
    ],
)
def test_broken_files_raise_config_error(tmp_path, content):
    path = tmp_path / "config.yaml"
    path.write_text(content)

    with pytest.raises(ConfigError) as excinfo:
        load_config(path)

    assert str(path) in str(excinfo.value)


def test_set_value_parses_scalars_by_field_type():
    config = AppConfig()

    config = set_config_value(config, "defaults.limit", "50")
    config = set_config_value(config, "bridge.verify_tls", "true")
    config = set_config_value(config, "bridge.email", "12345")
    config = set_config_value(config, "state_dir", "/var/lib/bridgemail")

    assert config.defaults.limit == 50
    assert config.bridge.verify_tls is True
    assert config.bridge.email == "12345"
    assert config.state_dir == "/var/lib/bridgemail"


@pytest.mark.parametrize(
    "key, value",
    [("bridge.nope", "1"), ("nope", "1"), ("bridge.imap_port.deeper", "1"), ("defaults.limit", "many"), ("bridge.imap_port", "0")],
)
def test_set_value_rejects_bad_keys_and_values(key, value):
    with pytest.raises(ConfigError):
        set_config_value(AppConfig(), key, value)


def test_save_round_trips_with_private_permissions(tmp_path):
    loaded = LoadedConfig(tmp_path / "nested" / "config.yaml", AppConfig(), False)
    loaded.config = set_config_value(loaded.config, "bridge.email", "me@example.com")

    path = save_config(loaded)

    assert loaded.exists
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    assert load_config(path).config == loaded.config


def test_state_dir_defaults_to_config_directory(tmp_path):
    loaded = LoadedConfig(tmp_path / "config.yaml", AppConfig(), False)

    assert default_state_dir(loaded) == tmp_path
    loaded.config = set_config_value(loaded.config, "state_dir", str(tmp_path / "state"))
    assert default_state_dir(loaded) == tmp_path / "state"


def test_password_comes_from_named_environment_variable():
    settings = BridgeSettings(email="me@example.com", password_env="MY_BRIDGE_PW")

    assert resolve_password(settings, {"MY_BRIDGE_PW": "pw"}) == "pw"
    with pytest.raises(ConfigError) as excinfo:
        resolve_password(settings, {})
    assert "MY_BRIDGE_PW" in str(excinfo.value)


def test_username_requires_configured_email():
    assert resolve_username(BridgeSettings(email="me@example.com")) == "me@example.com"
    with pytest.raises(ConfigError):
        resolve_username(BridgeSettings())
