"""
Tests for configuration loading.
"""

import json

import pytest

from audioporter.config import (
    Config,
    RelayConfig,
    ServerConfig,
    get_config,
    reset_config,
    set_config,
)
from audioporter.errors import ConfigError


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        config = Config()
        assert config.server.port == 3000
        assert config.server.host == "0.0.0.0"
        assert config.relay.ping_interval == 30.0
        assert config.relay.default_identity == "Unknown PC"
        config.validate()

    def test_round_trip(self):
        config = Config()
        config.relay.ping_interval = 5.0
        assert Config.from_dict(config.to_dict()) == config

    def test_unknown_keys_ignored(self):
        relay = RelayConfig.from_dict({"ping_interval": 10, "removed_option": True})
        assert relay.ping_interval == 10
        server = ServerConfig.from_dict({"port": 8080, "tls": False})
        assert server.port == 8080


class TestEnvironment:
    """Tests for environment overrides."""

    def test_port_and_external_url(self):
        config = Config().apply_env({
            "PORT": "10000",
            "RENDER_EXTERNAL_URL": "https://relay.example.com",
        })
        assert config.server.port == 10000
        assert config.server.external_url == "https://relay.example.com"

    def test_explicit_external_url_preferred(self):
        config = Config().apply_env({
            "AUDIOPORTER_EXTERNAL_URL": "https://a.example.com",
            "RENDER_EXTERNAL_URL": "https://b.example.com",
        })
        assert config.server.external_url == "https://a.example.com"

    def test_relay_overrides(self):
        config = Config().apply_env({
            "AUDIOPORTER_PING_INTERVAL": "2.5",
            "AUDIOPORTER_TRUST_FORWARDED_FOR": "no",
            "LOG_LEVEL": "debug",
        })
        assert config.relay.ping_interval == 2.5
        assert config.relay.trust_forwarded_for is False
        assert config.log_level == "DEBUG"

    def test_bad_port(self):
        with pytest.raises(ConfigError):
            Config().apply_env({"PORT": "eighty"})

    def test_bad_bool(self):
        with pytest.raises(ConfigError):
            Config().apply_env({"AUDIOPORTER_TRUST_FORWARDED_FOR": "maybe"})


class TestLoad:
    """Tests for Config.load."""

    def test_from_file(self, tmp_path):
        path = tmp_path / "relay.json"
        path.write_text(json.dumps({
            "server": {"port": 4000},
            "relay": {"ping_interval": 15},
        }))
        config = Config.load(path, environ={})
        assert config.server.port == 4000
        assert config.relay.ping_interval == 15

    def test_env_beats_file(self, tmp_path):
        path = tmp_path / "relay.json"
        path.write_text(json.dumps({"server": {"port": 4000}}))
        config = Config.load(path, environ={"PORT": "5000"})
        assert config.server.port == 5000

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            Config.load(tmp_path / "nope.json", environ={})

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "relay.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError):
            Config.load(path, environ={})

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "relay.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigError):
            Config.load(path, environ={})

    @pytest.mark.parametrize("data", [
        {"server": {"port": 70000}},
        {"relay": {"ping_interval": 0}},
        {"relay": {"room_code_pattern": "("}},
        {"log_level": "LOUD"},
    ])
    def test_validation(self, tmp_path, data):
        path = tmp_path / "relay.json"
        path.write_text(json.dumps(data))
        with pytest.raises(ConfigError):
            Config.load(path, environ={})


class TestGlobalConfig:
    """Tests for the process-wide config instance."""

    def test_set_and_reset(self):
        custom = Config()
        custom.server.port = 1234
        set_config(custom)
        try:
            assert get_config() is custom
        finally:
            reset_config()
        # reset_config drops the cached instance; the next call builds a new one
        set_config(Config())
        assert get_config() is not custom
        reset_config()
