"""
Configuration management for the AudioPorter relay.

Handles:
- Listen address and port (PORT / HOST environment overrides)
- Liveness probe timing
- Network scope heuristics
- Self-ping keep-alive for hosted deployments

Nothing here is runtime state: registrations and pairings live only in
memory and are cleared by a restart.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"
DEFAULT_IDENTITY = "Unknown PC"
DEFAULT_ROOM_CODE_PATTERN = r"^[0-9]{4,8}$"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _env_number(name: str, value: str, cast=float):
    try:
        return cast(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


@dataclass
class RelayConfig:
    """Tuning for the signaling relay."""
    ping_interval: float = 30.0
    missed_probes_allowed: int = 1
    ping_timeout: float = 5.0
    trust_forwarded_for: bool = True
    default_identity: str = DEFAULT_IDENTITY
    send_queue_size: int = 256
    max_message_bytes: int = 256 * 1024
    room_code_pattern: str = DEFAULT_ROOM_CODE_PATTERN

    def validate(self) -> None:
        if self.ping_interval <= 0:
            raise ConfigError("ping_interval must be positive")
        if self.missed_probes_allowed < 1:
            raise ConfigError("missed_probes_allowed must be at least 1")
        if self.ping_timeout <= 0:
            raise ConfigError("ping_timeout must be positive")
        if self.send_queue_size < 1:
            raise ConfigError("send_queue_size must be at least 1")
        if self.max_message_bytes < 1024:
            raise ConfigError("max_message_bytes must be at least 1024")
        try:
            re.compile(self.room_code_pattern)
        except re.error as e:
            raise ConfigError(f"Invalid room_code_pattern: {e}") from None

    def to_dict(self) -> dict:
        return {
            "ping_interval": self.ping_interval,
            "missed_probes_allowed": self.missed_probes_allowed,
            "ping_timeout": self.ping_timeout,
            "trust_forwarded_for": self.trust_forwarded_for,
            "default_identity": self.default_identity,
            "send_queue_size": self.send_queue_size,
            "max_message_bytes": self.max_message_bytes,
            "room_code_pattern": self.room_code_pattern,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RelayConfig":
        # Filter to only known fields to handle config evolution
        known_fields = set(cls().to_dict())
        filtered = {k: v for k, v in data.items() if k in known_fields}
        return cls(**filtered)


@dataclass
class ServerConfig:
    """Configuration for the HTTP/WebSocket listener."""
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    external_url: Optional[str] = None  # e.g. https://audioporter.onrender.com
    keepalive_interval: float = 600.0

    def validate(self) -> None:
        if not 0 < self.port < 65536:
            raise ConfigError(f"port out of range: {self.port}")
        if self.keepalive_interval <= 0:
            raise ConfigError("keepalive_interval must be positive")

    def to_dict(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
            "external_url": self.external_url,
            "keepalive_interval": self.keepalive_interval,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ServerConfig":
        known_fields = {"host", "port", "external_url", "keepalive_interval"}
        return cls(**{k: v for k, v in data.items() if k in known_fields})


@dataclass
class Config:
    """
    Main AudioPorter configuration.

    Sources, lowest precedence first: defaults, an optional JSON file,
    environment variables, then CLI flags (applied by the caller).
    """
    server: ServerConfig = field(default_factory=ServerConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    log_level: str = "INFO"

    def validate(self) -> None:
        self.server.validate()
        self.relay.validate()
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"Unknown log level: {self.log_level}")

    def to_dict(self) -> dict:
        return {
            "server": self.server.to_dict(),
            "relay": self.relay.to_dict(),
            "log_level": self.log_level,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        return cls(
            server=ServerConfig.from_dict(data.get("server", {})),
            relay=RelayConfig.from_dict(data.get("relay", {})),
            log_level=data.get("log_level", "INFO"),
        )

    def apply_env(self, environ: Optional[dict] = None) -> "Config":
        """Apply environment overrides in place and return self."""
        env = os.environ if environ is None else environ

        if env.get("PORT"):
            self.server.port = _env_number("PORT", env["PORT"], int)
        if env.get("HOST"):
            self.server.host = env["HOST"]

        external_url = env.get("AUDIOPORTER_EXTERNAL_URL") or env.get("RENDER_EXTERNAL_URL")
        if external_url:
            self.server.external_url = external_url

        if env.get("AUDIOPORTER_PING_INTERVAL"):
            self.relay.ping_interval = _env_number(
                "AUDIOPORTER_PING_INTERVAL", env["AUDIOPORTER_PING_INTERVAL"]
            )
        if env.get("AUDIOPORTER_TRUST_FORWARDED_FOR"):
            self.relay.trust_forwarded_for = _env_bool(
                "AUDIOPORTER_TRUST_FORWARDED_FOR", env["AUDIOPORTER_TRUST_FORWARDED_FOR"]
            )
        if env.get("LOG_LEVEL"):
            self.log_level = env["LOG_LEVEL"].upper()

        return self

    @classmethod
    def load(cls, path: Optional[Path] = None, environ: Optional[dict] = None) -> "Config":
        """Load configuration from an optional JSON file plus the environment."""
        if path is not None:
            path = Path(path)
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            try:
                with open(path, "r") as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON in {path}: {e}") from None
            if not isinstance(data, dict):
                raise ConfigError(f"Config file must contain a JSON object: {path}")
            try:
                config = cls.from_dict(data)
            except TypeError as e:
                raise ConfigError(f"Invalid config section in {path}: {e}") from None
            logger.debug(f"Configuration loaded from {path}")
        else:
            config = cls()

        config.apply_env(environ)
        config.validate()
        return config


# Global config instance
_config: Optional[Config] = None


def get_config(path: Optional[Path] = None) -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load(path)
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
