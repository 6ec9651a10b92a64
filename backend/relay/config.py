"""
Relay configuration.

Values come from the environment (optionally populated from a .env file)
and may be overridden from the command line.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from relay.adapters.realtime_adapter import DEFAULT_REALTIME_MODEL, DEFAULT_REALTIME_URL
from relay.errors import ConfigError
from relay.session import DEFAULT_CONNECT_TIMEOUT, DEFAULT_MAX_PENDING_MESSAGES

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8081


@dataclass
class RelayConfig:
    """
    Runtime configuration for the relay.

    Attributes:
        api_key: Realtime API key, used only by upstream adapters
        host: Listening host
        port: Listening port
        upstream_url: Realtime WebSocket endpoint
        model: Realtime model name
        connect_timeout: Upstream connect timeout in seconds
        max_pending_messages: Pending queue depth per session
        log_level: Logging level name
    """
    api_key: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    upstream_url: str = DEFAULT_REALTIME_URL
    model: str = DEFAULT_REALTIME_MODEL
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    max_pending_messages: int = DEFAULT_MAX_PENDING_MESSAGES
    log_level: str = "INFO"

    def __post_init__(self):
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"port must be between 0 and 65535, got {self.port!r}")
        if self.connect_timeout <= 0:
            raise ConfigError(f"connect timeout must be positive, got {self.connect_timeout!r}")
        if self.max_pending_messages < 1:
            raise ConfigError(f"max pending messages must be at least 1, got {self.max_pending_messages!r}")

    @classmethod
    def from_env(cls,
                 env: Optional[Mapping[str, str]] = None,
                 env_file: Optional[str] = None) -> "RelayConfig":
        """
        Build configuration from environment variables.

        Args:
            env: Mapping to read from (default: os.environ after loading .env)
            env_file: Path of the .env file to load (default: search from cwd)

        Returns:
            RelayConfig

        Raises:
            ConfigError: If OPENAI_API_KEY is missing or a value is invalid
        """
        if env is None:
            load_dotenv(env_file, override=True)
            env = os.environ

        api_key = env.get("OPENAI_API_KEY", "").strip()
        if not api_key:
            raise ConfigError(
                'Environment variable "OPENAI_API_KEY" is required.\n'
                "Please set it in your .env file."
            )

        return cls(
            api_key=api_key,
            host=env.get("RELAY_HOST") or DEFAULT_HOST,
            port=_parse_port(env.get("PORT")),
            upstream_url=env.get("OPENAI_REALTIME_URL") or DEFAULT_REALTIME_URL,
            model=env.get("OPENAI_REALTIME_MODEL") or DEFAULT_REALTIME_MODEL,
            connect_timeout=_parse_number(env, "RELAY_CONNECT_TIMEOUT", float, DEFAULT_CONNECT_TIMEOUT),
            max_pending_messages=_parse_number(env, "RELAY_MAX_PENDING", int, DEFAULT_MAX_PENDING_MESSAGES),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )


def _parse_port(value: Optional[str]) -> int:
    """Parse PORT, falling back to the default for missing or unusable values."""
    try:
        port = int(value)
    except (TypeError, ValueError):
        return DEFAULT_PORT
    return port if port > 0 else DEFAULT_PORT


def _parse_number(env: Mapping[str, str], name: str, kind, default):
    value = env.get(name)
    if value in (None, ""):
        return default
    try:
        number = kind(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if number <= 0:
        raise ConfigError(f"{name} must be positive, got {value!r}")
    return number
