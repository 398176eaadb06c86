"""Service configuration for annostore."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from annostore.exceptions import ConfigError


def _env_optional(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _env_number(env_key: str, value: str, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(value)
    except ValueError as exc:
        raise ConfigError(f"{env_key} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class AnnostoreConfig:
    """Service configuration.

    Parameters
    ----------
    host : str
        Interface the HTTP gateway binds to.
    port : int
        TCP port the HTTP gateway listens on.
    redis_url : str
        Connection URL of the Redis server holding the annotations.
    annotations_key : str
        Name of the Redis hash that stores one field per annotation.
    broadcast_url : str or None
        Websocket endpoint that receives change events. ``None`` keeps the
        broadcast forwarder permanently inert.
    api_key : str or None
        Shared secret required on ``/annotations`` requests. ``None``
        disables the check.
    cors_origin : str
        Value of the ``Access-Control-Allow-Origin`` response header.
    reconnect_delay : float
        Fixed delay in seconds between broadcast reconnect attempts.
    send_timeout : float
        Upper bound in seconds for a single broadcast send.
    max_body_bytes : int
        Largest accepted request body.
    """

    host: str = "0.0.0.0"
    port: int = 3000
    redis_url: str = "redis://localhost:6379"
    annotations_key: str = "annotations_hash"
    broadcast_url: str | None = None
    api_key: str | None = None
    cors_origin: str = "*"
    reconnect_delay: float = 2.0
    send_timeout: float = 5.0
    max_body_bytes: int = 64 * 1024

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ConfigError(f"port out of range: {self.port}")
        if self.reconnect_delay <= 0:
            raise ConfigError("reconnect_delay must be positive")
        if self.send_timeout <= 0:
            raise ConfigError("send_timeout must be positive")
        if not self.annotations_key:
            raise ConfigError("annotations_key must be non-empty")

    @classmethod
    def from_env(cls, **overrides: Any) -> AnnostoreConfig:
        """Create configuration from environment variables.

        Reads ``PORT``, ``REDIS_URL``, ``REDIS_ANNOTATIONS_KEY``,
        ``LIGHTCABLE_WS_URL``, ``API_KEY``, ``CORS_ORIGIN`` and the
        ``BROADCAST_*`` tuning variables. Explicit keyword arguments
        override environment values; ``None`` overrides are ignored so
        CLI flags that were not given fall through.

        Returns
        -------
        AnnostoreConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_STR_MAP = {
            "HOST": "host",
            "REDIS_URL": "redis_url",
            "REDIS_ANNOTATIONS_KEY": "annotations_key",
            "CORS_ORIGIN": "cors_origin",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = _env_optional(env.get(env_key))
            if val is not None:
                config_kwargs[field_name] = val

        # Optional endpoints: an empty value means "disabled".
        config_kwargs["broadcast_url"] = _env_optional(env.get("LIGHTCABLE_WS_URL"))
        config_kwargs["api_key"] = _env_optional(env.get("API_KEY"))

        _ENV_NUMBER_MAP: dict[str, tuple[str, type[int] | type[float]]] = {
            "PORT": ("port", int),
            "BROADCAST_RECONNECT_DELAY": ("reconnect_delay", float),
            "BROADCAST_SEND_TIMEOUT": ("send_timeout", float),
        }
        for env_key, (field_name, cast) in _ENV_NUMBER_MAP.items():
            val = _env_optional(env.get(env_key))
            if val is not None:
                config_kwargs[field_name] = _env_number(env_key, val, cast)

        config_kwargs.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**config_kwargs)
