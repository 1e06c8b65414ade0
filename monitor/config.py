from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from liveproto.constants import HEADER_LENGTH, MAX_FRAME_SIZE

DEFAULT_CONFIG: Dict[str, Any] = {
    "server_host": "broadcastlv.chat.bilibili.com",
    "server_port": 2243,
    "heartbeat_interval": 30.0,
    "health_check_interval": 45.0,
    "read_timeout": 35.0,
    "reconnect_delay": 0.0,
    "max_frame_size": MAX_FRAME_SIZE,
    "read_chunk_size": 65536,
    "log_level": "INFO",
}

MONITOR_CONFIG: Dict[str, Any] = DEFAULT_CONFIG.copy()


class ConfigError(Exception):
    """Raised when configuration values are invalid."""

    pass


def load_config(env_path: str = ".env") -> Dict[str, Any]:
    """Load monitor configuration from env file/environment variables."""
    if os.path.exists(env_path):
        load_dotenv(env_path)

    for key, default_value in DEFAULT_CONFIG.items():
        env_key = f"MONITOR_{key.upper()}"
        value = os.getenv(env_key, default_value)
        MONITOR_CONFIG[key] = _coerce_type(value, type(default_value))

    validate_config(MONITOR_CONFIG)
    logging.getLogger().setLevel(MONITOR_CONFIG["log_level"])
    return MONITOR_CONFIG


def merged(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Current config with per-connection overrides applied on top."""
    config = dict(MONITOR_CONFIG)
    for key, value in (overrides or {}).items():
        config[key] = _coerce_type(value, type(DEFAULT_CONFIG[key])) if key in DEFAULT_CONFIG else value
    validate_config(config)
    return config


def _coerce_type(value: Any, target_type: type) -> Any:
    if isinstance(value, target_type):
        return value
    try:
        if target_type is bool:
            return str(value).lower() in ("1", "true", "yes", "on")
        return target_type(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Cannot convert {value} to {target_type}") from exc


def validate_config(config: Dict[str, Any]) -> None:
    if not (1 <= int(config["server_port"]) <= 65535):
        raise ConfigError("server_port must be between 1 and 65535")
    for key in ("heartbeat_interval", "health_check_interval", "read_timeout"):
        if config[key] <= 0:
            raise ConfigError(f"{key} must be positive")
    if config["reconnect_delay"] < 0:
        raise ConfigError("reconnect_delay must not be negative")
    if config["max_frame_size"] < HEADER_LENGTH:
        raise ConfigError(f"max_frame_size must be at least {HEADER_LENGTH}")
    if config["read_chunk_size"] <= 0:
        raise ConfigError("read_chunk_size must be positive")


def get(key: str, default: Any = None) -> Any:
    return MONITOR_CONFIG.get(key, default)


__all__ = ["MONITOR_CONFIG", "DEFAULT_CONFIG", "ConfigError", "get", "load_config", "merged", "validate_config"]
