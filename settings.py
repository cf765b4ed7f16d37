from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv


_ENDPOINT_ENV = "AWS_IOT_ENDPOINT"
_TOPIC_ENV = "AWS_IOT_TOPIC"
_CERT_PATH_ENV = "DEVICE_CERT_PATH"
_KEY_PATH_ENV = "DEVICE_KEY_PATH"
_CA_PATH_ENV = "ROOT_CA_PATH"
_CLIENT_ID_ENV = "DEVICE_CLIENT_ID"
_PORT_ENV = "AWS_IOT_PORT"
_KEEPALIVE_ENV = "MQTT_KEEPALIVE_SECONDS"
_PUBLISH_INTERVAL_ENV = "PUBLISH_INTERVAL_MS"
_SHUTDOWN_TIMEOUT_ENV = "SHUTDOWN_TIMEOUT_MS"
_TABLE_NAME_ENV = "READINGS_TABLE_NAME"
_TABLE_PATH_ENV = "READINGS_PERSISTENCE_PATH"
_TABLE_MAX_ROWS_ENV = "READINGS_MAX_ROWS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

REQUIRED_ENV_VARS = (
    _ENDPOINT_ENV,
    _TOPIC_ENV,
    _CERT_PATH_ENV,
    _KEY_PATH_ENV,
    _CA_PATH_ENV,
    _CLIENT_ID_ENV,
)


class ConfigurationError(Exception):
    """Startup configuration is incomplete or unusable."""

    def __init__(self, message: str, missing: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.missing = tuple(missing)


@dataclass(frozen=True)
class Settings:
    endpoint: Optional[str]
    client_id: Optional[str]
    topic: Optional[str]
    cert_path: Optional[str]
    key_path: Optional[str]
    ca_path: Optional[str]
    port: int
    keepalive_seconds: int
    publish_interval_ms: int
    shutdown_timeout_ms: int
    table_name: str
    table_persistence_path: Optional[str]
    log_level: str
    table_max_rows: int = 10_000


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def load_env_file(path: Optional[Path] = None) -> bool:
    """Load variables from a dotenv file without overriding the environment."""
    env_file = path if path is not None else Path(".env")
    if not env_file.is_file():
        return False
    loaded = load_dotenv(env_file, override=False)
    get_settings.cache_clear()
    return loaded


@lru_cache
def get_settings() -> Settings:
    return Settings(
        endpoint=_read_optional_env(_ENDPOINT_ENV),
        client_id=_read_optional_env(_CLIENT_ID_ENV),
        topic=_read_optional_env(_TOPIC_ENV),
        cert_path=_read_optional_env(_CERT_PATH_ENV),
        key_path=_read_optional_env(_KEY_PATH_ENV),
        ca_path=_read_optional_env(_CA_PATH_ENV),
        port=_read_positive_int(_PORT_ENV, 8883),
        keepalive_seconds=_read_positive_int(_KEEPALIVE_ENV, 60),
        publish_interval_ms=_read_positive_int(_PUBLISH_INTERVAL_ENV, 5000),
        shutdown_timeout_ms=_read_positive_int(_SHUTDOWN_TIMEOUT_ENV, 2000),
        table_name=_read_str_env(_TABLE_NAME_ENV, "sensor_readings"),
        table_persistence_path=_read_optional_env(_TABLE_PATH_ENV, "./tmp/readings.json"),
        log_level=_read_log_level("INFO"),
        table_max_rows=_read_positive_int(_TABLE_MAX_ROWS_ENV, 10_000),
    )


def missing_settings(settings: Settings) -> list[str]:
    """Return the required environment variables that have no usable value."""
    values = {
        _ENDPOINT_ENV: settings.endpoint,
        _TOPIC_ENV: settings.topic,
        _CERT_PATH_ENV: settings.cert_path,
        _KEY_PATH_ENV: settings.key_path,
        _CA_PATH_ENV: settings.ca_path,
        _CLIENT_ID_ENV: settings.client_id,
    }
    return [name for name in REQUIRED_ENV_VARS if not values[name]]


def require_device_settings(settings: Settings) -> None:
    missing = missing_settings(settings)
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}",
            missing=missing,
        )
