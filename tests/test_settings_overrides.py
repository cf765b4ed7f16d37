from __future__ import annotations

import pytest

from datastore.readings_table import build_default_table
from settings import (
    REQUIRED_ENV_VARS,
    ConfigurationError,
    get_settings,
    load_env_file,
    missing_settings,
    require_device_settings,
)


def test_environment_overrides_apply(monkeypatch, tmp_path, device_env) -> None:
    table_path = tmp_path / "custom.json"
    monkeypatch.setenv("READINGS_TABLE_NAME", "custom-table")
    monkeypatch.setenv("READINGS_PERSISTENCE_PATH", str(table_path))
    monkeypatch.setenv("PUBLISH_INTERVAL_MS", "250")
    monkeypatch.setenv("SHUTDOWN_TIMEOUT_MS", "750")
    monkeypatch.setenv("AWS_IOT_PORT", "443")
    get_settings.cache_clear()

    settings = get_settings()
    table = build_default_table()

    assert settings.client_id == "sensor-1"
    assert settings.publish_interval_ms == 250
    assert settings.shutdown_timeout_ms == 750
    assert settings.port == 443
    assert table.name == "custom-table"
    assert table.persistence_path == table_path
    assert missing_settings(settings) == []
    require_device_settings(settings)


def test_defaults_when_optional_values_are_absent_or_invalid(monkeypatch) -> None:
    monkeypatch.setenv("PUBLISH_INTERVAL_MS", "soon")
    monkeypatch.setenv("SHUTDOWN_TIMEOUT_MS", "-5")

    settings = get_settings()

    assert settings.publish_interval_ms == 5000
    assert settings.shutdown_timeout_ms == 2000
    assert settings.port == 8883
    assert settings.table_name == "sensor_readings"


def test_missing_settings_reports_every_required_variable_in_order() -> None:
    settings = get_settings()

    assert missing_settings(settings) == list(REQUIRED_ENV_VARS)


def test_missing_settings_reports_exactly_the_absent_subset(monkeypatch, device_env) -> None:
    monkeypatch.delenv("AWS_IOT_TOPIC")
    monkeypatch.setenv("ROOT_CA_PATH", "   ")
    get_settings.cache_clear()

    settings = get_settings()

    assert missing_settings(settings) == ["AWS_IOT_TOPIC", "ROOT_CA_PATH"]
    with pytest.raises(ConfigurationError) as excinfo:
        require_device_settings(settings)
    assert excinfo.value.missing == ("AWS_IOT_TOPIC", "ROOT_CA_PATH")
    assert "AWS_IOT_TOPIC, ROOT_CA_PATH" in str(excinfo.value)


def test_env_file_fills_gaps_without_overriding(monkeypatch, tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("DEVICE_CLIENT_ID=from-file\nAWS_IOT_TOPIC=file/topic\n")
    monkeypatch.setenv("DEVICE_CLIENT_ID", "from-env")
    # load_dotenv writes into os.environ; register the key so it is restored.
    monkeypatch.setenv("AWS_IOT_TOPIC", "")
    monkeypatch.delenv("AWS_IOT_TOPIC")

    assert load_env_file(env_file) is True
    settings = get_settings()

    assert settings.client_id == "from-env"
    assert settings.topic == "file/topic"


def test_missing_env_file_is_skipped(tmp_path) -> None:
    assert load_env_file(tmp_path / "absent.env") is False


def test_table_row_cap_comes_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("READINGS_MAX_ROWS", "3")
    monkeypatch.setenv("READINGS_PERSISTENCE_PATH", "")
    get_settings.cache_clear()

    assert get_settings().table_max_rows == 3
    assert build_default_table().max_rows == 3
