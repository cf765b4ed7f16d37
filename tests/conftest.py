from __future__ import annotations

from typing import Any, Callable, Iterator, List, Tuple

import pytest

from datastore.readings_table import build_default_table
from settings import REQUIRED_ENV_VARS, Settings, get_settings
from transport.mock_broker import MockBrokerTransport

START_TIME = 1_700_000_000.0


class ManualHandle:
    def __init__(self, when: float, seq: int, callback: Callable[..., Any], args: Tuple[Any, ...]) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimers:
    """Event-loop timer API driven by explicit ``advance`` calls."""

    def __init__(self, start: float = START_TIME) -> None:
        self._now = start
        self._seq = 0
        self._scheduled: List[ManualHandle] = []

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualHandle:
        self._seq += 1
        handle = ManualHandle(self._now + max(delay, 0.0), self._seq, callback, args)
        self._scheduled.append(handle)
        return handle

    @property
    def pending(self) -> List[ManualHandle]:
        return [handle for handle in self._scheduled if not handle.cancelled]

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while True:
            due = [h for h in self._scheduled if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._scheduled.remove(handle)
            self._now = handle.when
            handle.callback(*handle.args)
        self._now = target


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch) -> Iterator[None]:
    for name in REQUIRED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("PUBLISH_INTERVAL_MS", raising=False)
    monkeypatch.delenv("SHUTDOWN_TIMEOUT_MS", raising=False)
    get_settings.cache_clear()
    build_default_table.cache_clear()
    yield
    get_settings.cache_clear()
    build_default_table.cache_clear()


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def broker(timers: ManualTimers) -> MockBrokerTransport:
    return MockBrokerTransport(timers)


@pytest.fixture
def device_env(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("AWS_IOT_ENDPOINT", "example-ats.iot.eu-west-1.amazonaws.com")
    monkeypatch.setenv("AWS_IOT_TOPIC", "devices/sensor-1/telemetry")
    monkeypatch.setenv("DEVICE_CERT_PATH", str(tmp_path / "device.pem.crt"))
    monkeypatch.setenv("DEVICE_KEY_PATH", str(tmp_path / "private.pem.key"))
    monkeypatch.setenv("ROOT_CA_PATH", str(tmp_path / "AmazonRootCA1.pem"))
    monkeypatch.setenv("DEVICE_CLIENT_ID", "sensor-1")
    monkeypatch.setenv("READINGS_PERSISTENCE_PATH", str(tmp_path / "readings.json"))
    get_settings.cache_clear()


@pytest.fixture
def device_settings() -> Settings:
    return Settings(
        endpoint="example-ats.iot.eu-west-1.amazonaws.com",
        client_id="sensor-1",
        topic="devices/sensor-1/telemetry",
        cert_path="device.pem.crt",
        key_path="private.pem.key",
        ca_path="AmazonRootCA1.pem",
        port=8883,
        keepalive_seconds=60,
        publish_interval_ms=5000,
        shutdown_timeout_ms=2000,
        table_name="test",
        table_persistence_path=None,
        log_level="INFO",
    )


@pytest.fixture
def t0(timers: ManualTimers) -> int:
    return int(timers.time())
