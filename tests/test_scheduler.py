"""Tests for the publish loop and its interaction with the connection."""

from __future__ import annotations

import logging
from typing import List

import pytest

from datastore.readings_table import ReadingsTable
from models.records import TelemetryReading
from services.connection import ConnectionManager
from services.scheduler import PublishScheduler
from services.telemetry import generate_reading
from transport.base import TransportEvent

TOPIC = "devices/sensor-1/telemetry"


def _connected_scheduler(broker, timers, **kwargs) -> PublishScheduler:
    connection = ConnectionManager(broker, client_id="sensor-1")
    kwargs.setdefault("generate", lambda: generate_reading(clock=timers.time))
    scheduler = PublishScheduler(connection, timers, topic=TOPIC, interval_ms=5000, **kwargs)
    scheduler.attach()
    connection.start()
    timers.advance(0)
    return scheduler


def _timestamps(broker) -> List[int]:
    return [message.json()["timestamp"] for message in broker.messages]


def test_three_intervals_publish_three_spaced_readings(broker, timers, t0) -> None:
    scheduler = _connected_scheduler(broker, timers)

    timers.advance(15)

    assert scheduler.active
    assert _timestamps(broker) == [
        t0 + 5,
        t0 + 10,
        t0 + 15,
    ]
    message = broker.messages[0]
    assert message.topic == TOPIC
    assert message.qos == 0
    assert message.json()["deviceId"] == "sensor-1"


def test_start_twice_keeps_a_single_timer(broker, timers, caplog) -> None:
    scheduler = _connected_scheduler(broker, timers)
    caplog.set_level(logging.WARNING)

    scheduler.start()

    assert len(timers.pending) == 1
    assert "already running" in caplog.text
    timers.advance(5)
    assert len(broker.messages) == 1


def test_stop_twice_is_safe_and_leaves_no_timer(broker, timers) -> None:
    scheduler = _connected_scheduler(broker, timers)

    scheduler.stop()
    scheduler.stop()

    assert not scheduler.active
    assert timers.pending == []
    timers.advance(30)
    assert broker.messages == []


def test_restart_waits_a_full_interval_from_new_start(broker, timers, t0) -> None:
    scheduler = _connected_scheduler(broker, timers)
    timers.advance(3)
    scheduler.stop()
    timers.advance(1)

    scheduler.start()
    timers.advance(4)
    assert broker.messages == []

    timers.advance(1)
    assert _timestamps(broker) == [t0 + 9]


def test_error_event_stops_scheduling_until_next_connect(broker, timers, t0) -> None:
    scheduler = _connected_scheduler(broker, timers)
    timers.advance(5)

    broker.emit(TransportEvent.error)

    assert not scheduler.active
    assert timers.pending == []
    timers.advance(20)
    assert len(broker.messages) == 1

    broker.emit(TransportEvent.connect)
    assert scheduler.active
    timers.advance(5)
    assert _timestamps(broker) == [t0 + 5, t0 + 30]


@pytest.mark.parametrize("event", [TransportEvent.offline, TransportEvent.reconnect, TransportEvent.close])
def test_losing_the_connection_suspends_publishing(broker, timers, event) -> None:
    scheduler = _connected_scheduler(broker, timers)

    broker.emit(event)
    timers.advance(10)

    assert not scheduler.active
    assert broker.messages == []


def test_publish_failure_does_not_skip_or_duplicate_cycles(broker, timers, t0, caplog) -> None:
    scheduler = _connected_scheduler(broker, timers)
    caplog.set_level(logging.WARNING)
    broker.fail_next_publish("broker rejected message")

    timers.advance(5)
    assert broker.messages == []
    assert "Failed to publish message" in caplog.text
    assert scheduler.active

    timers.advance(5)
    assert _timestamps(broker) == [t0 + 10]
    assert len(timers.pending) == 1


def test_each_tick_calls_the_generator_once(broker, timers) -> None:
    readings: List[TelemetryReading] = []

    def generate() -> TelemetryReading:
        reading = generate_reading(clock=timers.time)
        readings.append(reading)
        return reading

    _connected_scheduler(broker, timers, generate=generate)
    timers.advance(10)

    assert [r.timestamp for r in readings] == _timestamps(broker)


def test_readings_are_stored_after_publish(broker, timers, t0) -> None:
    table = ReadingsTable(name="test")
    _connected_scheduler(broker, timers, store=table.put_reading)

    timers.advance(10)

    stored = table.query(device_id="sensor-1")
    assert [item.timestamp for item in stored] == [t0 + 10, t0 + 5]


def test_store_failure_is_logged_and_publishing_continues(broker, timers, caplog) -> None:
    def failing_store(device_id: str, reading: TelemetryReading) -> None:
        raise OSError("disk full")

    scheduler = _connected_scheduler(broker, timers, store=failing_store)
    caplog.set_level(logging.WARNING)

    timers.advance(10)

    assert scheduler.active
    assert len(broker.messages) == 2
    assert "Failed to store reading" in caplog.text


def test_interval_must_be_positive(broker, timers) -> None:
    connection = ConnectionManager(broker, client_id="sensor-1")

    with pytest.raises(ValueError):
        PublishScheduler(connection, timers, topic=TOPIC, interval_ms=0)
