"""Recurring telemetry publisher gated by the connection state."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from models.records import TelemetryReading
from services.connection import ConnectionManager
from services.telemetry import generate_reading
from services.timers import TimerHandle, Timers
from transport.base import PublishError

logger = logging.getLogger(__name__)

ReadingSink = Callable[[str, TelemetryReading], None]


class PublishScheduler:
    """Publishes one reading per interval while the connection is ready.

    Ticks run at a fixed rate anchored to the moment of ``start``. At most one
    timer is ever armed, and ``stop`` cancels it before returning.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        timers: Timers,
        topic: str,
        interval_ms: int,
        generate: Callable[[], TelemetryReading] = generate_reading,
        store: Optional[ReadingSink] = None,
    ) -> None:
        if interval_ms <= 0:
            raise ValueError("Publish interval must be positive.")
        self._connection = connection
        self._timers = timers
        self.topic = topic
        self.interval_ms = interval_ms
        self._generate = generate
        self._store = store
        self._handle: Optional[TimerHandle] = None
        self._session = 0
        self._next_due = 0.0

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def device_id(self) -> str:
        return self._connection.client_id

    def attach(self) -> None:
        """Follow the connection's ready/suspend notifications."""
        self._connection.subscribe(on_ready=self.start, on_suspend=self.stop)

    def start(self) -> None:
        if self._handle is not None:
            logger.warning(
                "Publish loop already running.",
                extra={"device_id": self.device_id},
            )
            return

        self._session += 1
        self._next_due = self._timers.time() + self._interval_seconds
        self._arm(self._session)
        logger.info(
            "Starting publish loop.",
            extra={"device_id": self.device_id, "topic": self.topic, "interval_ms": self.interval_ms},
        )

    def stop(self) -> None:
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        self._session += 1
        handle.cancel()
        logger.info("Stopping publish loop.", extra={"device_id": self.device_id})

    @property
    def _interval_seconds(self) -> float:
        return self.interval_ms / 1000.0

    def _arm(self, session: int) -> None:
        delay = max(0.0, self._next_due - self._timers.time())
        self._handle = self._timers.call_later(delay, self._tick, session)

    def _tick(self, session: int) -> None:
        # A callback from a cancelled session must never publish.
        if self._handle is None or session != self._session:
            return
        self._next_due += self._interval_seconds
        self._arm(session)
        self.publish_once()

    def publish_once(self) -> None:
        """Generate, publish and store one reading; failures are only logged."""
        reading = self._generate()
        payload = reading.encode(self.device_id)
        logger.debug(
            "Publishing %s",
            payload.decode("utf-8"),
            extra={"device_id": self.device_id, "topic": self.topic},
        )
        try:
            self._connection.publish(self.topic, payload, on_error=self._on_publish_error)
        except PublishError as exc:
            self._on_publish_error(exc)

        if self._store is None:
            return
        try:
            self._store(self.device_id, reading)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Failed to store reading.",
                extra={"device_id": self.device_id, "timestamp": reading.timestamp, "reason": str(exc)},
            )

    def _on_publish_error(self, exc: PublishError) -> None:
        logger.warning(
            "Failed to publish message.",
            extra={"device_id": self.device_id, "topic": self.topic, "reason": str(exc)},
        )
