"""Wiring for one simulated device."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from datastore.readings_table import ReadingsTable
from models.records import TelemetryReading
from services.connection import ConnectionManager
from services.scheduler import PublishScheduler
from services.shutdown import ShutdownCoordinator, TerminationIntent
from services.telemetry import generate_reading
from services.timers import Timers
from settings import Settings
from transport.base import Transport


@dataclass
class DeviceSimulator:
    connection: ConnectionManager
    scheduler: PublishScheduler
    shutdown: ShutdownCoordinator

    def start(self) -> None:
        self.connection.start()


def build_device_simulator(
    settings: Settings,
    transport: Transport,
    timers: Timers,
    on_terminate: Callable[[TerminationIntent], None],
    table: Optional[ReadingsTable] = None,
    generate: Callable[[], TelemetryReading] = generate_reading,
) -> DeviceSimulator:
    """Construct the components once and hand each its collaborators."""
    connection = ConnectionManager(transport, client_id=settings.client_id or "")
    scheduler = PublishScheduler(
        connection,
        timers,
        topic=settings.topic or "",
        interval_ms=settings.publish_interval_ms,
        generate=generate,
        store=table.put_reading if table is not None else None,
    )
    scheduler.attach()
    shutdown = ShutdownCoordinator(
        scheduler,
        connection,
        timers,
        timeout_ms=settings.shutdown_timeout_ms,
        on_terminate=on_terminate,
    )
    return DeviceSimulator(connection=connection, scheduler=scheduler, shutdown=shutdown)
