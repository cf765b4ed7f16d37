"""Top-level event loop for the device simulator."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Callable, Optional

from datastore.readings_table import ReadingsTable
from services.device import build_device_simulator
from services.shutdown import TerminationIntent
from settings import Settings, require_device_settings
from transport.base import Transport

logger = logging.getLogger(__name__)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)

TransportFactory = Callable[[asyncio.AbstractEventLoop], Transport]


async def run_simulator(
    settings: Settings,
    transport_factory: TransportFactory,
    table: Optional[ReadingsTable] = None,
) -> TerminationIntent:
    """Run the device until a termination signal has been handled.

    Returns the termination intent instead of exiting so the caller decides
    how the process ends.
    """
    require_device_settings(settings)
    loop = asyncio.get_running_loop()
    terminated: asyncio.Future[TerminationIntent] = loop.create_future()

    def on_terminate(intent: TerminationIntent) -> None:
        if not terminated.done():
            terminated.set_result(intent)

    transport = transport_factory(loop)
    device = build_device_simulator(
        settings, transport, loop, on_terminate=on_terminate, table=table
    )

    installed = _install_signal_handlers(loop, device.shutdown.initiate)
    try:
        logger.info(
            "Device simulator starting.",
            extra={"device_id": settings.client_id, "topic": settings.topic},
        )
        device.start()
        return await terminated
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    handler: Callable[[Optional[str]], None],
) -> list[signal.Signals]:
    installed: list[signal.Signals] = []
    for sig in TERMINATION_SIGNALS:
        try:
            loop.add_signal_handler(sig, handler, sig.name)
        except NotImplementedError:
            # No loop signal support (Windows); fall back to the process handler.
            signal.signal(
                sig,
                lambda _signum, _frame, name=sig.name: loop.call_soon_threadsafe(handler, name),
            )
            continue
        installed.append(sig)
    return installed
