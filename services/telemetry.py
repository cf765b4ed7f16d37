"""Synthetic temperature and humidity readings."""

from __future__ import annotations

import random
import time
from typing import Callable

from models.records import TelemetryReading

TEMPERATURE_BASE = 20.0
HUMIDITY_BASE = 40.0
SPAN = 10.0


def generate_reading(
    rng: Callable[[], float] = random.random,
    clock: Callable[[], float] = time.time,
) -> TelemetryReading:
    """Produce one reading stamped with the current Unix time in whole seconds.

    Temperature falls in [20.00, 30.00] and humidity in [40.00, 50.00], both
    rounded to two decimals.
    """
    temperature = round(TEMPERATURE_BASE + rng() * SPAN, 2)
    humidity = round(HUMIDITY_BASE + rng() * SPAN, 2)
    return TelemetryReading(
        temperature=temperature,
        humidity=humidity,
        timestamp=int(clock()),
    )
