"""Domain models shared across services."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True, slots=True)
class TelemetryReading:
    """A single synthetic sample taken by the simulated device."""

    temperature: float
    humidity: float
    timestamp: int

    def to_payload(self, device_id: str) -> Dict[str, Any]:
        """Build the message body the downstream rule engine keys on."""
        return {
            "deviceId": device_id,
            "timestamp": self.timestamp,
            "temperature": self.temperature,
            "humidity": self.humidity,
        }

    def encode(self, device_id: str) -> bytes:
        return json.dumps(self.to_payload(device_id)).encode("utf-8")
