"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from pydantic import BaseModel, Field

from models.records import TelemetryReading


class StoredReading(BaseModel):
    """A reading persisted under its ``(device_id, timestamp)`` key."""

    device_id: str
    timestamp: int = Field(..., description="Unix epoch seconds at generation time.")
    temperature: float
    humidity: float

    @property
    def key(self) -> str:
        return f"{self.device_id}#{self.timestamp}"

    @classmethod
    def from_reading(cls, device_id: str, reading: TelemetryReading) -> "StoredReading":
        return cls(
            device_id=device_id,
            timestamp=reading.timestamp,
            temperature=reading.temperature,
            humidity=reading.humidity,
        )


class HealthStatus(BaseModel):
    status: str
    detail: str | None = None
