"""Capability contract for the broker connection consumed by the device."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Optional, Protocol


class TransportEvent(str, Enum):
    """Asynchronous notifications raised by a transport after ``connect``."""

    connect = "connect"
    reconnect = "reconnect"
    offline = "offline"
    error = "error"
    close = "close"


class TransportError(Exception):
    """Base class for failures reported by a transport."""


class DeviceConnectionError(TransportError):
    """Detail attached to an ``error`` event."""


class PublishError(TransportError):
    """A single fire-and-forget publish could not be handed to the broker."""


EventCallback = Callable[[TransportEvent, Optional[TransportError]], None]
PublishErrorCallback = Callable[[PublishError], None]


class Transport(Protocol):
    def connect(self, on_event: EventCallback) -> None:
        ...

    def publish(
        self,
        topic: str,
        payload: bytes,
        qos: int = 0,
        on_error: Optional[PublishErrorCallback] = None,
    ) -> None:
        ...

    def end(self, force: bool, on_complete: Callable[[], None]) -> None:
        ...
