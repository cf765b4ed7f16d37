from __future__ import annotations
import json
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Callable, List, Optional

from services.timers import Timers
from transport.base import (
    DeviceConnectionError,
    EventCallback,
    PublishError,
    PublishErrorCallback,
    TransportError,
    TransportEvent,
)


@dataclass(frozen=True)
class PublishedMessage:
    topic: str
    payload: bytes
    qos: int
    published_at: float

    def json(self) -> dict:
        return json.loads(self.payload.decode("utf-8"))


class MockBrokerTransport:
    """Broker stand-in that accepts everything while connected.

    Event delivery goes through ``timers`` so callbacks never re-enter the
    caller. ``close_delay=None`` models a broker that never acknowledges a
    disconnect.
    """

    def __init__(
        self,
        timers: Timers,
        connect_delay: float = 0.0,
        close_delay: Optional[float] = 0.0,
        outbox_path: Optional[Path] = None,
    ) -> None:
        self._timers = timers
        self.connect_delay = connect_delay
        self.close_delay = close_delay
        self.outbox_path = outbox_path
        self._on_event: Optional[EventCallback] = None
        self._messages: List[PublishedMessage] = []
        self._lock = Lock()
        self._fail_next: Optional[str] = None
        self._ending = False
        self.connected = False
        self.connect_calls = 0
        self.end_calls = 0
        if outbox_path:
            outbox_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def messages(self) -> List[PublishedMessage]:
        with self._lock:
            return list(self._messages)

    def connect(self, on_event: EventCallback) -> None:
        self._on_event = on_event
        self.connect_calls += 1
        self._ending = False
        self._timers.call_later(self.connect_delay, self.emit, TransportEvent.connect)

    def publish(
        self,
        topic: str,
        payload: bytes,
        qos: int = 0,
        on_error: Optional[PublishErrorCallback] = None,
    ) -> None:
        failure: Optional[str] = None
        if not self.connected:
            failure = "client is not connected"
        elif self._fail_next is not None:
            failure, self._fail_next = self._fail_next, None

        if failure is not None:
            if on_error is not None:
                on_error(PublishError(failure))
            return

        message = PublishedMessage(
            topic=topic, payload=payload, qos=qos, published_at=self._timers.time()
        )
        with self._lock:
            self._messages.append(message)
            if self.outbox_path:
                with self.outbox_path.open("a", encoding="utf-8") as handle:
                    handle.write(
                        json.dumps({"topic": topic, "qos": qos, "payload": message.json()})
                        + "\n"
                    )

    def end(self, force: bool, on_complete: Callable[[], None]) -> None:
        self.end_calls += 1
        self._ending = True
        self.connected = False
        if force:
            on_complete()
            return
        if self.close_delay is None:
            return
        self._timers.call_later(self.close_delay, on_complete)

    def fail_next_publish(self, reason: str = "simulated publish failure") -> None:
        self._fail_next = reason

    def emit(self, event: TransportEvent, detail: Optional[TransportError] = None) -> None:
        """Deliver a transport event to the connected session."""
        if self._ending and event in (TransportEvent.connect, TransportEvent.reconnect):
            return
        if event is TransportEvent.connect:
            self.connected = True
        elif event in (TransportEvent.offline, TransportEvent.close, TransportEvent.reconnect):
            self.connected = False
        elif event is TransportEvent.error:
            self.connected = False
            if detail is None:
                detail = DeviceConnectionError("simulated connection error")
        if self._on_event is not None:
            self._on_event(event, detail)
