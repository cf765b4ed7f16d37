"""Device connection lifecycle driven by transport events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from transport.base import PublishErrorCallback, Transport, TransportError, TransportEvent

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    idle = "idle"
    connecting = "connecting"
    connected = "connected"
    reconnecting = "reconnecting"
    offline = "offline"
    errored = "errored"
    closed = "closed"


class ConnectionEvent(str, Enum):
    """Inputs to the state machine: transport events plus manager-internal ones."""

    start = "start"
    connect = TransportEvent.connect.value
    reconnect = TransportEvent.reconnect.value
    offline = TransportEvent.offline.value
    error = TransportEvent.error.value
    close = TransportEvent.close.value
    closed = "closed"


class Notification(str, Enum):
    ready = "ready"
    suspend = "suspend"


@dataclass(frozen=True)
class Transition:
    state: ConnectionState
    notifications: Tuple[Notification, ...] = ()


_S = ConnectionState
_ACTIVE: FrozenSet[ConnectionState] = frozenset(
    {_S.connecting, _S.connected, _S.reconnecting, _S.offline, _S.errored}
)

# (event, allowed source states) -> target state
_EDGES: Dict[ConnectionEvent, Tuple[FrozenSet[ConnectionState], ConnectionState]] = {
    ConnectionEvent.start: (frozenset({_S.idle}), _S.connecting),
    ConnectionEvent.connect: (
        frozenset({_S.connecting, _S.reconnecting, _S.offline, _S.errored}),
        _S.connected,
    ),
    ConnectionEvent.reconnect: (
        frozenset({_S.connected, _S.connecting, _S.offline, _S.errored}),
        _S.reconnecting,
    ),
    ConnectionEvent.offline: (frozenset({_S.connected, _S.reconnecting}), _S.offline),
    ConnectionEvent.error: (_ACTIVE | {_S.idle}, _S.errored),
    ConnectionEvent.close: (_ACTIVE, _S.offline),
    ConnectionEvent.closed: (_ACTIVE | {_S.idle}, _S.closed),
}


def transition(state: ConnectionState, event: ConnectionEvent) -> Transition:
    """Return the next state and the notifications the move produces.

    Entering ``connected`` yields ``ready`` and leaving it yields ``suspend``.
    Events with no edge from ``state`` leave it untouched.
    """
    sources, target = _EDGES[event]
    if state not in sources or state is target:
        return Transition(state=state)

    notifications: Tuple[Notification, ...] = ()
    if target is _S.connected:
        notifications = (Notification.ready,)
    elif state is _S.connected:
        notifications = (Notification.suspend,)
    return Transition(state=target, notifications=notifications)


class ConnectionManager:
    """Owns the transport session and publishes ready/suspend notifications."""

    def __init__(self, transport: Transport, client_id: str) -> None:
        self._transport = transport
        self.client_id = client_id
        self._state = ConnectionState.idle
        self._ready_listeners: List[Callable[[], None]] = []
        self._suspend_listeners: List[Callable[[], None]] = []
        self._close_callbacks: List[Callable[[], None]] = []
        self._closing = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def has_connection(self) -> bool:
        """True once ``start`` has created a session that is not yet closed."""
        return self._state in _ACTIVE

    def subscribe(
        self,
        on_ready: Callable[[], None],
        on_suspend: Callable[[], None],
    ) -> None:
        self._ready_listeners.append(on_ready)
        self._suspend_listeners.append(on_suspend)

    def start(self) -> None:
        if self._state is not ConnectionState.idle:
            logger.warning(
                "Connection already started; ignoring start request.",
                extra={"device_id": self.client_id, "state": self._state.value},
            )
            return
        self._apply(ConnectionEvent.start)
        logger.info("Connecting to broker.", extra={"device_id": self.client_id})
        self._transport.connect(self.handle_event)

    def handle_event(
        self,
        event: TransportEvent,
        detail: Optional[TransportError] = None,
    ) -> None:
        """Feed one transport event through the state machine.

        Once ``close`` has been requested, ``connect`` and ``reconnect`` are
        dropped so a late handshake can never emit "ready" again.
        """
        if self._closing and event in (TransportEvent.connect, TransportEvent.reconnect):
            logger.debug(
                "Ignoring %s while disconnecting.",
                event.value,
                extra={"device_id": self.client_id, "state": self._state.value},
            )
            return
        connection_event = ConnectionEvent(event.value)
        context = {
            "device_id": self.client_id,
            "event": connection_event.value,
            "reason": str(detail) if detail is not None else None,
        }
        if event is TransportEvent.connect:
            logger.info("Connected to broker.", extra=context)
        elif event is TransportEvent.error:
            logger.error("Broker connection error.", extra=context)
        elif event in (TransportEvent.offline, TransportEvent.close):
            logger.warning("Broker connection lost.", extra=context)
        elif event is TransportEvent.reconnect:
            logger.info("Attempting to reconnect to broker.", extra=context)
        self._apply(connection_event)

    def publish(
        self,
        topic: str,
        payload: bytes,
        on_error: Optional[PublishErrorCallback] = None,
    ) -> None:
        """Fire-and-forget publish at QoS 0 over the owned transport."""
        self._transport.publish(topic, payload, qos=0, on_error=on_error)

    def close(self, on_complete: Optional[Callable[[], None]] = None) -> None:
        """Request a graceful disconnect; ``on_complete`` runs once it is confirmed.

        If the transport never confirms, ``on_complete`` never runs. Callers
        that need a bound must supply their own timeout.
        """
        if on_complete is not None:
            self._close_callbacks.append(on_complete)

        if self._state is ConnectionState.closed or self._state is ConnectionState.idle:
            self._finish_close()
            return
        if self._closing:
            return

        self._closing = True
        logger.info("Disconnecting from broker.", extra={"device_id": self.client_id})
        self._transport.end(False, self._finish_close)

    def _finish_close(self) -> None:
        self._apply(ConnectionEvent.closed)
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            callback()

    def _apply(self, event: ConnectionEvent) -> None:
        result = transition(self._state, event)
        if result.state is self._state:
            return

        previous, self._state = self._state, result.state
        logger.info(
            "Connection state %s -> %s.",
            previous.value,
            result.state.value,
            extra={"device_id": self.client_id, "event": event.value, "state": result.state.value},
        )
        for notification in result.notifications:
            listeners = (
                self._ready_listeners
                if notification is Notification.ready
                else self._suspend_listeners
            )
            for listener in list(listeners):
                listener()
