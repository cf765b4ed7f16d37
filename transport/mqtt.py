"""MQTT over mutual TLS, e.g. an AWS IoT Core device endpoint."""

from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Any, Callable, Optional

import paho.mqtt.client as mqtt

from settings import ConfigurationError, Settings
from transport.base import (
    DeviceConnectionError,
    EventCallback,
    PublishError,
    PublishErrorCallback,
    TransportError,
    TransportEvent,
)

logger = logging.getLogger(__name__)


class MqttTransport:
    """paho-mqtt client whose callbacks are replayed on the asyncio loop.

    paho runs its network loop on a background thread; every event it raises
    is marshalled with ``call_soon_threadsafe`` so the connection state is
    only ever touched from the loop thread.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        endpoint: str,
        client_id: str,
        ca_path: str,
        cert_path: str,
        key_path: str,
        port: int = 8883,
        keepalive: int = 60,
    ) -> None:
        self._loop = loop
        self.endpoint = endpoint
        self.port = port
        self.keepalive = keepalive
        self._on_event: Optional[EventCallback] = None
        self._on_complete: Optional[Callable[[], None]] = None
        self._ending = False
        self._attempts = 0

        self._client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
        )
        try:
            self._client.tls_set(
                ca_certs=ca_path,
                certfile=cert_path,
                keyfile=key_path,
                tls_version=ssl.PROTOCOL_TLSv1_2,
            )
        except (OSError, ValueError) as exc:
            raise ConfigurationError(
                f"Failed to load device certificates: {exc}"
            ) from exc

        self._client.on_pre_connect = self._handle_pre_connect
        self._client.on_connect = self._handle_connect
        self._client.on_connect_fail = self._handle_connect_fail
        self._client.on_disconnect = self._handle_disconnect

    @classmethod
    def from_settings(
        cls, settings: Settings, loop: asyncio.AbstractEventLoop
    ) -> "MqttTransport":
        return cls(
            loop,
            endpoint=settings.endpoint or "",
            client_id=settings.client_id or "",
            ca_path=settings.ca_path or "",
            cert_path=settings.cert_path or "",
            key_path=settings.key_path or "",
            port=settings.port,
            keepalive=settings.keepalive_seconds,
        )

    def connect(self, on_event: EventCallback) -> None:
        self._on_event = on_event
        try:
            self._client.connect_async(self.endpoint, self.port, self.keepalive)
        except (OSError, ValueError) as exc:
            self._dispatch(TransportEvent.error, DeviceConnectionError(str(exc)))
            return
        self._client.loop_start()

    def publish(
        self,
        topic: str,
        payload: bytes,
        qos: int = 0,
        on_error: Optional[PublishErrorCallback] = None,
    ) -> None:
        try:
            info = self._client.publish(topic, payload, qos=qos)
        except (OSError, ValueError) as exc:
            failure = PublishError(str(exc))
        else:
            if info.rc == mqtt.MQTT_ERR_SUCCESS:
                return
            failure = PublishError(mqtt.error_string(info.rc))
        if on_error is None:
            raise failure
        on_error(failure)

    def end(self, force: bool, on_complete: Callable[[], None]) -> None:
        self._ending = True
        self._on_complete = on_complete
        if force:
            self._finish_end()
            return
        rc = self._client.disconnect()
        if rc == mqtt.MQTT_ERR_NO_CONN:
            self._finish_end()

    def _finish_end(self) -> None:
        self._client.loop_stop()
        on_complete, self._on_complete = self._on_complete, None
        if on_complete is not None:
            on_complete()

    def _dispatch(self, event: TransportEvent, detail: Optional[TransportError] = None) -> None:
        if self._on_event is None:
            return
        self._on_event(event, detail)

    def _threadsafe(self, callback: Callable[..., Any], *args: Any) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(callback, *args)

    # paho callbacks, invoked on the network thread

    def _handle_pre_connect(self, client: mqtt.Client, userdata: Any) -> None:
        self._attempts += 1
        if self._attempts > 1 and not self._ending:
            self._threadsafe(self._dispatch, TransportEvent.reconnect)

    def _handle_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any,
    ) -> None:
        if self._ending:
            return
        if reason_code.is_failure:
            self._threadsafe(
                self._dispatch, TransportEvent.error, DeviceConnectionError(str(reason_code))
            )
            return
        self._threadsafe(self._dispatch, TransportEvent.connect)

    def _handle_connect_fail(self, client: mqtt.Client, userdata: Any) -> None:
        self._threadsafe(
            self._dispatch,
            TransportEvent.error,
            DeviceConnectionError(f"could not reach {self.endpoint}:{self.port}"),
        )

    def _handle_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any,
    ) -> None:
        if self._ending:
            self._threadsafe(self._finish_end)
            return
        logger.debug("Unexpected disconnect: %s", reason_code)
        self._threadsafe(self._dispatch, TransportEvent.offline)
