"""Bounded, idempotent graceful shutdown."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from services.connection import ConnectionManager
from services.scheduler import PublishScheduler
from services.timers import TimerHandle, Timers

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1


@dataclass(frozen=True)
class TerminationIntent:
    """What the top-level runner should exit with, and why."""

    exit_code: int
    reason: str


class ShutdownCoordinator:
    def __init__(
        self,
        scheduler: PublishScheduler,
        connection: ConnectionManager,
        timers: Timers,
        timeout_ms: int,
        on_terminate: Callable[[TerminationIntent], None],
    ) -> None:
        self._scheduler = scheduler
        self._connection = connection
        self._timers = timers
        self.timeout_ms = timeout_ms
        self._on_terminate = on_terminate
        self._initiated = False
        self._terminated = False
        self._timeout_handle: Optional[TimerHandle] = None

    @property
    def initiated(self) -> bool:
        return self._initiated

    @property
    def terminated(self) -> bool:
        return self._terminated

    def initiate(self, signal_name: Optional[str] = None) -> None:
        """Begin teardown; repeated calls are ignored."""
        if self._initiated:
            logger.debug("Shutdown already in progress.", extra={"signal": signal_name})
            return
        self._initiated = True
        logger.info("Initiating graceful shutdown.", extra={"signal": signal_name})

        self._scheduler.stop()

        if not self._connection.has_connection:
            self._terminate(TerminationIntent(EXIT_OK, "no-connection"))
            return

        self._timeout_handle = self._timers.call_later(
            self.timeout_ms / 1000.0, self._on_timeout
        )
        self._connection.close(self._on_closed)

    def _on_closed(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None
        logger.info("Disconnected from broker.")
        self._terminate(TerminationIntent(EXIT_OK, "closed"))

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        logger.warning(
            "Broker disconnect timed out, forcing shutdown.",
            extra={"timeout_ms": self.timeout_ms},
        )
        self._terminate(TerminationIntent(EXIT_OK, "shutdown-timeout"))

    def _terminate(self, intent: TerminationIntent) -> None:
        if self._terminated:
            return
        self._terminated = True
        logger.info(
            "Shutdown complete.",
            extra={"exit_code": intent.exit_code, "reason": intent.reason},
        )
        self._on_terminate(intent)
