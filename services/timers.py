"""Timer capability consumed by the scheduler and the shutdown coordinator.

A running :class:`asyncio.AbstractEventLoop` satisfies :class:`Timers` as is,
so production code hands the loop straight through. Tests substitute a
manually advanced clock.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Timers(Protocol):
    def time(self) -> float:
        ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        ...
