"""Aggregate bot health, read by the HTTP status endpoint."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class HealthSnapshot:
    """Read-only view of ``HealthStatus`` at one instant."""

    ready: bool
    last_error: Optional[str]
    uptime: float

    @property
    def status(self) -> str:
        return "connected" if self.ready else "disconnected"


class HealthStatus:
    """Process-wide health state.

    Components push their transitions here; nothing in this class reaches
    back into them. ``ready`` follows the gateway session, ``last_error``
    holds the most recent failure from any component until a later success
    clears it, and ``uptime`` is computed on read.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._started_at = clock()
        self.ready: bool = False
        self.last_error: Optional[str] = None

    def mark_ready(self) -> None:
        self.ready = True
        self.last_error = None

    def mark_not_ready(self) -> None:
        self.ready = False

    def record_error(self, message: str) -> None:
        self.last_error = message

    def record_success(self) -> None:
        self.last_error = None

    def uptime(self) -> float:
        return max(0.0, self._clock() - self._started_at)

    def snapshot(self) -> HealthSnapshot:
        return HealthSnapshot(
            ready=self.ready,
            last_error=self.last_error,
            uptime=self.uptime(),
        )
