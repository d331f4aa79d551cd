"""Scheduler backend protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER BACKEND PROTOCOL                                                   │
│                                                                               │
│  The backend controls WHEN a cycle runs; the poller controls WHAT a cycle     │
│  does. A backend calls ``tick_callback()`` once per trigger and never runs    │
│  two ticks at the same time.                                                  │
│                                                                               │
│   ┌─────────────────┐       tick()       ┌─────────────────────────┐         │
│   │ ScheduleDriver  │ ─────────────────► │  UptrendsPoller.run_once │         │
│   │ (APScheduler,   │                    │   dispatch → map → sink  │         │
│   │  1 worker)      │                    └─────────────────────────┘         │
│   └─────────────────┘                                                         │
│                                                                               │
│  Lifecycle:  Idle ──tick──► Triggered ──done──► Idle     stop() ──► Stopped   │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

TickCallback = Callable[[], Any]


@runtime_checkable
class SchedulerBackend(Protocol):
    """Protocol for scheduler timing backends."""

    name: str

    def start(self, tick_callback: TickCallback) -> None:
        """Start scheduling ticks in the background."""
        ...

    def stop(self, wait: bool = True) -> None:
        """Stop scheduling new ticks; with ``wait`` let the current tick finish."""
        ...

    def health(self) -> dict[str, Any]:
        """Return backend health status."""
        ...


@dataclass
class BackendHealth:
    """Structured backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    next_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "next_tick": self.next_tick.isoformat() if self.next_tick else None,
            **self.extra,
        }
