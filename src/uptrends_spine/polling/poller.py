"""
UptrendsPoller — wires registry, dispatch, mapping and the schedule driver.

::

    register()                       validate everything, refuse to start on error
        │
    run() ── ScheduleDriver ── tick ──► run_once()
                                          │
                                          ├── DispatchEngine.run_cycle(registry)
                                          └── OutcomeMapper.emit(outcome) ─► sink
    stop()                           no new ticks, current cycle completes

A configuration error raised by ``register()`` is fatal. Nothing raised
during a cycle stops the loop: request failures become records and mapping
errors are logged.
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import Any

from uptrends_spine.core.logging import LogContext, get_logger
from uptrends_spine.core.scheduling.apscheduler_backend import ScheduleDriver
from uptrends_spine.core.scheduling.spec import ScheduleSpec
from uptrends_spine.core.settings import UptrendsSettings, get_settings
from uptrends_spine.polling.client import ParallelClient
from uptrends_spine.polling.codecs import get_codec
from uptrends_spine.polling.config import PollerConfig
from uptrends_spine.polling.dispatch import DispatchEngine
from uptrends_spine.polling.outcomes import OutcomeMapper
from uptrends_spine.polling.registry import OperationRegistry
from uptrends_spine.polling.sinks import Sink

logger = get_logger(__name__)


@dataclass(frozen=True)
class CycleReport:
    """Summary of one cycle."""

    cycle_id: str
    operations: int
    succeeded: int
    failed: int
    records: int
    duration_seconds: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "operations": self.operations,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "records": self.records,
            "duration_seconds": self.duration_seconds,
        }


class UptrendsPoller:
    """Scheduled poller for the Uptrends monitoring API.

    Args:
        config: Validated poller document.
        sink: Receives every output record.
        client: HTTP client (built from settings when omitted).
        settings: Process settings (``get_settings()`` when omitted).
        clock: Reference-date source, read once per cycle.
        host: Host name reported in metadata.
    """

    def __init__(
        self,
        config: PollerConfig,
        *,
        sink: Sink,
        client: ParallelClient | None = None,
        settings: UptrendsSettings | None = None,
        clock: Callable[[], date] = date.today,
        host: str | None = None,
    ) -> None:
        self.config = config
        self.sink = sink
        self._settings = settings or get_settings()
        self._client = client or ParallelClient.from_settings(self._settings)
        self._clock = clock
        self._host = host

        self.schedule: ScheduleSpec | None = None
        self.registry: OperationRegistry | None = None
        self._engine: DispatchEngine | None = None
        self._mapper: OutcomeMapper | None = None
        self._driver: ScheduleDriver | None = None
        self._stop_requested = False
        # Reentrant: stop() may run from a signal handler on the thread inside run().
        self._lock = threading.RLock()

    # ── Lifecycle ────────────────────────────────────────────────────

    def register(self, *, require_schedule: bool = True) -> None:
        """Validate configuration and build the cycle components.

        Raises:
            ConfigError: on any configuration problem.
        """
        if require_schedule:
            self.schedule = self.config.schedule_spec()
        self.registry = self.config.registry()
        self._engine = DispatchEngine(self._client, clock=self._clock)
        self._mapper = OutcomeMapper(
            self.sink,
            codec=get_codec(self.config.codec),
            target=self.config.target,
            metadata_target=self.config.metadata_target,
            tags=self.config.tags,
            host=self._host,
        )

        logger.info(
            "poller.registered",
            operations=self.registry.names,
            schedule=self.schedule.to_dict() if self.schedule else None,
            target=self.config.target,
            metadata_target=self.config.metadata_target,
        )

    def run(self) -> None:
        """Run cycles on the configured schedule until ``stop()``."""
        if self._engine is None or self.schedule is None:
            self.register()
        driver = ScheduleDriver(self.schedule)
        # Publish the driver and read the flag together so a concurrent or
        # signal-handler stop() either sees the driver or is seen here.
        with self._lock:
            self._driver = driver
            stopped = self._stop_requested
        if stopped:
            logger.info("poller.stopped_before_start")
            return

        driver.run(self.run_once)
        logger.info("poller.stopped")

    def stop(self) -> None:
        """Stop scheduling; an in-flight cycle still completes and emits its records."""
        with self._lock:
            self._stop_requested = True
            driver = self._driver
        if driver is not None:
            driver.stop()

    # ── One cycle ────────────────────────────────────────────────────

    def run_once(self) -> CycleReport:
        """Run a single cycle: dispatch every operation, map and emit every outcome."""
        if self._engine is None or self._mapper is None or self.registry is None:
            self.register(require_schedule=False)

        cycle_id = uuid.uuid4().hex[:12]
        started = time.monotonic()

        with LogContext(cycle_id=cycle_id):
            logger.info("cycle.started", operations=len(self.registry))
            results = self._engine.run_cycle(self.registry)
            records = sum(self._mapper.emit(result) for result in results)

            succeeded = sum(1 for result in results if result.succeeded)
            report = CycleReport(
                cycle_id=cycle_id,
                operations=len(results),
                succeeded=succeeded,
                failed=len(results) - succeeded,
                records=records,
                duration_seconds=time.monotonic() - started,
            )
            logger.info("cycle.complete", **{k: v for k, v in report.to_dict().items() if k != "cycle_id"})

        return report

    @property
    def driver(self) -> ScheduleDriver | None:
        return self._driver


__all__ = ["UptrendsPoller", "CycleReport"]
