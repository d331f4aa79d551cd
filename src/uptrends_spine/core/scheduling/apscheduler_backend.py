"""APScheduler-based schedule driver.

Wraps APScheduler 3.x ``BackgroundScheduler`` with a single-thread executor,
so at most one cycle runs at any time:

- ``max_instances=1``: a tick that arrives while a cycle is still running is
  skipped, never run in parallel.
- ``coalesce=True``: several missed ticks collapse into one.
- ``every`` schedules fire their first tick almost immediately instead of
  after one full interval.
- ``at`` / ``in`` schedules stop the driver once their single cycle is done.

``run()`` blocks the calling thread until ``stop()`` is called (from a signal
handler or another thread). ``stop()`` never interrupts a running cycle: it
stops new ticks and waits for the current one to finish.

Example::

    >>> driver = ScheduleDriver(ScheduleSpec.from_mapping({"every": "5m"}))
    >>> driver.run(poller.run_once)   # blocks until driver.stop()
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED, JobEvent
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from uptrends_spine.core.logging import get_logger
from uptrends_spine.core.scheduling.protocol import BackendHealth, TickCallback
from uptrends_spine.core.scheduling.spec import ScheduleSpec

logger = get_logger(__name__)

JOB_ID = "uptrends_cycle"


class ScheduleDriver:
    """Single-worker timer that calls ``tick_callback`` per schedule trigger.

    Args:
        schedule: Validated schedule spec.
        misfire_grace_seconds: How late a tick may still run (cron/at).
    """

    name: str = "apscheduler"

    def __init__(self, schedule: ScheduleSpec, *, misfire_grace_seconds: int = 30) -> None:
        self.schedule = schedule
        self._scheduler = BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers=1)},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": misfire_grace_seconds,
            },
        )
        self._stop_event = threading.Event()
        self._shutdown_lock = threading.Lock()
        self._started = False
        self._tick_count = 0
        self._last_tick: datetime | None = None

    # ------------------------------------------------------------------
    # SchedulerBackend protocol
    # ------------------------------------------------------------------

    def start(self, tick_callback: TickCallback) -> None:
        """Register the cycle job and start the scheduler thread."""
        if self._started:
            logger.warning("scheduler.already_started")
            return

        def _tick_wrapper() -> None:
            self._tick_count += 1
            self._last_tick = datetime.now(UTC)
            try:
                tick_callback()
            except Exception:
                logger.exception("scheduler.tick_failed", tick=self._tick_count)

        self._scheduler.add_listener(
            self._on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED
        )
        self._scheduler.add_job(
            _tick_wrapper,
            trigger=self.schedule.trigger(),
            id=JOB_ID,
            name=f"uptrends cycle ({self.schedule.kind.value} {self.schedule.value})",
            replace_existing=True,
        )
        self._scheduler.start()
        self._started = True
        logger.info(
            "scheduler.started",
            kind=self.schedule.kind.value,
            value=self.schedule.value,
            next_tick=self._next_tick_iso(),
        )

    def stop(self, wait: bool = True) -> None:
        """Stop scheduling new ticks and (with ``wait``) let the current cycle finish."""
        self._stop_event.set()
        self._shutdown(wait=wait)

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    # ------------------------------------------------------------------
    # Blocking run loop
    # ------------------------------------------------------------------

    def join(self, timeout: float | None = None) -> bool:
        """Block until stopped. Returns False if ``timeout`` expired first."""
        if not self._stop_event.wait(timeout):
            return False
        self._shutdown(wait=True)
        return True

    def run(self, tick_callback: TickCallback) -> None:
        """``start()`` then ``join()``: the top-level loop of the poller."""
        self.start(tick_callback)
        try:
            self.join()
        finally:
            self._shutdown(wait=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _shutdown(self, wait: bool) -> None:
        with self._shutdown_lock:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=wait)
                logger.info("scheduler.stopped", ticks=self._tick_count)
            self._started = False

    def _on_job_event(self, event: JobEvent) -> None:
        if event.code == EVENT_JOB_MISSED:
            logger.warning("scheduler.tick_missed", scheduled=str(event.scheduled_run_time))
        if self.schedule.one_shot:
            # Runs on the worker thread: only signal, join() does the shutdown.
            self._stop_event.set()

    def _next_tick(self) -> datetime | None:
        job = self._scheduler.get_job(JOB_ID)
        return getattr(job, "next_run_time", None) if job else None

    def _next_tick_iso(self) -> str | None:
        next_tick = self._next_tick()
        return next_tick.isoformat() if next_tick else None

    def get_health(self) -> BackendHealth:
        running = self._scheduler.running
        return BackendHealth(
            healthy=running and not self._stop_event.is_set(),
            backend=self.name,
            tick_count=self._tick_count,
            last_tick=self._last_tick,
            next_tick=self._next_tick() if running else None,
            extra={"schedule": self.schedule.to_dict()},
        )

    @property
    def is_running(self) -> bool:
        return self._scheduler.running

    @property
    def is_stopped(self) -> bool:
        return self._stop_event.is_set()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick
