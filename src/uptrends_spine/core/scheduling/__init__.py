"""Schedule-driven cycle triggering.

- :mod:`.spec` — ``ScheduleSpec``: exactly one of cron / every / at / in
- :mod:`.protocol` — backend protocol and health record
- :mod:`.apscheduler_backend` — ``ScheduleDriver``, single-worker APScheduler loop
"""

from uptrends_spine.core.scheduling.apscheduler_backend import ScheduleDriver
from uptrends_spine.core.scheduling.protocol import BackendHealth, SchedulerBackend, TickCallback
from uptrends_spine.core.scheduling.spec import (
    CroniterTrigger,
    ScheduleKind,
    ScheduleSpec,
    parse_at,
    parse_cron,
    parse_duration,
)

__all__ = [
    "BackendHealth",
    "CroniterTrigger",
    "ScheduleDriver",
    "ScheduleKind",
    "ScheduleSpec",
    "SchedulerBackend",
    "TickCallback",
    "parse_at",
    "parse_cron",
    "parse_duration",
]
