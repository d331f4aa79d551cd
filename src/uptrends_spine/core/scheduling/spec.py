"""Schedule specification — exactly one of cron, every, at, in.

::

    schedule:                        trigger
      cron:  "*/5 * * * * UTC"   →   CroniterTrigger (croniter, optional tz)
      every: "1h30m"             →   IntervalTrigger, first tick near-immediately
      at:    "2024-03-15 10:00"  →   DateTrigger (one shot)
      in:    "10m"               →   DateTrigger(now + duration) (one shot)

Durations use unit suffixes ``y M w d h m s ms`` and may be combined
(``"1h30m"``); a bare number is seconds.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from croniter import croniter

from uptrends_spine.core.errors import ScheduleError

FIRST_TICK_DELAY = timedelta(milliseconds=10)

_DURATION_UNITS = {
    "y": timedelta(days=365),
    "M": timedelta(days=30),
    "w": timedelta(weeks=1),
    "d": timedelta(days=1),
    "h": timedelta(hours=1),
    "m": timedelta(minutes=1),
    "s": timedelta(seconds=1),
    "ms": timedelta(milliseconds=1),
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|[yMwdhms])")
_BARE_NUMBER = re.compile(r"\d+(?:\.\d+)?")

MSG_INVALID_SCHEDULE = (
    "Invalid config. schedule hash must contain exactly one of the following "
    "keys - cron, at, every or in"
)


class ScheduleKind(str, Enum):
    CRON = "cron"
    EVERY = "every"
    AT = "at"
    IN = "in"


def parse_duration(value: str) -> timedelta:
    """Parse ``"1h30m"``-style durations (bare numbers are seconds)."""
    text = str(value).strip()
    if _BARE_NUMBER.fullmatch(text):
        duration = timedelta(seconds=float(text))
    else:
        position = 0
        duration = timedelta()
        for match in _DURATION_PART.finditer(text):
            if match.start() != position:
                break
            duration += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            position = match.end()
        if position != len(text) or not text:
            raise ScheduleError(f"Invalid duration {value!r}")

    if duration <= timedelta():
        raise ScheduleError(f"Duration must be positive, got {value!r}")
    return duration


def _zone(name: str) -> tzinfo | None:
    if name.upper() in ("UTC", "Z"):
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def parse_at(value: str) -> datetime:
    """Parse an ISO-8601 instant, optionally followed by a zone name.

    Naive times are taken in the local zone.
    """
    text = str(value).strip()
    zone: tzinfo | None = None
    head, _, tail = text.rpartition(" ")
    if head and not tail[:1].isdigit() and (zone := _zone(tail)) is not None:
        text = head
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        raise ScheduleError(f"Invalid 'at' time {value!r}") from None

    if zone is not None:
        return moment.replace(tzinfo=zone) if moment.tzinfo is None else moment.astimezone(zone)
    if moment.tzinfo is None:
        return moment.astimezone()
    return moment


class CroniterTrigger(BaseTrigger):
    """APScheduler trigger backed by croniter, so day-of-week follows crontab (0 = Sunday)."""

    def __init__(self, expression: str, timezone: tzinfo | None = None) -> None:
        if not croniter.is_valid(expression):
            raise ScheduleError(f"Invalid cron expression {expression!r}")
        self.expression = expression
        self.timezone = timezone or datetime.now().astimezone().tzinfo

    def get_next_fire_time(self, previous_fire_time: datetime | None, now: datetime) -> datetime:
        start = (previous_fire_time or now).astimezone(self.timezone)
        return croniter(self.expression, start).get_next(datetime)

    def __str__(self) -> str:
        return f"cron[{self.expression}]"

    def __repr__(self) -> str:
        return f"<CroniterTrigger ({self.expression!r}, timezone={self.timezone!s})>"


def parse_cron(value: str) -> CroniterTrigger:
    """Cron expression with an optional trailing zone name (``"0 6 * * 1 Europe/Amsterdam"``)."""
    fields = str(value).split()
    zone = None
    if len(fields) > 5 and (zone := _zone(fields[-1])) is not None:
        fields = fields[:-1]
    return CroniterTrigger(" ".join(fields), zone)


@dataclass(frozen=True)
class ScheduleSpec:
    """Exactly one schedule kind and its value."""

    kind: ScheduleKind
    value: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> ScheduleSpec:
        """Validate a raw ``schedule`` mapping.

        Raises:
            ScheduleError: Missing schedule, zero or several keys, unknown key,
                or a value that does not parse.
        """
        if not raw:
            raise ScheduleError("Invalid config. No schedule was specified.")
        if not isinstance(raw, Mapping) or len(raw) != 1:
            raise ScheduleError(MSG_INVALID_SCHEDULE)

        (key, value), = raw.items()
        try:
            kind = ScheduleKind(key)
        except ValueError:
            raise ScheduleError(MSG_INVALID_SCHEDULE) from None

        spec = cls(kind=kind, value=str(value))
        # Parse eagerly so bad values fail at startup, not at first tick.
        spec.trigger()
        return spec

    @property
    def one_shot(self) -> bool:
        return self.kind in (ScheduleKind.AT, ScheduleKind.IN)

    def trigger(self, now: datetime | None = None) -> BaseTrigger:
        now = now or datetime.now().astimezone()
        if self.kind is ScheduleKind.CRON:
            return parse_cron(self.value)
        if self.kind is ScheduleKind.EVERY:
            return IntervalTrigger(
                seconds=parse_duration(self.value).total_seconds(),
                start_date=now + FIRST_TICK_DELAY,
            )
        if self.kind is ScheduleKind.AT:
            return DateTrigger(run_date=parse_at(self.value))
        return DateTrigger(run_date=now + parse_duration(self.value))

    def to_dict(self) -> dict[str, str]:
        return {self.kind.value: self.value}


__all__ = [
    "ScheduleKind",
    "ScheduleSpec",
    "CroniterTrigger",
    "parse_duration",
    "parse_at",
    "parse_cron",
    "FIRST_TICK_DELAY",
]
