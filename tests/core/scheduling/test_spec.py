"""Tests for uptrends_spine.core.scheduling.spec — schedule parsing."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from uptrends_spine.core.errors import ConfigError, ScheduleError
from uptrends_spine.core.scheduling.spec import (
    FIRST_TICK_DELAY,
    CroniterTrigger,
    ScheduleKind,
    ScheduleSpec,
    parse_at,
    parse_cron,
    parse_duration,
)


class TestParseDuration:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("30s", timedelta(seconds=30)),
            ("5m", timedelta(minutes=5)),
            ("1h30m", timedelta(hours=1, minutes=30)),
            ("2d", timedelta(days=2)),
            ("1w", timedelta(weeks=1)),
            ("1M", timedelta(days=30)),
            ("1y", timedelta(days=365)),
            ("250ms", timedelta(milliseconds=250)),
            ("1m30s500ms", timedelta(minutes=1, seconds=30, milliseconds=500)),
            ("90", timedelta(seconds=90)),
            ("1.5h", timedelta(minutes=90)),
        ],
    )
    def test_valid(self, text, expected):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "abc", "5x", "m5", "5m garbage", "0s", "0"])
    def test_invalid(self, text):
        with pytest.raises(ScheduleError):
            parse_duration(text)


class TestParseAt:
    def test_offset_is_kept(self):
        moment = parse_at("2024-03-15T10:00:00+02:00")
        assert moment.utcoffset() == timedelta(hours=2)

    def test_trailing_zone_name(self):
        moment = parse_at("2024-03-15 10:00 Europe/Amsterdam")
        assert moment.tzinfo == ZoneInfo("Europe/Amsterdam")
        assert moment.hour == 10

    def test_utc_suffix(self):
        assert parse_at("2024-03-15 10:00 UTC").tzinfo is UTC

    def test_naive_is_local_and_aware(self):
        assert parse_at("2024-03-15 10:00").tzinfo is not None

    @pytest.mark.parametrize("text", ["tomorrow", "2024-13-01", "10:00 Mars/Olympus"])
    def test_invalid(self, text):
        with pytest.raises(ScheduleError):
            parse_at(text)


class TestCron:
    def test_plain_expression(self):
        trigger = parse_cron("*/5 * * * *")
        assert isinstance(trigger, CroniterTrigger)
        assert trigger.expression == "*/5 * * * *"

    def test_trailing_zone(self):
        trigger = parse_cron("0 6 * * 1 Europe/Amsterdam")
        assert trigger.expression == "0 6 * * 1"
        assert trigger.timezone == ZoneInfo("Europe/Amsterdam")

    def test_invalid_expression(self):
        with pytest.raises(ScheduleError):
            parse_cron("every tuesday")

    def test_day_of_week_zero_is_sunday(self):
        trigger = CroniterTrigger("0 6 * * 0", UTC)
        now = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)  # Friday
        assert trigger.get_next_fire_time(None, now) == datetime(2024, 3, 17, 6, 0, tzinfo=UTC)

    def test_next_fire_after_previous(self):
        trigger = CroniterTrigger("*/5 * * * *", UTC)
        previous = datetime(2024, 3, 15, 12, 5, tzinfo=UTC)
        fire = trigger.get_next_fire_time(previous, previous)
        assert fire == datetime(2024, 3, 15, 12, 10, tzinfo=UTC)


class TestScheduleSpec:
    @pytest.mark.parametrize(
        "raw,kind",
        [
            ({"cron": "* * * * *"}, ScheduleKind.CRON),
            ({"every": "1h"}, ScheduleKind.EVERY),
            ({"at": "2030-01-01T00:00:00+00:00"}, ScheduleKind.AT),
            ({"in": "10m"}, ScheduleKind.IN),
        ],
    )
    def test_each_kind(self, raw, kind):
        spec = ScheduleSpec.from_mapping(raw)
        assert spec.kind is kind
        assert spec.to_dict() == {kind.value: raw[kind.value]}

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            {},
            {"cron": "* * * * *", "every": "1h"},
            {"hourly": True},
            "every 1h",
        ],
    )
    def test_exactly_one_known_key(self, raw):
        with pytest.raises(ScheduleError):
            ScheduleSpec.from_mapping(raw)

    def test_schedule_errors_are_config_errors(self):
        with pytest.raises(ConfigError):
            ScheduleSpec.from_mapping({"every": "soon"})

    def test_one_shot(self):
        assert ScheduleSpec.from_mapping({"in": "1s"}).one_shot
        assert ScheduleSpec.from_mapping({"at": "2030-01-01 00:00 UTC"}).one_shot
        assert not ScheduleSpec.from_mapping({"every": "1s"}).one_shot
        assert not ScheduleSpec.from_mapping({"cron": "* * * * *"}).one_shot

    def test_every_starts_almost_immediately(self):
        now = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)
        trigger = ScheduleSpec(ScheduleKind.EVERY, "1h").trigger(now)
        assert isinstance(trigger, IntervalTrigger)
        assert trigger.start_date == now + FIRST_TICK_DELAY
        assert trigger.interval == timedelta(hours=1)

    def test_in_fires_once_after_duration(self):
        now = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)
        trigger = ScheduleSpec(ScheduleKind.IN, "10m").trigger(now)
        assert isinstance(trigger, DateTrigger)
        assert trigger.run_date == now + timedelta(minutes=10)
