"""
Relative-date tokens for request parameters.

Operations are configured once but run every day, so parameters such as
``Start: first_day_of_previous_month`` are symbolic. Each cycle reads
"today" once and resolves every token against it, so all operations of a
cycle see the same reference date.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │  DATE_TOKENS: name → DateToken(resolve, fmt)             │
        ├──────────────────────────────────────────────────────────┤
        │  today / yesterday                                       │
        │  first|last_day_of_current|previous_month                │
        │  <weekday>_of_current_week   (ISO week, Monday first)    │
        │  <weekday>_of_previous_week                              │
        │  current_day_of_month / current_month / current_year     │
        │  previous_month                                          │
        └──────────────────────────────────────────────────────────┘

        Primitives (all composite tokens are derived from these):

            day_of_week(d, w)            = d + (w - d.isoweekday())
            day_of_previous_week(d, w)   = day_of_week(d, w) - 7
            same_day_of_different_month  = ((d + 1) shifted by m months) - 1
            day_of_different_month(d,m,n)= date(year, month, n) of the above

    Shifting ``d + 1`` instead of ``d`` keeps month-end dates on month ends:
    2024-01-31 + 1 day is 2024-02-01, one month later is 2024-03-01, minus
    one day is 2024-02-29.

Examples:
    >>> from datetime import date
    >>> resolve("last_day_of_previous_month", date(2024, 3, 15))
    datetime.date(2024, 2, 29)
    >>> render("current_month", date(2024, 3, 15))
    '03'

Tags:
    temporal, date-handling, tokens, uptrends-spine
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, timedelta
from types import MappingProxyType

from dateutil.relativedelta import relativedelta

from uptrends_spine.core.errors import UnknownTokenError

DATE_FORMAT = "%Y/%m/%d"

ONE_DAY = timedelta(days=1)

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


# =============================================================================
# PRIMITIVES
# =============================================================================


def day_of_week(d: date, iso_weekday: int) -> date:
    """Date with ISO weekday ``iso_weekday`` (Monday=1) in the same ISO week as ``d``."""
    if not 1 <= iso_weekday <= 7:
        raise ValueError(f"iso_weekday must be in 1..7, got {iso_weekday}")
    return d + timedelta(days=iso_weekday - d.isoweekday())


def day_of_previous_week(d: date, iso_weekday: int) -> date:
    return day_of_week(d, iso_weekday) - timedelta(days=7)


def same_day_of_different_month(d: date, month_delta: int) -> date:
    """Shift ``d`` by whole months without overflowing shorter months.

    ``relativedelta`` clamps to the last day of the target month, which is
    what makes the ``+1 day / -1 day`` anchoring work.
    """
    return (d + ONE_DAY) + relativedelta(months=month_delta) - ONE_DAY


def day_of_different_month(d: date, month_delta: int, day: int) -> date:
    shifted = same_day_of_different_month(d, month_delta)
    return date(shifted.year, shifted.month, day)


# =============================================================================
# TOKEN TABLE
# =============================================================================


@dataclass(frozen=True)
class DateToken:
    """A symbolic parameter value.

    Attributes:
        name: Token as written in configuration
        resolve: ``today -> date``
        fmt: strftime format used when the token becomes a query value
    """

    name: str
    resolve: Callable[[date], date]
    fmt: str = DATE_FORMAT

    def render(self, today: date) -> str:
        return self.resolve(today).strftime(self.fmt)


def _first_day_of_current_month(today: date) -> date:
    return date(today.year, today.month, 1)


def _build_tokens() -> dict[str, DateToken]:
    tokens = [
        DateToken("today", lambda today: today),
        DateToken("yesterday", lambda today: today - ONE_DAY),
        DateToken("first_day_of_current_month", _first_day_of_current_month),
        DateToken(
            "last_day_of_current_month",
            lambda today: day_of_different_month(today, 1, 1) - ONE_DAY,
        ),
        DateToken(
            "first_day_of_previous_month",
            lambda today: day_of_different_month(today, -1, 1),
        ),
        DateToken(
            "last_day_of_previous_month",
            lambda today: _first_day_of_current_month(today) - ONE_DAY,
        ),
        DateToken("current_day_of_month", lambda today: today, fmt="%d"),
        DateToken("current_month", lambda today: today, fmt="%m"),
        DateToken("current_year", lambda today: today, fmt="%Y"),
        DateToken(
            "previous_month",
            lambda today: day_of_different_month(today, -1, 1),
            fmt="%m",
        ),
    ]

    for iso_weekday, weekday in enumerate(WEEKDAYS, start=1):
        # Default argument binds the loop variable per lambda.
        tokens.append(
            DateToken(
                f"{weekday}_of_current_week",
                lambda today, w=iso_weekday: day_of_week(today, w),
            )
        )
        tokens.append(
            DateToken(
                f"{weekday}_of_previous_week",
                lambda today, w=iso_weekday: day_of_previous_week(today, w),
            )
        )

    return {token.name: token for token in tokens}


DATE_TOKENS: Mapping[str, DateToken] = MappingProxyType(_build_tokens())


def is_token(value: object) -> bool:
    """Check whether a parameter value names a date token."""
    return isinstance(value, str) and value in DATE_TOKENS


def get_token(name: str) -> DateToken:
    try:
        return DATE_TOKENS[name]
    except KeyError:
        raise UnknownTokenError(name) from None


def resolve(token: str, today: date) -> date:
    """Resolve ``token`` against the reference date ``today``.

    Raises:
        UnknownTokenError: ``token`` is not an enumerated date token.
    """
    return get_token(token).resolve(today)


def render(token: str, today: date) -> str:
    """Resolve ``token`` and format it the way it is sent as a query value."""
    return get_token(token).render(today)


__all__ = [
    "DATE_FORMAT",
    "DATE_TOKENS",
    "DateToken",
    "day_of_week",
    "day_of_previous_week",
    "same_day_of_different_month",
    "day_of_different_month",
    "is_token",
    "get_token",
    "resolve",
    "render",
]
