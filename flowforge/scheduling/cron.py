"""Cron expression normalisation."""

from __future__ import annotations

from typing import Any, Optional

from apscheduler.triggers.cron import CronTrigger

from ..constants import DEFAULT_TIMEZONE
from ..errors import InvalidScheduleError

# Legacy shorthands understood by the workflow editor.
SHORTHANDS = {
    "1": "* * * * *",
    "11": "0 * * * *",
    "111": "0 0 * * *",
    "1111": "0 0 * * 1",
}


def normalize_cron(schedule: Any, timezone: Optional[str] = None) -> str:
    """Return a validated five-field crontab expression for ``schedule``.

    Shorthands are expanded and a six-field expression loses its leading
    seconds field. Raises :class:`InvalidScheduleError` for anything that does
    not parse.
    """

    if not isinstance(schedule, str) or not schedule.strip():
        raise InvalidScheduleError(schedule, "schedule must be a non-empty string")

    expression = " ".join(schedule.split())
    expression = SHORTHANDS.get(expression, expression)
    fields = expression.split(" ")
    if len(fields) == 6:
        expression = " ".join(fields[1:])
    elif len(fields) != 5:
        raise InvalidScheduleError(schedule, f"expected 5 fields, got {len(fields)}")

    build_trigger(expression, timezone or DEFAULT_TIMEZONE, original=schedule)
    return expression


# Crontab counts weekdays from Sunday (0 or 7); APScheduler counts from Monday.
_CRONTAB_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _weekday_number(token: str) -> int:
    token = token.lower()
    if token in _CRONTAB_WEEKDAYS:
        return _CRONTAB_WEEKDAYS.index(token)
    value = int(token)
    if not 0 <= value <= 7:
        raise ValueError(f"day of week {token!r} is out of range 0-7")
    return value % 7


def convert_weekdays(field: str) -> str:
    """Rewrite a crontab day-of-week field as APScheduler weekday names.

    ``1`` becomes ``mon``, ``0`` and ``7`` become ``sun``; ranges, lists and
    steps are expanded to an explicit list of names.
    """

    if field in ("*", "?"):
        return "*"
    days: set[int] = set()
    for part in field.split(","):
        base, _, step_text = part.partition("/")
        step = int(step_text) if step_text else 1
        if step < 1:
            raise ValueError(f"invalid step in day of week {part!r}")
        if base == "*":
            start, end = 0, 6
        elif "-" in base:
            first, last = base.split("-", 1)
            start = _weekday_number(first)
            end = _weekday_number(last)
            if end < start and end == 0:
                end = 7
        else:
            start = _weekday_number(base)
            end = 6 if step_text else start
        if end < start:
            raise ValueError(f"day of week range {part!r} is reversed")
        days.update(day % 7 for day in range(start, end + 1, step))
    return ",".join(_CRONTAB_WEEKDAYS[day] for day in sorted(days))


def build_trigger(
    expression: str, timezone: str = DEFAULT_TIMEZONE, original: Any = None
) -> CronTrigger:
    try:
        minute, hour, day, month, day_of_week = expression.split(" ")
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=convert_weekdays(day_of_week),
            timezone=timezone,
        )
    except (ValueError, KeyError, TypeError) as e:
        raise InvalidScheduleError(original if original is not None else expression, str(e)) from e
