"""
Cron expression support for recurring jobs.

Accepts standard 5-field crontab expressions and 6-field expressions with
a leading seconds field. Occurrences are computed with APScheduler's
CronTrigger in UTC.
"""

from datetime import datetime, timedelta

from apscheduler.triggers.cron import CronTrigger

from .errors import InvalidOperationError


MINUTELY = "* * * * *"
EVERY_SECOND = "* * * * * *"

# APScheduler counts weekdays from Monday; crontab counts from Sunday (0 and 7)
_WEEKDAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
_CRONTAB_WEEKDAYS = {
    "sun": 0, "mon": 1, "tue": 2, "wed": 3, "thu": 4, "fri": 5, "sat": 6,
}


def _crontab_weekday(token: str) -> int:
    value = _CRONTAB_WEEKDAYS.get(token.lower())
    if value is None:
        value = int(token)
    if not 0 <= value <= 7:
        raise ValueError(f"day of week out of range: {token}")
    return value


def _translate_day_of_week(field: str) -> str:
    """
    Rewrite a crontab day-of-week field as APScheduler weekday names.

    Lists, ranges and steps are expanded, so "1-5" becomes
    "mon,tue,wed,thu,fri" and "0" or "7" become "sun".

    Raises:
        ValueError: If the field is malformed
    """
    if field == "*":
        return field

    days: set[int] = set()
    for item in field.split(","):
        span, _, step_text = item.partition("/")
        step = int(step_text) if step_text else 1
        if step < 1:
            raise ValueError(f"invalid step in day of week: {item}")

        if span == "*":
            first, last = 0, 6
        elif "-" in span:
            start, _, end = span.partition("-")
            first, last = _crontab_weekday(start), _crontab_weekday(end)
        else:
            first = _crontab_weekday(span)
            last = 6 if step_text else first

        if first > last:
            raise ValueError(f"invalid day of week range: {item}")
        days.update(day % 7 for day in range(first, last + 1, step))

    # crontab 0 (Sunday) -> APScheduler 6
    apscheduler_days = sorted((day + 6) % 7 for day in days)
    return ",".join(_WEEKDAY_NAMES[day] for day in apscheduler_days)


def parse_cron(expression: str) -> CronTrigger:
    """
    Build a CronTrigger from a 5- or 6-field expression.

    Raises:
        InvalidOperationError: If the expression cannot be parsed
    """
    fields = expression.split()
    if len(fields) == 5:
        fields = ["0"] + fields
    elif len(fields) != 6:
        raise InvalidOperationError(
            f"Invalid cron expression '{expression}': expected 5 or 6 fields, got {len(fields)}"
        )

    second, minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_translate_day_of_week(day_of_week),
            timezone="UTC",
        )
    except ValueError as e:
        raise InvalidOperationError(f"Invalid cron expression '{expression}': {e}") from e


def next_occurrence(expression: str, after: datetime) -> datetime:
    """
    First occurrence strictly after the given time.

    Args:
        expression: Cron expression
        after: Aware datetime

    Returns:
        Aware datetime of the next occurrence
    """
    trigger = parse_cron(expression)
    next_time = trigger.get_next_fire_time(None, after + timedelta(microseconds=1))
    if next_time is None:
        raise InvalidOperationError(f"Cron expression '{expression}' never fires")
    return next_time
