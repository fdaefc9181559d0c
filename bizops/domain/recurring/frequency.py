"""
Frequency calculator for recurring schedules

Pure date arithmetic: given a schedule's cadence and the previous occurrence,
work out the next one. No database or clock access so it can be tested directly.

Day-of-week numbering follows the booking UI: 0 = Sunday ... 6 = Saturday.
"""

from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

FREQUENCIES = ("daily", "weekly", "biweekly", "monthly", "quarterly", "yearly")

# Months advanced per interval unit for month-based frequencies
MONTH_STEPS = {"monthly": 1, "quarterly": 3, "yearly": 12}


class FrequencyError(ValueError):
    """Raised when a schedule's cadence definition cannot produce a next date"""


def to_day_of_week(value: date) -> int:
    """Python weekday (Monday=0) -> schedule day_of_week (Sunday=0)"""
    return (value.weekday() + 1) % 7


def add_months(value: date, months: int, day: int) -> date:
    """Move `months` forward and land on `day`, clamped to the target month's length"""
    return value + relativedelta(months=months, day=day)


def validate_cadence(
    frequency: str,
    interval: Optional[int],
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
) -> None:
    if frequency not in FREQUENCIES:
        raise FrequencyError(f"Unsupported frequency: {frequency!r}")
    if interval is None or interval <= 0:
        raise FrequencyError(f"Interval must be a positive integer, got {interval!r}")
    if day_of_week is not None and not 0 <= day_of_week <= 6:
        raise FrequencyError(f"day_of_week must be between 0 and 6, got {day_of_week}")
    if day_of_month is not None and not 1 <= day_of_month <= 31:
        raise FrequencyError(f"day_of_month must be between 1 and 31, got {day_of_month}")


def compute_next_run(schedule, from_date: date) -> date:
    """
    Compute the occurrence that follows `from_date` for a schedule

    Args:
        schedule: Object exposing frequency, interval, day_of_week, day_of_month, start_date
        from_date: The previous occurrence (the schedule's current next_run_date)

    Returns:
        The next occurrence, always strictly after from_date

    Raises:
        FrequencyError: If the cadence is misconfigured
    """
    frequency = schedule.frequency
    interval = schedule.interval
    day_of_week = schedule.day_of_week
    day_of_month = schedule.day_of_month
    validate_cadence(frequency, interval, day_of_week, day_of_month)

    if frequency == "daily":
        next_date = from_date + timedelta(days=interval)

    elif frequency in ("weekly", "biweekly"):
        weeks = interval * 2 if frequency == "biweekly" else interval
        next_date = from_date + timedelta(weeks=weeks)
        if day_of_week is not None:
            # Earliest matching weekday at least `weeks` after the previous occurrence
            next_date += timedelta(days=(day_of_week - to_day_of_week(next_date)) % 7)

    else:
        anchor_day = day_of_month
        if anchor_day is None:
            anchor_day = schedule.start_date.day if schedule.start_date else from_date.day
        next_date = add_months(from_date, interval * MONTH_STEPS[frequency], anchor_day)

    if next_date <= from_date:
        raise FrequencyError(
            f"Computed next run {next_date} is not after {from_date} for frequency {frequency}"
        )
    return next_date


def compute_first_run(
    frequency: str,
    start_date: date,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
) -> date:
    """
    First occurrence on or after start_date

    Weekly cadences snap forward to day_of_week; month-based cadences snap to
    day_of_month in the start month, or the following month if that day already passed.
    """
    validate_cadence(frequency, 1, day_of_week, day_of_month)

    if frequency in ("weekly", "biweekly") and day_of_week is not None:
        return start_date + timedelta(days=(day_of_week - to_day_of_week(start_date)) % 7)

    if frequency in MONTH_STEPS and day_of_month is not None:
        candidate = add_months(start_date, 0, day_of_month)
        if candidate < start_date:
            candidate = add_months(start_date, 1, day_of_month)
        return candidate

    return start_date
