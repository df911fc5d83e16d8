"""
ISO Week Calendar
=================
ISO-8601 week arithmetic used to bucket sales into weekly history.

Every value is handled as a UTC calendar date: timezone-aware datetimes are
converted to UTC before their date is taken, naive values are read as UTC.
Weeks run Monday to Sunday and are returned as (week, year) pairs.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from business_rules import DATE_PARSING_RULES, PLANNING_RULES

END_OF_DAY = time(23, 59, 59, 999000)


def to_utc_date(value) -> date:
    """
    Convert a date-like value to its UTC calendar date.

    Args:
        value: date, datetime, pandas Timestamp or numpy datetime64

    Returns:
        datetime.date
    """
    if isinstance(value, np.datetime64):
        value = pd.Timestamp(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected a date-like value, got {type(value).__name__}")


def excel_serial_to_date(serial) -> date:
    """
    Convert a spreadsheet serial day-count to a date (day 0 = 1899-12-30).
    The fractional part (time of day) is dropped.
    """
    return DATE_PARSING_RULES["excel_epoch"] + timedelta(days=int(np.floor(serial)))


def iso_week_of(value) -> Tuple[int, int]:
    """
    Return the ISO (week, year) of a date.

    The week holding the date's Thursday decides both numbers, so early January
    dates can belong to the previous ISO year and late December dates to the next.
    """
    iso_year, iso_week, _ = to_utc_date(value).isocalendar()
    return iso_week, iso_year


def week_start(year: int, week: int) -> date:
    """Monday of the given ISO week."""
    return date.fromisocalendar(year, week, 1)


def week_end(year: int, week: int) -> date:
    """Sunday of the given ISO week."""
    return week_start(year, week) + timedelta(days=6)


def week_bounds(year: int, week: int) -> Tuple[datetime, datetime]:
    """
    Inclusive datetime bounds of an ISO week: Monday 00:00 to Sunday 23:59:59.999.
    """
    return (
        datetime.combine(week_start(year, week), time.min),
        datetime.combine(week_end(year, week), END_OF_DAY),
    )


def last_iso_week_of_year(year: int) -> int:
    """
    Number of the last ISO week of a year, looked up from December 31.

    December 31 falls in week 1 of the next ISO year when it is a Monday,
    Tuesday or Wednesday; the week before it is then the year's last week.

    Note: this intentionally differs from taking December 31's week number
    as-is. That shortcut returns 1 for years like 2024, so stepping back from
    week 1 of 2025 would land on week 1 of 2024 and drop 51 weeks. Falling
    back to December 24 keeps every step exactly one week long.
    """
    week, week_year = iso_week_of(date(year, 12, 31))
    if week_year != year:
        week, week_year = iso_week_of(date(year, 12, 24))
    return week


def previous_week(year: int, week: int) -> Tuple[int, int]:
    """Step one ISO week back, rolling over to the previous year's last week."""
    week -= 1
    if week < 1:
        year -= 1
        week = last_iso_week_of_year(year)
    return week, year


def week_range(start_year: int, start_week: int, count: int) -> List[Tuple[int, int]]:
    """
    Descending sequence of `count` ISO weeks starting at (start_week, start_year).

    Args:
        start_year: ISO year of the newest week
        start_week: ISO week number of the newest week
        count: Number of weeks to return

    Returns:
        List of (week, year) tuples, newest first, one week apart
    """
    if count < 0:
        raise ValueError(f"count must be zero or positive, got {count}")

    weeks = []
    week, year = start_week, start_year
    for _ in range(count):
        weeks.append((week, year))
        week, year = previous_week(year, week)
    return weeks


def build_week_spans(start_year: int, start_week: int, count: int) -> List[Dict]:
    """
    Week range enriched with each week's Monday..Sunday span and display label.

    Returns:
        List of dicts with iso_week, iso_year, start, end (dates) and label,
        newest first
    """
    label_template = PLANNING_RULES["week_label_template"]
    spans = []
    for week, year in week_range(start_year, start_week, count):
        spans.append({
            'iso_week': week,
            'iso_year': year,
            'start': week_start(year, week),
            'end': week_end(year, week),
            'label': label_template.format(iso_week=week),
        })
    return spans
