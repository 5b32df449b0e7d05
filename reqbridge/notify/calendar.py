"""Weekday / holiday gate for the scheduled notification."""

from datetime import date
from typing import Iterable

SATURDAY = 5
SUNDAY = 6


def is_weekend(day: date) -> bool:
    return day.weekday() in (SATURDAY, SUNDAY)


def is_holiday(day: date, holidays: Iterable[str]) -> bool:
    """``holidays`` are fixed dates in MM-DD form"""
    return day.strftime("%m-%d") in set(holidays)


def should_skip(day: date, holidays: Iterable[str] = ()) -> bool:
    """True on Saturdays, Sundays and listed fixed holidays"""
    return is_weekend(day) or is_holiday(day, holidays)
