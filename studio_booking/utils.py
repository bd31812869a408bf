"""Shared time and interval helpers used across the booking engine.

All arithmetic is in whole minutes on naive datetimes in the single
implicit studio timezone.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator


def parse_hhmm(value: str) -> time:
    """Parse an ``HH:MM`` string into a time.

    Examples:
        >>> parse_hhmm("09:30")
        datetime.time(9, 30)
    """
    return datetime.strptime(value.strip(), "%H:%M").time()


def minutes_of(value: time) -> int:
    """Minutes elapsed since midnight."""
    return value.hour * 60 + value.minute


def at(day: date, value: time) -> datetime:
    """Combine a calendar day and a wall-clock time."""
    return datetime.combine(day, value)


def add_minutes(value: datetime, minutes: int) -> datetime:
    return value + timedelta(minutes=minutes)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end (floor)."""
    return int((end - start).total_seconds() // 60)


def date_range(start: date, end: date) -> Iterator[date]:
    """Yield each calendar day in ``[start, end]`` inclusive, ascending."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def merge_spans(spans: Iterable[tuple[datetime, datetime]]) -> list[tuple[datetime, datetime]]:
    """Merge overlapping or touching ``(start, end)`` spans into disjoint ones."""
    merged: list[tuple[datetime, datetime]] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
            continue
        merged.append((start, end))
    return merged


def is_whole_minute(value: datetime) -> bool:
    return value.second == 0 and value.microsecond == 0
