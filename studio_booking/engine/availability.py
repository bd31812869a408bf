"""
Availability calculator.

Turns a resource's weekly working template plus its occupied intervals
(scheduled/completed bookings and external calendar busy periods) into a
per-day classification and fixed-granularity slots for one day.

Classification for a day:
    unavailable  no working hours, switch off, or the whole window occupied
    limited      occupied minutes >= limited_threshold * working minutes
    available    otherwise
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Iterator, Optional

from studio_booking.adapters.calendar import CalendarAdapter
from studio_booking.adapters.side_effects import SideEffects
from studio_booking.config import AvailabilityConfig, settings
from studio_booking.engine.directory import ResourceDirectory
from studio_booking.engine.repository import Repository
from studio_booking.errors import InvalidRequestError
from studio_booking.schemas.booking_schema import (
    AvailabilityStatus,
    DayAvailability,
    Slot,
    TimeInterval,
)
from studio_booking.schemas.resource_schema import Resource
from studio_booking.utils import add_minutes, at, date_range, merge_spans, minutes_between

logger = logging.getLogger(__name__)


class DayAvailabilityRange:
    """Lazy, restartable sequence of ``DayAvailability`` in ascending date order.

    Each iteration takes a fresh snapshot of bookings and calendar busy
    periods, so iterating twice reflects any change made in between.
    """

    def __init__(
        self, calculator: "AvailabilityCalculator", resource_id: int, start_date: date, end_date: date
    ) -> None:
        self._calculator = calculator
        self.resource_id = resource_id
        self.start_date = start_date
        self.end_date = end_date

    def __iter__(self) -> Iterator[DayAvailability]:
        return self._calculator._iter_days(self.resource_id, self.start_date, self.end_date)

    def __len__(self) -> int:
        return (self.end_date - self.start_date).days + 1


class AvailabilityCalculator:
    """Derives day and slot availability. Never mutates state."""

    def __init__(
        self,
        repository: Repository,
        directory: ResourceDirectory,
        calendar: CalendarAdapter,
        side_effects: SideEffects,
        config: AvailabilityConfig = settings.availability,
    ) -> None:
        self._repo = repository
        self._directory = directory
        self._calendar = calendar
        self._effects = side_effects
        self._config = config

    # ------------------------------------------------------------------ #
    # Occupancy
    # ------------------------------------------------------------------ #

    def external_busy(self, resource: Resource, start_date: date, end_date: date) -> list[TimeInterval]:
        """Calendar busy periods; a failing calendar contributes nothing."""
        return self._effects.call(
            "calendar.get_busy_intervals",
            self._calendar.get_busy_intervals,
            resource, start_date, end_date,
            default=[],
        )

    def occupied_intervals(
        self,
        resource: Resource,
        start_date: date,
        end_date: date,
        busy: Optional[list[TimeInterval]] = None,
        exclude_booking_id: Optional[int] = None,
    ) -> list[TimeInterval]:
        """Occupying bookings plus busy periods touching ``[start_date, end_date]``."""
        lo = at(start_date, time.min)
        hi = at(end_date + timedelta(days=1), time.min)
        if busy is None:
            busy = self.external_busy(resource, start_date, end_date)
        intervals = [
            b.interval
            for b in self._repo.list_bookings(resource_id=resource.id)
            if b.occupies_interval and b.id != exclude_booking_id
            and b.start_time < hi and lo < b.end_time
        ]
        intervals.extend(i for i in busy if i.start < hi and lo < i.end)
        return sorted(intervals, key=lambda i: i.start)

    @staticmethod
    def fits_working_hours(resource: Resource, interval: TimeInterval) -> bool:
        """True when the interval lies inside a single working window."""
        day = interval.start.date()
        for window in resource.windows_for(day):
            if at(day, window.start) <= interval.start and interval.end <= at(day, window.end):
                return True
        return False

    def check_interval(
        self,
        resource: Resource,
        interval: TimeInterval,
        busy: list[TimeInterval],
        exclude_booking_id: Optional[int] = None,
    ) -> Optional[str]:
        """Reason the interval cannot be booked, or None when it is free.

        Reads bookings at call time; the caller holds the resource lock when
        the result decides a commit.
        """
        if not resource.is_available:
            return f"resource {resource.id} is not accepting bookings"
        if not self.fits_working_hours(resource, interval):
            return "outside working hours"
        for booking in self._repo.list_bookings(resource_id=resource.id):
            if booking.id == exclude_booking_id or not booking.occupies_interval:
                continue
            if booking.interval.overlaps(interval):
                return f"overlaps booking {booking.id}"
        for period in busy:
            if period.overlaps(interval):
                return "overlaps a calendar commitment"
        return None

    def is_interval_free(
        self, resource_id: int, interval: TimeInterval, exclude_booking_id: Optional[int] = None
    ) -> bool:
        resource = self._directory.get_resource(resource_id)
        busy = self.external_busy(resource, interval.start.date(), interval.end.date())
        return self.check_interval(resource, interval, busy, exclude_booking_id) is None

    # ------------------------------------------------------------------ #
    # Day classification
    # ------------------------------------------------------------------ #

    def classify(self, resource: Resource, working_minutes: int, occupied_minutes: int) -> AvailabilityStatus:
        if working_minutes <= 0 or not resource.is_available:
            return AvailabilityStatus.UNAVAILABLE
        if occupied_minutes >= working_minutes:
            return AvailabilityStatus.UNAVAILABLE
        if occupied_minutes >= self._config.limited_threshold * working_minutes:
            return AvailabilityStatus.LIMITED
        return AvailabilityStatus.AVAILABLE

    def compute_day_availability(
        self, resource_id: int, start_date: date, end_date: date
    ) -> DayAvailabilityRange:
        """One ``DayAvailability`` per day in ``[start_date, end_date]``.

        Raises:
            NotFoundError: Unknown resource.
            InvalidRequestError: Reversed range or range longer than ``max_range_days``.
        """
        self._directory.get_resource(resource_id)
        if end_date < start_date:
            raise InvalidRequestError(f"end_date {end_date} is before start_date {start_date}")
        days = (end_date - start_date).days + 1
        if days > self._config.max_range_days:
            raise InvalidRequestError(
                f"Date range of {days} days exceeds the maximum of {self._config.max_range_days}"
            )
        return DayAvailabilityRange(self, resource_id, start_date, end_date)

    def _iter_days(self, resource_id: int, start_date: date, end_date: date) -> Iterator[DayAvailability]:
        resource = self._directory.get_resource(resource_id)
        occupied = self.occupied_intervals(resource, start_date, end_date)
        spans = merge_spans((i.start, i.end) for i in occupied)

        for day in date_range(start_date, end_date):
            working = 0
            taken = 0
            for window in resource.windows_for(day):
                w_start, w_end = at(day, window.start), at(day, window.end)
                working += window.duration_minutes
                for s_start, s_end in spans:
                    lo, hi = max(s_start, w_start), min(s_end, w_end)
                    if lo < hi:
                        taken += minutes_between(lo, hi)
            yield DayAvailability(
                date=day,
                status=self.classify(resource, working, taken),
                working_minutes=working,
                occupied_minutes=taken,
            )

    # ------------------------------------------------------------------ #
    # Slots
    # ------------------------------------------------------------------ #

    def compute_slots(
        self, resource_id: int, day: date, granularity_minutes: Optional[int] = None
    ) -> list[Slot]:
        """Fixed-granularity slots covering each working window of ``day``.

        A slot whose end would pass the window's end is dropped, never
        truncated. Any positive overlap with an occupied interval marks the
        whole slot unavailable.
        """
        if granularity_minutes is None:
            granularity_minutes = self._config.slot_granularity_minutes
        if (
            isinstance(granularity_minutes, bool)
            or not isinstance(granularity_minutes, int)
            or granularity_minutes <= 0
        ):
            raise InvalidRequestError(
                f"granularity_minutes must be a positive integer, got {granularity_minutes!r}"
            )

        resource = self._directory.get_resource(resource_id)
        windows = resource.windows_for(day)
        if not windows:
            return []

        occupied = self.occupied_intervals(resource, day, day)
        slots: list[Slot] = []
        for window in windows:
            cursor: datetime = at(day, window.start)
            window_end = at(day, window.end)
            while add_minutes(cursor, granularity_minutes) <= window_end:
                candidate = TimeInterval(start=cursor, end=add_minutes(cursor, granularity_minutes))
                free = resource.is_available and not any(i.overlaps(candidate) for i in occupied)
                slots.append(Slot(start_time=candidate.start, end_time=candidate.end, is_available=free))
                cursor = candidate.end

        logger.debug(
            "Computed %d slots for resource %s on %s (%d free)",
            len(slots), resource_id, day, sum(s.is_available for s in slots),
        )
        return slots

    def next_available_dates(
        self, resource_id: int, start_date: date, limit: int = 3, horizon_days: int = 14
    ) -> list[date]:
        """Earliest days from ``start_date`` not classified unavailable."""
        horizon = min(horizon_days, self._config.max_range_days)
        end_date = start_date + timedelta(days=horizon - 1)
        found: list[date] = []
        for day in self.compute_day_availability(resource_id, start_date, end_date):
            if day.status != AvailabilityStatus.UNAVAILABLE:
                found.append(day.date)
                if len(found) >= limit:
                    break
        return found
