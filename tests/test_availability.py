"""Tests for day classification and slot generation."""

from datetime import time, timedelta

import pytest

from studio_booking.adapters.calendar import CalendarError
from studio_booking.errors import InvalidRequestError, NotFoundError
from studio_booking.schemas.booking_schema import AvailabilityStatus
from studio_booking.schemas.resource_schema import WorkingHours

from tests.conftest import (
    MONDAY,
    SUNDAY,
    add_artist,
    add_offering,
    at_time,
    make_config,
    make_engine,
)


def _day(engine, resource_id, day=MONDAY):
    days = list(engine.availability.compute_day_availability(resource_id, day, day))
    assert len(days) == 1
    return days[0]


class TestDayAvailability:
    """Per-day classification over a date range."""

    def test_free_working_day_is_available(self, engine, artist):
        day = _day(engine, artist.id)
        assert day.status == AvailabilityStatus.AVAILABLE
        assert day.working_minutes == 540
        assert day.occupied_minutes == 0

    def test_closed_day_is_unavailable(self, engine, artist):
        day = _day(engine, artist.id, SUNDAY)
        assert day.status == AvailabilityStatus.UNAVAILABLE
        assert day.working_minutes == 0

    def test_one_entry_per_day_ascending(self, engine, artist):
        days = list(engine.availability.compute_day_availability(
            artist.id, MONDAY, MONDAY + timedelta(days=6)
        ))
        assert [d.date for d in days] == [MONDAY + timedelta(days=i) for i in range(7)]
        assert days[-1].status == AvailabilityStatus.UNAVAILABLE  # Sunday

    def test_range_is_restartable_and_sees_new_bookings(self, engine, artist, session):
        days = engine.availability.compute_day_availability(artist.id, MONDAY, MONDAY)
        assert len(days) == 1
        assert list(days)[0].occupied_minutes == 0

        engine.bookings.create_booking(artist.id, session.id, at_time(MONDAY, 9), 1)
        assert list(days)[0].occupied_minutes == 240

    def test_reversed_range_rejected(self, engine, artist):
        with pytest.raises(InvalidRequestError, match="before"):
            engine.availability.compute_day_availability(artist.id, MONDAY, SUNDAY)

    def test_range_longer_than_maximum_rejected(self):
        engine = make_engine(make_config(max_range_days=7))
        artist = add_artist(engine)
        with pytest.raises(InvalidRequestError, match="exceeds"):
            engine.availability.compute_day_availability(
                artist.id, MONDAY, MONDAY + timedelta(days=7)
            )

    def test_unknown_resource_not_found(self, engine):
        with pytest.raises(NotFoundError):
            engine.availability.compute_day_availability(999, MONDAY, MONDAY)

    def test_switch_off_is_unavailable(self, engine, artist):
        engine.directory.set_availability(artist.id, False)
        assert _day(engine, artist.id).status == AvailabilityStatus.UNAVAILABLE

    def test_fully_booked_day_is_unavailable(self, engine, artist):
        full_day = add_offering(engine, artist, duration_minutes=540, price=800, name="Full Day")
        engine.bookings.create_booking(artist.id, full_day.id, at_time(MONDAY, 9), 1)
        day = _day(engine, artist.id)
        assert day.status == AvailabilityStatus.UNAVAILABLE
        assert day.occupied_minutes == 540

    def test_calendar_busy_periods_count_as_occupied(self, engine, artist, calendar):
        calendar.add_busy(artist.id, at_time(MONDAY, 9), at_time(MONDAY, 14))
        day = _day(engine, artist.id)
        assert day.occupied_minutes == 300
        assert day.status == AvailabilityStatus.LIMITED

    def test_busy_outside_working_window_is_ignored(self, engine, artist, calendar):
        calendar.add_busy(artist.id, at_time(MONDAY, 6), at_time(MONDAY, 9))
        calendar.add_busy(artist.id, at_time(MONDAY, 18), at_time(MONDAY, 22))
        assert _day(engine, artist.id).occupied_minutes == 0

    def test_overlapping_occupancy_is_not_double_counted(self, engine, artist, session, calendar):
        engine.bookings.create_booking(artist.id, session.id, at_time(MONDAY, 9), 1)
        calendar.add_busy(artist.id, at_time(MONDAY, 12), at_time(MONDAY, 15))
        assert _day(engine, artist.id).occupied_minutes == 360

    def test_failing_calendar_treated_as_no_busy_periods(self, engine, artist, calendar):
        calendar.fail_with = CalendarError("calendar down")
        day = _day(engine, artist.id)
        assert day.status == AvailabilityStatus.AVAILABLE
        assert engine.side_effects.failures >= 1

    def test_cancelled_booking_does_not_occupy(self, engine, artist, session):
        booking = engine.bookings.create_booking(artist.id, session.id, at_time(MONDAY, 9), 1)
        engine.bookings.cancel_booking(booking.id, "Changed plans")
        assert _day(engine, artist.id).occupied_minutes == 0


class TestThresholdBoundary:
    """540 working minutes; 270 occupied is exactly half."""

    def _engine_with_occupied(self, minutes, threshold):
        engine = make_engine(make_config(limited_threshold=threshold))
        artist = add_artist(engine)
        offering = add_offering(engine, artist, duration_minutes=minutes)
        engine.bookings.create_booking(artist.id, offering.id, at_time(MONDAY, 9), 1)
        return engine, artist

    def test_exactly_at_threshold_is_limited(self):
        engine, artist = self._engine_with_occupied(270, 0.5)
        assert _day(engine, artist.id).status == AvailabilityStatus.LIMITED

    def test_one_minute_below_threshold_is_available(self):
        engine, artist = self._engine_with_occupied(269, 0.5)
        assert _day(engine, artist.id).status == AvailabilityStatus.AVAILABLE

    def test_threshold_just_above_occupancy_is_available(self):
        engine, artist = self._engine_with_occupied(270, 0.51)
        assert _day(engine, artist.id).status == AvailabilityStatus.AVAILABLE

    def test_threshold_is_configurable(self):
        engine, artist = self._engine_with_occupied(200, 1 / 3)
        assert _day(engine, artist.id).status == AvailabilityStatus.LIMITED


class TestSlots:
    """Fixed-granularity slots inside working windows."""

    def test_slots_cover_window_without_gaps_or_overlaps(self, engine, artist):
        slots = engine.availability.compute_slots(artist.id, MONDAY)
        assert len(slots) == 18
        assert slots[0].start_time == at_time(MONDAY, 9)
        assert slots[-1].end_time == at_time(MONDAY, 18)
        for earlier, later in zip(slots, slots[1:]):
            assert earlier.end_time == later.start_time
        assert all(s.is_available for s in slots)

    @pytest.mark.parametrize("granularity, expected", [(15, 36), (45, 12), (60, 9), (90, 6)])
    def test_granularities_dividing_the_window(self, engine, artist, granularity, expected):
        slots = engine.availability.compute_slots(artist.id, MONDAY, granularity)
        assert len(slots) == expected
        assert slots[-1].end_time == at_time(MONDAY, 18)

    def test_slot_crossing_closing_time_is_excluded(self, engine, artist):
        slots = engine.availability.compute_slots(artist.id, MONDAY, 120)
        assert [s.start_time.hour for s in slots] == [9, 11, 13, 15]
        assert slots[-1].end_time == at_time(MONDAY, 17)

    def test_partial_overlap_marks_whole_slot_unavailable(self, engine, artist):
        small = add_offering(engine, artist, duration_minutes=90, price=150, name="Small")
        engine.bookings.create_booking(artist.id, small.id, at_time(MONDAY, 10), 1)
        slots = {s.start_time.hour: s.is_available
                 for s in engine.availability.compute_slots(artist.id, MONDAY, 60)}
        assert slots[9] is True
        assert slots[10] is False
        assert slots[11] is False  # 11:00-11:30 overlaps
        assert slots[12] is True

    def test_slot_touching_booking_edge_is_available(self, engine, artist, session):
        engine.bookings.create_booking(artist.id, session.id, at_time(MONDAY, 10), 1)
        slots = {s.start_time: s.is_available for s in engine.availability.compute_slots(artist.id, MONDAY)}
        assert slots[at_time(MONDAY, 9, 30)] is True
        assert slots[at_time(MONDAY, 10)] is False
        assert slots[at_time(MONDAY, 13, 30)] is False
        assert slots[at_time(MONDAY, 14)] is True

    def test_closed_day_returns_empty(self, engine, artist):
        assert engine.availability.compute_slots(artist.id, SUNDAY) == []

    @pytest.mark.parametrize("granularity", [0, -30, 1.5, True])
    def test_invalid_granularity_rejected(self, engine, artist, granularity):
        with pytest.raises(InvalidRequestError, match="granularity"):
            engine.availability.compute_slots(artist.id, MONDAY, granularity)

    def test_unknown_resource_not_found(self, engine):
        with pytest.raises(NotFoundError):
            engine.availability.compute_slots(42, MONDAY)

    def test_switch_off_marks_every_slot_unavailable(self, engine, artist):
        engine.directory.set_availability(artist.id, False)
        slots = engine.availability.compute_slots(artist.id, MONDAY)
        assert slots
        assert not any(s.is_available for s in slots)

    def test_split_shift_leaves_break_uncovered(self, engine):
        artist = add_artist(engine, working_hours={
            0: [
                WorkingHours(start=time(13), end=time(17)),
                WorkingHours(start=time(9), end=time(12)),
            ]
        })
        slots = engine.availability.compute_slots(artist.id, MONDAY, 60)
        assert [s.start_time.hour for s in slots] == [9, 10, 11, 13, 14, 15, 16]
        assert _day(engine, artist.id).working_minutes == 420


class TestNextAvailableDates:
    """Upcoming dates with free time for alternatives."""

    def test_skips_closed_days(self, engine, artist):
        dates = engine.availability.next_available_dates(artist.id, SUNDAY, limit=3)
        assert dates == [MONDAY, MONDAY + timedelta(days=1), MONDAY + timedelta(days=2)]

    def test_skips_fully_booked_days(self, engine, artist):
        full_day = add_offering(engine, artist, duration_minutes=540, name="Full Day")
        engine.bookings.create_booking(artist.id, full_day.id, at_time(MONDAY, 9), 1)
        dates = engine.availability.next_available_dates(artist.id, MONDAY, limit=1)
        assert dates == [MONDAY + timedelta(days=1)]
