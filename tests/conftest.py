"""Shared test fixtures and helpers."""

from datetime import date, datetime, time
from typing import Optional

import pytest

from studio_booking.adapters.advisor import FallbackAdvisor, TextAdvisor
from studio_booking.adapters.calendar import InMemoryCalendar
from studio_booking.adapters.notifications import LoggingNotificationSender
from studio_booking.adapters.side_effects import SideEffects
from studio_booking.config import (
    AdvisorConfig,
    AppConfig,
    AvailabilityConfig,
    CalendarConfig,
    NotificationConfig,
    StudioConfig,
    WaitlistConfig,
)
from studio_booking.engine.repository import InMemoryRepository
from studio_booking.engine.service import BookingEngine, build_engine
from studio_booking.schemas.resource_schema import Resource, ServiceOffering, WorkingHours

# 2026-03-16 is a Monday; the day before is a Sunday.
MONDAY = date(2026, 3, 16)
SUNDAY = date(2026, 3, 15)


def at_time(day: date, hour: int, minute: int = 0) -> datetime:
    """Helper to build a naive studio-local datetime."""
    return datetime.combine(day, time(hour, minute))


def nine_to_six() -> dict[int, list[WorkingHours]]:
    """Monday-Saturday 09:00-18:00, Sunday closed."""
    return {weekday: [WorkingHours(start=time(9), end=time(18))] for weekday in range(6)}


def make_config(
    limited_threshold: float = 0.5,
    slot_granularity_minutes: int = 30,
    max_range_days: int = 92,
    max_promotion_notifications: int = 5,
) -> AppConfig:
    """Helper to create an AppConfig independent of the environment."""
    return AppConfig(
        studio=StudioConfig(
            name="Test Studio",
            opening_time="09:00",
            closing_time="18:00",
            closed_weekdays=(6,),
            timezone="UTC",
        ),
        availability=AvailabilityConfig(
            slot_granularity_minutes=slot_granularity_minutes,
            limited_threshold=limited_threshold,
            max_range_days=max_range_days,
        ),
        waitlist=WaitlistConfig(
            description_max_length=2000,
            max_promotion_notifications=max_promotion_notifications,
        ),
        advisor=AdvisorConfig(backend="fallback"),
        calendar=CalendarConfig(backend="memory"),
        notifications=NotificationConfig(backend="log", sender_name="Test Studio"),
        log_level="INFO",
        side_effect_mode="inline",
        side_effect_workers=2,
    )


def make_engine(
    config: Optional[AppConfig] = None,
    calendar: Optional[InMemoryCalendar] = None,
    advisor: Optional[TextAdvisor] = None,
    notifier: Optional[LoggingNotificationSender] = None,
) -> BookingEngine:
    """Helper to create an engine with in-memory collaborators and inline side effects."""
    return build_engine(
        config=config or make_config(),
        repository=InMemoryRepository(),
        calendar=calendar or InMemoryCalendar(),
        advisor=advisor or FallbackAdvisor(),
        notifier=notifier or LoggingNotificationSender("Test Studio"),
        side_effects=SideEffects(mode="inline"),
    )


def add_artist(
    engine: BookingEngine,
    name: str = "John Ink",
    specialty: str = "Traditional, Neo-Traditional",
    working_hours: Optional[dict[int, list[WorkingHours]]] = None,
) -> Resource:
    """Helper to register a resource working 09:00-18:00 Monday-Saturday."""
    return engine.directory.register_resource(
        name=name,
        specialty=specialty,
        working_hours=working_hours if working_hours is not None else nine_to_six(),
    )


def add_offering(
    engine: BookingEngine,
    resource: Resource,
    duration_minutes: int = 240,
    price: Optional[int] = 400,
    name: str = "Medium Tattoo Session",
) -> ServiceOffering:
    return engine.directory.add_offering(resource.id, name, duration_minutes, price=price)


@pytest.fixture
def calendar():
    return InMemoryCalendar()


@pytest.fixture
def notifier():
    return LoggingNotificationSender("Test Studio")


@pytest.fixture
def engine(calendar, notifier):
    return make_engine(calendar=calendar, notifier=notifier)


@pytest.fixture
def artist(engine):
    return add_artist(engine)


@pytest.fixture
def session(engine, artist):
    """The 240-minute, $400 offering of ``artist``."""
    return add_offering(engine, artist)
