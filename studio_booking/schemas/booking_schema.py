"""Booking and availability data models."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from studio_booking.utils import is_whole_minute, minutes_between


class BookingStatus(str, Enum):
    """Lifecycle status of a booking."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that hold their interval against other bookings.
OCCUPYING_STATUSES = frozenset({BookingStatus.SCHEDULED, BookingStatus.COMPLETED})


class AvailabilityStatus(str, Enum):
    """Per-day availability classification."""

    AVAILABLE = "available"
    LIMITED = "limited"
    UNAVAILABLE = "unavailable"


class TimeInterval(BaseModel):
    """Half-open ``[start, end)`` interval."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _check_order(self) -> "TimeInterval":
        if self.start >= self.end:
            raise ValueError(f"interval start {self.start} must precede end {self.end}")
        return self

    @property
    def duration_minutes(self) -> int:
        return minutes_between(self.start, self.end)

    def overlaps(self, other: "TimeInterval") -> bool:
        """True when the two intervals share a positive duration."""
        return self.start < other.end and other.start < self.end

    def clip(self, start: datetime, end: datetime) -> Optional["TimeInterval"]:
        """Intersection with ``[start, end)``, or None when empty."""
        lo, hi = max(self.start, start), min(self.end, end)
        if lo >= hi:
            return None
        return TimeInterval(start=lo, end=hi)


class Booking(BaseModel):
    """A committed reservation of a resource for one offering."""

    id: int = 0
    resource_id: int
    offering_id: int
    customer_id: int
    start_time: datetime
    end_time: datetime
    status: BookingStatus = BookingStatus.SCHEDULED
    notes: Optional[str] = None
    external_event_id: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(start=self.start_time, end=self.end_time)

    @property
    def occupies_interval(self) -> bool:
        return self.status in OCCUPYING_STATUSES

    @property
    def duration_minutes(self) -> int:
        return minutes_between(self.start_time, self.end_time)


class Slot(BaseModel):
    """Single fixed-granularity candidate slot."""

    start_time: datetime
    end_time: datetime
    is_available: bool


class DayAvailability(BaseModel):
    """Availability summary for one calendar day."""

    date: date
    status: AvailabilityStatus
    working_minutes: int = 0
    occupied_minutes: int = 0

    @property
    def occupied_fraction(self) -> float:
        if not self.working_minutes:
            return 0.0
        return self.occupied_minutes / self.working_minutes


class BookingRequest(BaseModel):
    """Validated booking request data."""

    resource_id: int
    offering_id: int
    customer_id: int
    start_time: datetime
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("start_time")
    @classmethod
    def _whole_minutes(cls, value: datetime) -> datetime:
        if not is_whole_minute(value):
            raise ValueError("start_time must fall on a whole minute")
        if value.tzinfo is not None:
            raise ValueError("start_time must be a naive studio-local datetime")
        return value


class CancellationRequest(BaseModel):
    """Validated cancellation request data."""

    booking_id: int
    reason: str = Field(min_length=1, max_length=500)
    actor_id: Optional[int] = None

    @field_validator("reason")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("reason is required")
        return value


class AlternativeSuggestions(BaseModel):
    """Advisory alternatives offered after a cancellation."""

    message: str
    resource_ids: list[int] = Field(default_factory=list)
    dates: list[date] = Field(default_factory=list)


class CancellationResult(BaseModel):
    """Cancellation outcome returned to the caller."""

    booking: Booking
    suggestions: Optional[AlternativeSuggestions] = None
    notified_waitlist_entry_ids: list[int] = Field(default_factory=list)
