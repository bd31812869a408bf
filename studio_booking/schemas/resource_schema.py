"""Resource (artist) and service offering data models."""

from datetime import date, time
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from studio_booking.utils import minutes_of


class WorkingHours(BaseModel):
    """One working window within a day, ``[start, end)``."""

    start: time
    end: time

    @model_validator(mode="after")
    def _check_order(self) -> "WorkingHours":
        if self.start >= self.end:
            raise ValueError(f"working window start {self.start} must precede end {self.end}")
        if self.start.second or self.end.second:
            raise ValueError("working windows must be whole minutes")
        return self

    @property
    def duration_minutes(self) -> int:
        return minutes_of(self.end) - minutes_of(self.start)


class Resource(BaseModel):
    """A bookable provider with a weekly working-hours template.

    ``working_hours`` maps weekday (Monday=0) to that day's windows. A
    weekday that is missing or maps to an empty list is a closed day.
    """

    id: int = 0
    name: str = Field(min_length=1)
    specialty: str = ""
    bio: str = ""
    is_available: bool = True
    calendar_id: Optional[str] = None
    working_hours: dict[int, list[WorkingHours]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_template(self) -> "Resource":
        for weekday, windows in self.working_hours.items():
            if not 0 <= weekday <= 6:
                raise ValueError(f"weekday must be 0-6, got {weekday}")
            ordered = sorted(windows, key=lambda w: w.start)
            for earlier, later in zip(ordered, ordered[1:]):
                if later.start < earlier.end:
                    raise ValueError(f"working windows overlap on weekday {weekday}")
        return self

    def windows_for(self, day: date) -> list[WorkingHours]:
        """Working windows for a calendar day, earliest first."""
        return sorted(self.working_hours.get(day.weekday(), []), key=lambda w: w.start)


class ServiceOffering(BaseModel):
    """A purchasable session type belonging to one resource.

    ``price`` of ``None`` means quote on request.
    """

    id: int = 0
    resource_id: int
    name: str = Field(min_length=1)
    description: Optional[str] = None
    duration_minutes: int = Field(gt=0)
    price: Optional[int] = Field(default=None, ge=0)
    is_active: bool = True
