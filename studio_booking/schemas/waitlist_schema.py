"""Waitlist data models and recommended preference values."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

UNSPECIFIED = "unspecified"

# Recommended values. Anything else is accepted as free text.
STYLE_CHOICES = (
    "traditional", "neo-traditional", "realism", "watercolor",
    "geometric", "japanese", "tribal", "blackwork",
)
SIZE_CHOICES = ("small", "medium", "large", "extra-large")
BUDGET_CHOICES = ("budget", "mid-range", "premium", "custom")


def _normalize_choice(value: Optional[str]) -> str:
    if value is None or not value.strip():
        return UNSPECIFIED
    return value.strip().lower()


class WaitlistPreferences(BaseModel):
    """What a customer is waiting for. Only ``description`` is required."""

    resource_id: Optional[int] = None
    style: str = UNSPECIFIED
    size: str = UNSPECIFIED
    preferred_dates: str = ""
    budget: str = UNSPECIFIED
    description: str

    @field_validator("style", "size", "budget", mode="before")
    @classmethod
    def _default_unspecified(cls, value: Optional[str]) -> str:
        return _normalize_choice(value)

    @field_validator("preferred_dates", mode="before")
    @classmethod
    def _blank_dates(cls, value: Optional[str]) -> str:
        return (value or "").strip()

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("description is required")
        return value

    def uses_recommended_values(self) -> bool:
        """True when style/size/budget are each recommended or unspecified."""
        return (
            self.style in STYLE_CHOICES + (UNSPECIFIED,)
            and self.size in SIZE_CHOICES + (UNSPECIFIED,)
            and self.budget in BUDGET_CHOICES + (UNSPECIFIED,)
        )


class WaitlistEntry(BaseModel):
    """A standing request for a future opening."""

    id: int = 0
    customer_id: int
    resource_id: Optional[int] = None
    style: str = UNSPECIFIED
    size: str = UNSPECIFIED
    preferred_dates: str = ""
    budget: str = UNSPECIFIED
    description: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.now)
    deactivated_at: Optional[datetime] = None
    converted_booking_id: Optional[int] = None


class WaitlistJoinResult(BaseModel):
    """Created entry plus an optional acknowledgement message."""

    entry: WaitlistEntry
    message: str = ""
