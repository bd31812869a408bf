"""
Finite state machine for the booking lifecycle.

    scheduled --cancel-->     cancelled  (terminal)
    scheduled --complete-->   completed  (terminal)
    scheduled --reschedule--> scheduled

Every transition must be explicitly defined. A trigger with no matching
transition from the current status is rejected with ``InvalidStateError``
listing what is allowed.

Usage:
    new_status = BookingLifecycle.transition(BookingStatus.SCHEDULED, BookingTrigger.CANCEL)
    assert new_status == BookingStatus.CANCELLED
"""

import logging
from dataclasses import dataclass
from enum import Enum

from studio_booking.errors import InvalidStateError
from studio_booking.schemas.booking_schema import BookingStatus

logger = logging.getLogger(__name__)


class BookingTrigger(str, Enum):
    """Events that move a booking between statuses."""
    CANCEL = "cancel"
    COMPLETE = "complete"
    RESCHEDULE = "reschedule"


@dataclass(frozen=True)
class Transition:
    """A single valid status transition."""
    from_status: BookingStatus
    to_status: BookingStatus
    trigger: BookingTrigger


class BookingLifecycle:
    """Stateless transition table for ``Booking.status``."""

    TRANSITIONS: tuple[Transition, ...] = (
        Transition(BookingStatus.SCHEDULED, BookingStatus.CANCELLED, BookingTrigger.CANCEL),
        Transition(BookingStatus.SCHEDULED, BookingStatus.COMPLETED, BookingTrigger.COMPLETE),
        Transition(BookingStatus.SCHEDULED, BookingStatus.SCHEDULED, BookingTrigger.RESCHEDULE),
    )

    TERMINAL: frozenset[BookingStatus] = frozenset(
        {BookingStatus.CANCELLED, BookingStatus.COMPLETED}
    )

    @classmethod
    def transition(cls, current: BookingStatus, trigger: BookingTrigger) -> BookingStatus:
        """
        Resolve the status reached by applying ``trigger`` to ``current``.

        Raises:
            InvalidStateError: If no valid transition exists.
        """
        for t in cls.TRANSITIONS:
            if t.from_status == current and t.trigger == trigger:
                logger.debug(
                    "Booking transition: %s -> %s (trigger: %s)",
                    current.value, t.to_status.value, trigger.value,
                )
                return t.to_status

        valid = [t.value for t in cls.valid_triggers(current)]
        raise InvalidStateError(
            f"Cannot {trigger.value} a booking that is '{current.value}'. "
            f"Valid triggers: {valid}"
        )

    @classmethod
    def valid_triggers(cls, current: BookingStatus) -> list[BookingTrigger]:
        """Return all triggers valid from ``current``."""
        return [t.trigger for t in cls.TRANSITIONS if t.from_status == current]

    @classmethod
    def is_terminal(cls, status: BookingStatus) -> bool:
        return status in cls.TERMINAL
