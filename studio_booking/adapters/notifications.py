"""Customer notifications: message templates and delivery backends."""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    BOOKING_CONFIRMATION = "booking_confirmation"
    BOOKING_CANCELLED = "booking_cancelled"
    WAITLIST_OPENING = "waitlist_opening"


def _when(moment: datetime) -> str:
    return f"{moment:%A, %B} {moment.day} at {moment:%H:%M}"


def build_message(
    kind: NotificationKind,
    studio_name: str,
    resource_name: str = "",
    start_time: Optional[datetime] = None,
    reason: Optional[str] = None,
    opening_date: Optional[date] = None,
) -> str:
    """Render the text for a notification."""
    artist = resource_name or "your artist"
    if kind == NotificationKind.BOOKING_CONFIRMATION:
        when = _when(start_time) if start_time else "the requested time"
        return f"Your appointment with {artist} at {studio_name} is confirmed for {when}. See you soon!"
    if kind == NotificationKind.BOOKING_CANCELLED:
        when = _when(start_time) if start_time else "your scheduled time"
        message = f"Your appointment at {studio_name} on {when} has been cancelled."
        if reason:
            message += f" Reason: {reason}"
        return message + " Contact us to rebook."
    opening = f"on {opening_date:%A, %B} {opening_date.day}" if opening_date else "soon"
    return (
        f"Good news! A slot with {artist} has opened up at {studio_name} {opening}. "
        "Reply YES to book or call us to discuss details."
    )


class NotificationSender(ABC):
    """Fire-and-forget delivery to a customer."""

    @abstractmethod
    def send(self, customer_id: int, kind: NotificationKind, message: str) -> None: ...


@dataclass
class SentNotification:
    customer_id: int
    kind: NotificationKind
    message: str
    sent_at: datetime = field(default_factory=datetime.now)


class LoggingNotificationSender(NotificationSender):
    """Logs messages instead of delivering them, keeping a record for inspection."""

    def __init__(self, sender_name: str = "") -> None:
        self.sender_name = sender_name
        self.sent: list[SentNotification] = []
        self._lock = threading.Lock()

    def send(self, customer_id: int, kind: NotificationKind, message: str) -> None:
        with self._lock:
            self.sent.append(SentNotification(customer_id, kind, message))
        logger.info("[%s -> customer %s] %s: %s", self.sender_name, customer_id, kind.value, message)
