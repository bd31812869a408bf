"""
External calendar adapters.

The availability calculator asks a calendar adapter for busy periods that
live outside the booking table, and the booking manager mirrors committed
bookings into it. Every call may fail independently; callers go through
``SideEffects`` so a failure is logged and never rolls back a booking.

``InMemoryCalendar`` is the deterministic backend for development and
tests. ``GoogleCalendarAdapter`` talks to Google Calendar.
"""

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Optional
from zoneinfo import ZoneInfo

from studio_booking.config import CalendarConfig
from studio_booking.schemas.booking_schema import TimeInterval
from studio_booking.schemas.resource_schema import Resource

logger = logging.getLogger(__name__)

# Private extended property marking events mirrored from a booking.
BOOKING_PROPERTY = "studio_booking_id"


class CalendarError(Exception):
    """Raised by calendar adapters when the backend call fails."""


def _day_bounds(start_date: date, end_date: date) -> tuple[datetime, datetime]:
    return datetime.combine(start_date, time.min), datetime.combine(end_date + timedelta(days=1), time.min)


class CalendarAdapter(ABC):
    """Capability interface over an external calendar."""

    @abstractmethod
    def get_busy_intervals(
        self, resource: Resource, start_date: date, end_date: date
    ) -> list[TimeInterval]:
        """Busy periods in ``[start_date, end_date]`` not created by this engine."""

    @abstractmethod
    def create_event(
        self, resource: Resource, interval: TimeInterval, metadata: dict[str, Any]
    ) -> str:
        """Create a mirrored event and return its external id."""

    @abstractmethod
    def update_event(
        self,
        resource: Resource,
        event_id: str,
        interval: TimeInterval,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None: ...

    @abstractmethod
    def delete_event(self, resource: Resource, event_id: str) -> None: ...


@dataclass
class CalendarEvent:
    """Event stored by ``InMemoryCalendar``."""

    event_id: str
    resource_id: int
    interval: TimeInterval
    metadata: dict[str, Any] = field(default_factory=dict)


class InMemoryCalendar(CalendarAdapter):
    """Deterministic calendar for development and tests.

    ``add_busy`` registers external commitments (holidays, personal
    appointments). Set ``fail_with`` to make every call raise it.
    """

    def __init__(self) -> None:
        self._busy: dict[int, list[TimeInterval]] = {}
        self.events: dict[str, CalendarEvent] = {}
        self._ids = itertools.count(1)
        self.fail_with: Optional[Exception] = None

    def _check_failure(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def add_busy(self, resource_id: int, start: datetime, end: datetime) -> TimeInterval:
        interval = TimeInterval(start=start, end=end)
        self._busy.setdefault(resource_id, []).append(interval)
        return interval

    def get_busy_intervals(
        self, resource: Resource, start_date: date, end_date: date
    ) -> list[TimeInterval]:
        self._check_failure()
        lo, hi = _day_bounds(start_date, end_date)
        return sorted(
            (i for i in self._busy.get(resource.id, []) if i.start < hi and lo < i.end),
            key=lambda i: i.start,
        )

    def create_event(
        self, resource: Resource, interval: TimeInterval, metadata: dict[str, Any]
    ) -> str:
        self._check_failure()
        event_id = f"evt-{next(self._ids)}"
        self.events[event_id] = CalendarEvent(event_id, resource.id, interval, dict(metadata))
        logger.debug("Mirrored event %s for resource %s", event_id, resource.id)
        return event_id

    def update_event(
        self,
        resource: Resource,
        event_id: str,
        interval: TimeInterval,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        self._check_failure()
        event = self.events.get(event_id)
        if event is None:
            raise CalendarError(f"Event {event_id} not found")
        event.interval = interval
        if metadata:
            event.metadata.update(metadata)

    def delete_event(self, resource: Resource, event_id: str) -> None:
        self._check_failure()
        if self.events.pop(event_id, None) is None:
            raise CalendarError(f"Event {event_id} not found")


class GoogleCalendarAdapter(CalendarAdapter):
    """Google Calendar backend.

    Busy periods come from the events list, skipping transparent events
    and events this engine mirrored (tagged with ``BOOKING_PROPERTY``), so
    a booking is never counted twice.

    The engine works in naive studio-local times. Query bounds and event
    bodies are sent in ``timezone``, and event times Google returns with
    an offset are converted back to studio wall-clock time.
    """

    SCOPES = ["https://www.googleapis.com/auth/calendar"]

    def __init__(self, config: CalendarConfig, service: Any = None, timezone: str = "UTC") -> None:
        self._default_calendar_id = config.default_calendar_id
        self._timezone = ZoneInfo(timezone)
        if service is not None:
            self._service = service
            return
        if not config.credentials_file:
            raise CalendarError("GOOGLE_CREDENTIALS_FILE is required for the google calendar backend")

        from google.oauth2.credentials import Credentials
        from googleapiclient.discovery import build

        try:
            credentials = Credentials.from_authorized_user_file(config.credentials_file, self.SCOPES)
            self._service = build("calendar", "v3", credentials=credentials, cache_discovery=False)
        except Exception as e:
            raise CalendarError(f"Failed to initialize Google Calendar service: {e}") from e

    def _calendar_id(self, resource: Resource) -> str:
        return resource.calendar_id or self._default_calendar_id

    def _event_body(self, interval: TimeInterval, metadata: Optional[dict[str, Any]]) -> dict[str, Any]:
        metadata = metadata or {}
        zone = self._timezone.key
        body: dict[str, Any] = {
            "start": {"dateTime": interval.start.isoformat(), "timeZone": zone},
            "end": {"dateTime": interval.end.isoformat(), "timeZone": zone},
        }
        if "summary" in metadata:
            body["summary"] = metadata["summary"]
        if "description" in metadata:
            body["description"] = metadata["description"]
        if "booking_id" in metadata:
            body["extendedProperties"] = {
                "private": {BOOKING_PROPERTY: str(metadata["booking_id"])}
            }
        return body

    def _parse_event_time(self, value: dict[str, str]) -> datetime:
        if "dateTime" in value:
            parsed = datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(self._timezone).replace(tzinfo=None)
            return parsed
        # All-day events start at studio-local midnight.
        return datetime.combine(date.fromisoformat(value["date"]), time.min)

    def get_busy_intervals(
        self, resource: Resource, start_date: date, end_date: date
    ) -> list[TimeInterval]:
        from googleapiclient.errors import HttpError

        lo, hi = _day_bounds(start_date, end_date)
        intervals: list[TimeInterval] = []
        page_token: Optional[str] = None
        try:
            while True:
                response = self._service.events().list(
                    calendarId=self._calendar_id(resource),
                    timeMin=lo.replace(tzinfo=self._timezone).isoformat(),
                    timeMax=hi.replace(tzinfo=self._timezone).isoformat(),
                    timeZone=self._timezone.key,
                    singleEvents=True,
                    orderBy="startTime",
                    pageToken=page_token,
                ).execute()
                for event in response.get("items", []):
                    if event.get("transparency") == "transparent":
                        continue
                    private = event.get("extendedProperties", {}).get("private", {})
                    if BOOKING_PROPERTY in private:
                        continue
                    start = self._parse_event_time(event["start"])
                    end = self._parse_event_time(event["end"])
                    if start < end:
                        intervals.append(TimeInterval(start=start, end=end))
                page_token = response.get("nextPageToken")
                if not page_token:
                    break
        except HttpError as e:
            raise CalendarError(f"Failed to list calendar events: {e}") from e
        return intervals

    def create_event(
        self, resource: Resource, interval: TimeInterval, metadata: dict[str, Any]
    ) -> str:
        from googleapiclient.errors import HttpError

        try:
            event = self._service.events().insert(
                calendarId=self._calendar_id(resource),
                body=self._event_body(interval, metadata),
            ).execute()
        except HttpError as e:
            raise CalendarError(f"Failed to create calendar event: {e}") from e
        logger.info("Google Calendar event created: %s", event.get("id"))
        return event["id"]

    def update_event(
        self,
        resource: Resource,
        event_id: str,
        interval: TimeInterval,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        from googleapiclient.errors import HttpError

        try:
            self._service.events().patch(
                calendarId=self._calendar_id(resource),
                eventId=event_id,
                body=self._event_body(interval, metadata),
            ).execute()
        except HttpError as e:
            raise CalendarError(f"Failed to update calendar event {event_id}: {e}") from e

    def delete_event(self, resource: Resource, event_id: str) -> None:
        from googleapiclient.errors import HttpError

        try:
            self._service.events().delete(
                calendarId=self._calendar_id(resource), eventId=event_id
            ).execute()
        except HttpError as e:
            raise CalendarError(f"Failed to delete calendar event {event_id}: {e}") from e
