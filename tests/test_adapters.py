"""Tests for collaborator adapters, the side-effect boundary, and the backend registry."""

import json
from datetime import date, datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from studio_booking.adapters.advisor import FallbackAdvisor, OpenAIAdvisor
from studio_booking.adapters.calendar import (
    BOOKING_PROPERTY,
    CalendarError,
    GoogleCalendarAdapter,
    InMemoryCalendar,
)
from studio_booking.adapters.notifications import (
    LoggingNotificationSender,
    NotificationKind,
    build_message,
)
from studio_booking.adapters.registry import (
    create_backend,
    get_registered_backends,
    register_backend,
)
from studio_booking.adapters.side_effects import SideEffects
from studio_booking.config import AdvisorConfig, CalendarConfig
from studio_booking.logging_context import get_request_id, set_request_id
from studio_booking.schemas.booking_schema import TimeInterval
from studio_booking.schemas.resource_schema import Resource
from studio_booking.schemas.waitlist_schema import WaitlistPreferences

from tests.conftest import MONDAY, at_time, make_config


def _resource(resource_id=1, name="John Ink", specialty="Traditional", calendar_id=None):
    return Resource(id=resource_id, name=name, specialty=specialty, calendar_id=calendar_id)


def _fake_openai(payload):
    completions = MagicMock()
    completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=json.dumps(payload)))]
    )
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class TestSideEffects:
    """Collaborator calls are logged and contained, inline or in the background."""

    def test_call_returns_result(self):
        assert SideEffects().call("ok", lambda x: x * 2, 21) == 42

    def test_call_failure_returns_default_and_counts(self):
        effects = SideEffects()

        def boom():
            raise RuntimeError("boom")

        assert effects.call("boom", boom, default=[]) == []
        assert effects.failures == 1

    def test_fallback_wins_over_default(self):
        effects = SideEffects()
        result = effects.call("boom", lambda: 1 / 0, default="default", fallback=lambda: "fallback")
        assert result == "fallback"

    def test_on_error_receives_exception(self):
        seen = []
        SideEffects().call("boom", lambda: 1 / 0, on_error=seen.append)
        assert isinstance(seen[0], ZeroDivisionError)

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError, match="side effect mode"):
            SideEffects(mode="eventually")

    def test_inline_submit_runs_immediately(self):
        calls = []
        assert SideEffects().submit("record", calls.append, 1) is None
        assert calls == [1]

    def test_background_submit_carries_request_id(self):
        effects = SideEffects(mode="background", max_workers=1)
        set_request_id("REQ-test")
        future = effects.submit("read id", get_request_id)
        assert future.result(timeout=5) == "REQ-test"
        effects.shutdown()

    def test_background_failure_is_swallowed(self):
        effects = SideEffects(mode="background", max_workers=1)
        future = effects.submit("boom", lambda: 1 / 0)
        assert future.result(timeout=5) is None
        effects.shutdown()
        assert effects.failures == 1

    def test_background_failures_counted_across_workers(self):
        effects = SideEffects(mode="background", max_workers=8)
        for _ in range(200):
            effects.submit("boom", lambda: 1 / 0)
        effects.shutdown()
        assert effects.failures == 200


class TestRegistry:
    """Backends are resolved by kind and name."""

    def test_builtin_backends_registered(self):
        assert {"memory", "google"} <= set(get_registered_backends("calendar"))
        assert {"fallback", "openai"} <= set(get_registered_backends("advisor"))
        assert "log" in get_registered_backends("notifier")

    def test_create_from_config(self):
        config = make_config()
        assert isinstance(create_backend("calendar", "memory", config=config), InMemoryCalendar)
        assert isinstance(create_backend("advisor", "fallback", config=config), FallbackAdvisor)
        notifier = create_backend("notifier", "log", config=config)
        assert isinstance(notifier, LoggingNotificationSender)
        assert notifier.sender_name == "Test Studio"

    def test_unknown_name(self):
        with pytest.raises(KeyError, match="not registered"):
            create_backend("calendar", "outlook", config=make_config())

    def test_unknown_kind(self):
        with pytest.raises(KeyError, match="Unknown backend kind"):
            register_backend("payments", "stripe", lambda config: None)

    def test_custom_backend(self):
        register_backend("notifier", "test-null", lambda config: "null-notifier")
        assert create_backend("notifier", "test-null", config=make_config()) == "null-notifier"


class TestInMemoryCalendar:
    """Busy periods and events of the in-memory calendar."""

    def test_busy_intervals_limited_to_range(self):
        calendar = InMemoryCalendar()
        resource = _resource()
        calendar.add_busy(1, at_time(MONDAY, 9), at_time(MONDAY, 10))
        calendar.add_busy(1, datetime(2026, 3, 20, 9), datetime(2026, 3, 20, 10))
        calendar.add_busy(2, at_time(MONDAY, 9), at_time(MONDAY, 10))
        busy = calendar.get_busy_intervals(resource, MONDAY, MONDAY)
        assert busy == [TimeInterval(start=at_time(MONDAY, 9), end=at_time(MONDAY, 10))]

    def test_event_lifecycle(self):
        calendar = InMemoryCalendar()
        resource = _resource()
        interval = TimeInterval(start=at_time(MONDAY, 9), end=at_time(MONDAY, 10))
        event_id = calendar.create_event(resource, interval, {"booking_id": 3})
        later = TimeInterval(start=at_time(MONDAY, 11), end=at_time(MONDAY, 12))
        calendar.update_event(resource, event_id, later)
        assert calendar.events[event_id].interval == later
        calendar.delete_event(resource, event_id)
        assert event_id not in calendar.events

    def test_unknown_event(self):
        with pytest.raises(CalendarError):
            InMemoryCalendar().delete_event(_resource(), "evt-404")

    def test_mirrored_events_are_not_busy(self):
        calendar = InMemoryCalendar()
        resource = _resource()
        interval = TimeInterval(start=at_time(MONDAY, 9), end=at_time(MONDAY, 10))
        calendar.create_event(resource, interval, {"booking_id": 1})
        assert calendar.get_busy_intervals(resource, MONDAY, MONDAY) == []


class TestGoogleCalendarAdapter:
    """Google Calendar requests and responses against a mocked service."""

    def _adapter(self, items, timezone="UTC"):
        service = MagicMock()
        service.events.return_value.list.return_value.execute.return_value = {"items": items}
        service.events.return_value.insert.return_value.execute.return_value = {"id": "g-1"}
        adapter = GoogleCalendarAdapter(
            CalendarConfig(default_calendar_id="studio"), service=service, timezone=timezone
        )
        return adapter, service

    def test_busy_skips_transparent_and_mirrored_events(self):
        adapter, _ = self._adapter([
            {"start": {"dateTime": "2026-03-16T09:00:00"}, "end": {"dateTime": "2026-03-16T10:00:00"}},
            {
                "start": {"dateTime": "2026-03-16T11:00:00"},
                "end": {"dateTime": "2026-03-16T12:00:00"},
                "transparency": "transparent",
            },
            {
                "start": {"dateTime": "2026-03-16T13:00:00"},
                "end": {"dateTime": "2026-03-16T14:00:00"},
                "extendedProperties": {"private": {BOOKING_PROPERTY: "7"}},
            },
            {"start": {"date": "2026-03-17"}, "end": {"date": "2026-03-18"}},
        ])
        busy = adapter.get_busy_intervals(_resource(), MONDAY, date(2026, 3, 17))
        assert busy == [
            TimeInterval(start=at_time(MONDAY, 9), end=at_time(MONDAY, 10)),
            TimeInterval(start=datetime(2026, 3, 17), end=datetime(2026, 3, 18)),
        ]

    def test_query_window_in_studio_timezone(self):
        adapter, service = self._adapter([], timezone="America/New_York")
        adapter.get_busy_intervals(_resource(), MONDAY, MONDAY)
        kwargs = service.events.return_value.list.call_args.kwargs
        # Daylight saving time is in effect from 2026-03-08.
        assert kwargs["timeMin"] == "2026-03-16T00:00:00-04:00"
        assert kwargs["timeMax"] == "2026-03-17T00:00:00-04:00"
        assert kwargs["timeZone"] == "America/New_York"

    def test_utc_event_converted_to_studio_time(self):
        adapter, _ = self._adapter(
            [{"start": {"dateTime": "2026-03-17T00:00:00Z"}, "end": {"dateTime": "2026-03-17T02:00:00Z"}}],
            timezone="America/New_York",
        )
        busy = adapter.get_busy_intervals(_resource(), MONDAY, MONDAY)
        assert busy == [TimeInterval(start=at_time(MONDAY, 20), end=at_time(MONDAY, 22))]

    def test_event_body_carries_timezone(self):
        adapter, service = self._adapter([], timezone="Europe/Moscow")
        interval = TimeInterval(start=at_time(MONDAY, 9), end=at_time(MONDAY, 10))
        adapter.create_event(_resource(), interval, {"booking_id": 1})
        body = service.events.return_value.insert.call_args.kwargs["body"]
        assert body["start"] == {"dateTime": "2026-03-16T09:00:00", "timeZone": "Europe/Moscow"}
        assert body["end"]["timeZone"] == "Europe/Moscow"

    def test_create_event_tags_booking(self):
        adapter, service = self._adapter([])
        interval = TimeInterval(start=at_time(MONDAY, 9), end=at_time(MONDAY, 10))
        event_id = adapter.create_event(_resource(calendar_id="john@studio"), interval, {
            "booking_id": 7, "summary": "Appointment",
        })
        assert event_id == "g-1"
        kwargs = service.events.return_value.insert.call_args.kwargs
        assert kwargs["calendarId"] == "john@studio"
        assert kwargs["body"]["extendedProperties"]["private"][BOOKING_PROPERTY] == "7"

    def test_default_calendar_used_without_link(self):
        adapter, service = self._adapter([])
        adapter.delete_event(_resource(), "g-1")
        kwargs = service.events.return_value.delete.call_args.kwargs
        assert kwargs == {"calendarId": "studio", "eventId": "g-1"}

    def test_missing_credentials(self):
        with pytest.raises(CalendarError, match="GOOGLE_CREDENTIALS_FILE"):
            GoogleCalendarAdapter(CalendarConfig(credentials_file=""))


class TestAdvisors:
    """Deterministic and OpenAI-backed advisor output."""

    def test_fallback_recommend_without_resources(self):
        result = FallbackAdvisor().recommend([], WaitlistPreferences(description="Rose"))
        assert result.resource_id is None

    def test_fallback_alternatives_take_first_candidates(self):
        resources = [_resource(i, f"Artist {i}") for i in (1, 2, 3)]
        dates = [date(2026, 3, d) for d in (16, 17, 18, 19)]
        result = FallbackAdvisor().suggest_alternatives({}, "reason", resources, dates)
        assert result.resource_ids == [1, 2]
        assert result.dates == dates[:3]

    def test_openai_recommend_validated(self):
        client = _fake_openai({"resource_id": 2, "message": "Try Sarah"})
        advisor = OpenAIAdvisor(AdvisorConfig(llm_model="test-model"), client=client)
        resources = [_resource(1), _resource(2, "Sarah Colors")]
        result = advisor.recommend(resources, WaitlistPreferences(description="Koi"))
        assert result.resource_id == 2
        call = client.chat.completions.create.call_args.kwargs
        assert call["model"] == "test-model"
        assert call["response_format"] == {"type": "json_object"}

    def test_openai_unknown_resource_raises(self):
        client = _fake_openai({"resource_id": 99, "message": "Try someone"})
        advisor = OpenAIAdvisor(AdvisorConfig(), client=client)
        with pytest.raises(ValueError, match="unknown resource"):
            advisor.recommend([_resource(1)], WaitlistPreferences(description="Koi"))

    def test_openai_alternatives_restricted_to_candidates(self):
        client = _fake_openai({
            "message": "Sorry to see you go",
            "resource_ids": [1, 42],
            "dates": ["2026-03-17", "2030-01-01"],
        })
        advisor = OpenAIAdvisor(AdvisorConfig(), client=client)
        result = advisor.suggest_alternatives(
            {}, "reason", [_resource(1)], [date(2026, 3, 17), date(2026, 3, 18)]
        )
        assert result.resource_ids == [1]
        assert result.dates == [date(2026, 3, 17)]

    def test_openai_malformed_json_raises(self):
        client = _fake_openai({"unexpected": True})
        advisor = OpenAIAdvisor(AdvisorConfig(), client=client)
        with pytest.raises(ValueError):
            advisor.waitlist_message(WaitlistPreferences(description="Koi"))


class TestNotificationMessages:
    """Customer message templates and the logging sender."""

    def test_confirmation(self):
        text = build_message(
            NotificationKind.BOOKING_CONFIRMATION, "InkSync", "John Ink", at_time(MONDAY, 10)
        )
        assert "John Ink" in text
        assert "Monday, March 16 at 10:00" in text

    def test_cancellation_with_reason(self):
        text = build_message(
            NotificationKind.BOOKING_CANCELLED, "InkSync", start_time=at_time(MONDAY, 10),
            reason="Artist unwell",
        )
        assert "Reason: Artist unwell" in text

    def test_waitlist_opening(self):
        text = build_message(
            NotificationKind.WAITLIST_OPENING, "InkSync", "Sarah Colors", opening_date=MONDAY
        )
        assert "Sarah Colors" in text
        assert "Monday, March 16" in text

    def test_logging_sender_records(self):
        sender = LoggingNotificationSender("InkSync")
        sender.send(4, NotificationKind.WAITLIST_OPENING, "hello")
        assert sender.sent[0].customer_id == 4
