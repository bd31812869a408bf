"""
Booking engine facade and factory.

``build_engine`` wires the repository, directory, calculators, and
managers together and resolves calendar/advisor/notifier backends from
configuration through the adapter registry. Callers that receive loosely
typed payloads go through ``BookingEngine.book`` / ``cancel``, which
validate them with pydantic before they reach the core.
"""

from typing import Any, Optional, Union

from pydantic import ValidationError

from studio_booking.adapters.advisor import FallbackAdvisor, Recommendation, TextAdvisor
from studio_booking.adapters.calendar import CalendarAdapter
from studio_booking.adapters.notifications import NotificationSender
from studio_booking.adapters.registry import create_backend
from studio_booking.adapters.side_effects import SideEffects
from studio_booking.config import AppConfig, settings
from studio_booking.engine.analytics import AnalyticsAggregator
from studio_booking.engine.availability import AvailabilityCalculator
from studio_booking.engine.booking import BookingManager
from studio_booking.engine.directory import ResourceDirectory
from studio_booking.engine.repository import InMemoryRepository, Repository
from studio_booking.engine.waitlist import WaitlistManager
from studio_booking.errors import InvalidRequestError
from studio_booking.logging_context import get_request_logger, new_request_id
from studio_booking.schemas.booking_schema import (
    Booking,
    BookingRequest,
    CancellationRequest,
    CancellationResult,
)
from studio_booking.schemas.waitlist_schema import WaitlistJoinResult, WaitlistPreferences

logger = get_request_logger(__name__)


class BookingEngine:
    """Entry point bundling every component of one studio."""

    def __init__(
        self,
        config: AppConfig,
        repository: Repository,
        calendar: CalendarAdapter,
        advisor: TextAdvisor,
        notifier: NotificationSender,
        side_effects: SideEffects,
    ) -> None:
        self.config = config
        self.repository = repository
        self.calendar = calendar
        self.advisor = advisor
        self.notifier = notifier
        self.side_effects = side_effects
        fallback = FallbackAdvisor()
        self._fallback = fallback

        self.directory = ResourceDirectory(repository)
        self.availability = AvailabilityCalculator(
            repository, self.directory, calendar, side_effects, config.availability
        )
        self.waitlist = WaitlistManager(
            repository, self.directory, notifier, advisor, side_effects,
            fallback_advisor=fallback, config=config.waitlist, studio=config.studio,
        )
        self.bookings = BookingManager(
            repository, self.directory, self.availability, calendar, notifier, advisor,
            self.waitlist, side_effects, fallback_advisor=fallback, studio=config.studio,
        )
        self.analytics = AnalyticsAggregator(
            repository, self.directory, advisor, side_effects, fallback_advisor=fallback
        )

    def book(self, request: Union[BookingRequest, dict[str, Any]]) -> Booking:
        """Validate a booking payload and commit it."""
        request_id = new_request_id()
        try:
            req = BookingRequest.model_validate(request)
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid booking request: {e}") from e
        logger.debug("[%s] Booking request for resource %s", request_id, req.resource_id)
        return self.bookings.create_booking(
            req.resource_id, req.offering_id, req.start_time, req.customer_id, req.notes
        )

    def cancel(
        self, request: Union[CancellationRequest, dict[str, Any]], with_suggestions: bool = True
    ) -> CancellationResult:
        """Validate a cancellation payload, cancel, and optionally suggest alternatives."""
        request_id = new_request_id()
        try:
            req = CancellationRequest.model_validate(request)
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid cancellation request: {e}") from e
        logger.debug("[%s] Cancellation request for booking %s", request_id, req.booking_id)
        if with_suggestions:
            return self.bookings.cancel_with_suggestions(req.booking_id, req.reason, req.actor_id)
        booking = self.bookings.cancel_booking(req.booking_id, req.reason, req.actor_id)
        return CancellationResult(booking=booking)

    def join_waitlist(
        self, customer_id: int, preferences: Union[WaitlistPreferences, dict[str, Any]]
    ) -> WaitlistJoinResult:
        new_request_id()
        return self.waitlist.join_with_message(customer_id, preferences)

    def recommend_resource(
        self, preferences: Union[WaitlistPreferences, dict[str, Any]]
    ) -> Recommendation:
        """Suggest a resource accepting bookings for the given preferences."""
        try:
            prefs = WaitlistPreferences.model_validate(preferences)
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid preferences: {e}") from e
        resources = self.directory.list_resources(only_available=True)
        return self.side_effects.call(
            "advisor.recommend",
            self.advisor.recommend,
            resources, prefs,
            fallback=lambda: self._fallback.recommend(resources, prefs),
        )

    def close(self) -> None:
        """Wait for queued side effects and release worker threads."""
        self.side_effects.shutdown(wait=True)


def build_engine(
    config: AppConfig = settings,
    repository: Optional[Repository] = None,
    calendar: Optional[CalendarAdapter] = None,
    advisor: Optional[TextAdvisor] = None,
    notifier: Optional[NotificationSender] = None,
    side_effects: Optional[SideEffects] = None,
) -> BookingEngine:
    """Create an engine; any collaborator not supplied comes from configuration."""
    engine = BookingEngine(
        config=config,
        repository=repository or InMemoryRepository(),
        calendar=calendar or create_backend("calendar", config.calendar.backend, config=config),
        advisor=advisor or create_backend("advisor", config.advisor.backend, config=config),
        notifier=notifier or create_backend("notifier", config.notifications.backend, config=config),
        side_effects=side_effects or SideEffects(config.side_effect_mode, config.side_effect_workers),
    )
    logger.info(
        "Booking engine ready (calendar=%s, advisor=%s, notifier=%s, side effects=%s)",
        type(engine.calendar).__name__, type(engine.advisor).__name__,
        type(engine.notifier).__name__, engine.side_effects.mode,
    )
    return engine
