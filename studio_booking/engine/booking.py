"""
Booking transaction manager.

A booking is committed with a check-then-insert sequence held under the
repository's per-resource lock, so two overlapping requests for the same
resource can never both succeed. Everything after the commit (calendar
mirroring, notifications, the advisor) runs through ``SideEffects`` and
cannot undo or fail the commit.

Flow:
    create:   validate offering -> compute end -> [lock: re-check, insert] -> mirror, notify
    cancel:   [lock: transition, store] -> delete mirror, notify -> waitlist scan
"""

import threading
from datetime import datetime
from typing import Any, Optional

from studio_booking.adapters.advisor import FallbackAdvisor, TextAdvisor
from studio_booking.adapters.calendar import CalendarAdapter
from studio_booking.adapters.notifications import (
    NotificationKind,
    NotificationSender,
    build_message,
)
from studio_booking.adapters.side_effects import SideEffects
from studio_booking.config import StudioConfig, settings
from studio_booking.engine.availability import AvailabilityCalculator
from studio_booking.engine.directory import ResourceDirectory
from studio_booking.engine.lifecycle import BookingLifecycle, BookingTrigger
from studio_booking.engine.repository import Repository
from studio_booking.engine.waitlist import WaitlistManager
from studio_booking.errors import (
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
    SlotUnavailableError,
)
from studio_booking.logging_context import get_request_logger
from studio_booking.schemas.booking_schema import (
    AlternativeSuggestions,
    Booking,
    BookingStatus,
    CancellationResult,
    TimeInterval,
)
from studio_booking.schemas.resource_schema import Resource
from studio_booking.schemas.waitlist_schema import WaitlistEntry
from studio_booking.utils import add_minutes, is_whole_minute

logger = get_request_logger(__name__)


def _require_local_minute(value: datetime, field_name: str) -> None:
    if value.tzinfo is not None:
        raise InvalidRequestError(f"{field_name} must be a naive studio-local datetime")
    if not is_whole_minute(value):
        raise InvalidRequestError(f"{field_name} must fall on a whole minute")


class BookingManager:
    """Creates, cancels, completes, and reschedules bookings."""

    def __init__(
        self,
        repository: Repository,
        directory: ResourceDirectory,
        availability: AvailabilityCalculator,
        calendar: CalendarAdapter,
        notifier: NotificationSender,
        advisor: TextAdvisor,
        waitlist: WaitlistManager,
        side_effects: SideEffects,
        fallback_advisor: Optional[TextAdvisor] = None,
        studio: StudioConfig = settings.studio,
    ) -> None:
        self._repo = repository
        self._directory = directory
        self._availability = availability
        self._calendar = calendar
        self._notifier = notifier
        self._advisor = advisor
        self._waitlist = waitlist
        self._effects = side_effects
        self._fallback = fallback_advisor or FallbackAdvisor()
        self._studio = studio
        self._failed_mirrors: list[int] = []
        self._failed_lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_booking(self, booking_id: int) -> Booking:
        booking = self._repo.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    def list_bookings_for_resource(
        self, resource_id: int, statuses: Optional[set[BookingStatus]] = None
    ) -> list[Booking]:
        self._directory.get_resource(resource_id)
        bookings = self._repo.list_bookings(resource_id=resource_id)
        if statuses is not None:
            bookings = [b for b in bookings if b.status in statuses]
        return sorted(bookings, key=lambda b: (b.start_time, b.id))

    def list_bookings_for_customer(self, customer_id: int) -> list[Booking]:
        return sorted(
            self._repo.list_bookings(customer_id=customer_id),
            key=lambda b: (b.start_time, b.id),
        )

    # ------------------------------------------------------------------ #
    # Create
    # ------------------------------------------------------------------ #

    def create_booking(
        self,
        resource_id: int,
        offering_id: int,
        start_time: datetime,
        customer_id: int,
        notes: Optional[str] = None,
    ) -> Booking:
        """Commit a booking for ``[start_time, start_time + duration)``.

        Raises:
            NotFoundError: Unknown resource.
            InvalidRequestError: Foreign or inactive offering, or a start
                time that is not a whole studio-local minute.
            SlotUnavailableError: The interval is taken, outside working
                hours, or the resource is not accepting bookings.
        """
        _require_local_minute(start_time, "start_time")
        offering = self._directory.require_bookable_offering(resource_id, offering_id)
        interval = TimeInterval(
            start=start_time, end=add_minutes(start_time, offering.duration_minutes)
        )

        # Calendar I/O stays outside the lock.
        resource = self._directory.get_resource(resource_id)
        busy = self._availability.external_busy(resource, interval.start.date(), interval.end.date())

        with self._repo.resource_lock(resource_id):
            resource = self._directory.get_resource(resource_id)
            conflict = self._availability.check_interval(resource, interval, busy)
            if conflict:
                logger.info(
                    "Booking rejected for resource %s at %s: %s",
                    resource_id, start_time, conflict,
                )
                raise SlotUnavailableError(
                    f"{interval.start:%Y-%m-%d %H:%M}-{interval.end:%H:%M} is unavailable: {conflict}"
                )
            booking = self._repo.add_booking(
                Booking(
                    resource_id=resource_id,
                    offering_id=offering_id,
                    customer_id=customer_id,
                    start_time=interval.start,
                    end_time=interval.end,
                    notes=notes,
                )
            )

        logger.info(
            "Booking %s created: resource %s, %s-%s, customer %s",
            booking.id, resource_id, booking.start_time, booking.end_time, customer_id,
        )
        self._effects.submit(
            "calendar.create_event",
            self._mirror,
            booking.id,
            on_error=lambda exc, bid=booking.id: self._queue_mirror_retry(bid),
        )
        self._notify(booking, resource, NotificationKind.BOOKING_CONFIRMATION)
        return self.get_booking(booking.id)

    # ------------------------------------------------------------------ #
    # Cancel
    # ------------------------------------------------------------------ #

    def cancel_booking(self, booking_id: int, reason: str, actor_id: Optional[int] = None) -> Booking:
        """Cancel a scheduled booking and release its interval.

        ``actor_id`` of None is a trusted staff call; otherwise it must be
        the booking's customer.

        Raises:
            NotFoundError: Unknown booking.
            ForbiddenError: ``actor_id`` is not the booking's customer.
            InvalidStateError: Booking already cancelled or completed.
        """
        booking, _ = self._cancel(booking_id, reason, actor_id)
        return booking

    def cancel_with_suggestions(
        self, booking_id: int, reason: str, actor_id: Optional[int] = None
    ) -> CancellationResult:
        """``cancel_booking`` plus advisory alternatives and who was notified."""
        booking, notified = self._cancel(booking_id, reason, actor_id)
        return CancellationResult(
            booking=booking,
            suggestions=self.suggest_alternatives(booking_id, booking.cancellation_reason or ""),
            notified_waitlist_entry_ids=[e.id for e in notified],
        )

    def _cancel(
        self, booking_id: int, reason: str, actor_id: Optional[int]
    ) -> tuple[Booking, list[WaitlistEntry]]:
        booking = self.get_booking(booking_id)
        reason = (reason or "").strip()
        if not reason:
            raise InvalidRequestError("A cancellation reason is required")
        self._check_actor(booking, actor_id)

        with self._repo.resource_lock(booking.resource_id):
            current = self.get_booking(booking_id)
            status = BookingLifecycle.transition(current.status, BookingTrigger.CANCEL)
            cancelled = self._repo.update_booking(
                current.model_copy(update={"status": status, "cancellation_reason": reason})
            )

        logger.info("Booking %s cancelled: %s", booking_id, reason)
        resource = self._directory.get_resource(cancelled.resource_id)
        if cancelled.external_event_id:
            self._effects.submit(
                "calendar.delete_event",
                self._calendar.delete_event,
                resource, cancelled.external_event_id,
            )
        self._notify(cancelled, resource, NotificationKind.BOOKING_CANCELLED, reason=reason)

        # Runs after the release is stored, so it sees the freed interval.
        notified = self._waitlist.notify_candidates(cancelled.resource_id, cancelled.interval)
        return cancelled, notified

    # ------------------------------------------------------------------ #
    # Complete / reschedule
    # ------------------------------------------------------------------ #

    def complete_booking(self, booking_id: int) -> Booking:
        """Mark a scheduled booking completed. Driven by an external process."""
        booking = self.get_booking(booking_id)
        with self._repo.resource_lock(booking.resource_id):
            current = self.get_booking(booking_id)
            status = BookingLifecycle.transition(current.status, BookingTrigger.COMPLETE)
            completed = self._repo.update_booking(current.model_copy(update={"status": status}))
        logger.info("Booking %s completed", booking_id)
        return completed

    def reschedule_booking(
        self, booking_id: int, new_start: datetime, actor_id: Optional[int] = None
    ) -> Booking:
        """Move a scheduled booking, keeping its id and duration.

        The new interval is re-validated against every other occupying
        booking; the booking's own current interval does not block it.
        When the move frees part of the old interval, the waitlist is told
        about the opening.
        """
        _require_local_minute(new_start, "new_start")
        booking = self.get_booking(booking_id)
        self._check_actor(booking, actor_id)
        interval = TimeInterval(start=new_start, end=add_minutes(new_start, booking.duration_minutes))

        resource = self._directory.get_resource(booking.resource_id)
        busy = self._availability.external_busy(resource, interval.start.date(), interval.end.date())

        with self._repo.resource_lock(booking.resource_id):
            current = self.get_booking(booking_id)
            status = BookingLifecycle.transition(current.status, BookingTrigger.RESCHEDULE)
            resource = self._directory.get_resource(booking.resource_id)
            conflict = self._availability.check_interval(
                resource, interval, busy, exclude_booking_id=booking_id
            )
            if conflict:
                raise SlotUnavailableError(
                    f"{interval.start:%Y-%m-%d %H:%M}-{interval.end:%H:%M} is unavailable: {conflict}"
                )
            moved = self._repo.update_booking(
                current.model_copy(update={
                    "status": status,
                    "start_time": interval.start,
                    "end_time": interval.end,
                })
            )

        logger.info("Booking %s rescheduled to %s-%s", booking_id, moved.start_time, moved.end_time)
        if moved.external_event_id:
            self._effects.submit(
                "calendar.update_event",
                self._calendar.update_event,
                resource, moved.external_event_id, moved.interval,
                self._event_metadata(moved, resource),
            )
        else:
            self._effects.submit(
                "calendar.create_event",
                self._mirror,
                moved.id,
                on_error=lambda exc, bid=moved.id: self._queue_mirror_retry(bid),
            )
        self._notify(moved, resource, NotificationKind.BOOKING_CONFIRMATION)

        # Part of the old interval was released.
        if not (interval.start <= current.start_time and current.end_time <= interval.end):
            self._waitlist.notify_candidates(moved.resource_id, current.interval)
        return self.get_booking(booking_id)

    # ------------------------------------------------------------------ #
    # Alternatives
    # ------------------------------------------------------------------ #

    def suggest_alternatives(self, booking_id: int, reason: str) -> AlternativeSuggestions:
        """Advisory resources and dates to offer after a cancellation."""
        booking = self.get_booking(booking_id)
        resources = self._directory.list_resources(only_available=True)
        # The original resource first, then the rest in id order.
        resources.sort(key=lambda r: (r.id != booking.resource_id, r.id))
        dates = self._availability.next_available_dates(
            booking.resource_id, booking.start_time.date(), limit=5
        )
        context = {
            "resource_id": booking.resource_id,
            "offering_id": booking.offering_id,
            "start_time": booking.start_time.isoformat(),
            "duration_minutes": booking.duration_minutes,
        }
        return self._effects.call(
            "advisor.suggest_alternatives",
            self._advisor.suggest_alternatives,
            context, reason, resources, dates,
            fallback=lambda: self._fallback.suggest_alternatives(context, reason, resources, dates),
        )

    # ------------------------------------------------------------------ #
    # Calendar mirroring
    # ------------------------------------------------------------------ #

    def _mirror(self, booking_id: int) -> bool:
        booking = self.get_booking(booking_id)
        resource = self._directory.get_resource(booking.resource_id)
        event_id = self._calendar.create_event(
            resource, booking.interval, self._event_metadata(booking, resource)
        )
        with self._repo.resource_lock(booking.resource_id):
            current = self.get_booking(booking_id)
            if current.status != BookingStatus.CANCELLED:
                self._repo.update_booking(current.model_copy(update={"external_event_id": event_id}))
                return True
        # Cancelled while the event was being created.
        self._calendar.delete_event(resource, event_id)
        return True

    def _queue_mirror_retry(self, booking_id: int) -> None:
        with self._failed_lock:
            if booking_id not in self._failed_mirrors:
                self._failed_mirrors.append(booking_id)

    @property
    def pending_mirror_retries(self) -> list[int]:
        with self._failed_lock:
            return list(self._failed_mirrors)

    def retry_failed_mirrors(self) -> int:
        """Replay failed calendar mirrors; returns how many succeeded."""
        with self._failed_lock:
            queued, self._failed_mirrors = self._failed_mirrors, []
        succeeded = 0
        for booking_id in queued:
            booking = self._repo.get_booking(booking_id)
            if booking is None or booking.external_event_id or not booking.occupies_interval:
                continue
            ok = self._effects.call(
                "calendar.create_event.retry",
                self._mirror,
                booking_id,
                default=False,
                on_error=lambda exc, bid=booking_id: self._queue_mirror_retry(bid),
            )
            succeeded += int(bool(ok))
        if queued:
            logger.info("Calendar mirror retry: %d of %d succeeded", succeeded, len(queued))
        return succeeded

    @staticmethod
    def _event_metadata(booking: Booking, resource: Resource) -> dict[str, Any]:
        return {
            "booking_id": booking.id,
            "summary": f"Appointment with {resource.name}",
            "description": booking.notes or "",
        }

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _check_actor(booking: Booking, actor_id: Optional[int]) -> None:
        if actor_id is not None and actor_id != booking.customer_id:
            raise ForbiddenError(f"Customer {actor_id} does not own booking {booking.id}")

    def _notify(
        self,
        booking: Booking,
        resource: Resource,
        kind: NotificationKind,
        reason: Optional[str] = None,
    ) -> None:
        message = build_message(
            kind,
            self._studio.name,
            resource_name=resource.name,
            start_time=booking.start_time,
            reason=reason,
        )
        self._effects.submit(
            f"notifications.{kind.value}",
            self._notifier.send,
            booking.customer_id, kind, message,
        )
