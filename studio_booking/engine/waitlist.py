"""
Waitlist manager.

Entries are never physically deleted: removal and promotion to a booking
both deactivate. Promotion candidates are served first-come-first-served
and promotion itself is a notification, never an automatic booking.
"""

import threading
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import ValidationError

from studio_booking.adapters.advisor import FallbackAdvisor, TextAdvisor
from studio_booking.adapters.notifications import (
    NotificationKind,
    NotificationSender,
    build_message,
)
from studio_booking.adapters.side_effects import SideEffects
from studio_booking.config import StudioConfig, WaitlistConfig, settings
from studio_booking.engine.directory import ResourceDirectory
from studio_booking.engine.repository import Repository
from studio_booking.errors import (
    ForbiddenError,
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
)
from studio_booking.logging_context import get_request_logger
from studio_booking.schemas.booking_schema import TimeInterval
from studio_booking.schemas.waitlist_schema import (
    WaitlistEntry,
    WaitlistJoinResult,
    WaitlistPreferences,
)

logger = get_request_logger(__name__)


class WaitlistManager:
    """Stores standing requests and finds who to tell when a slot opens."""

    def __init__(
        self,
        repository: Repository,
        directory: ResourceDirectory,
        notifier: NotificationSender,
        advisor: TextAdvisor,
        side_effects: SideEffects,
        fallback_advisor: Optional[TextAdvisor] = None,
        config: WaitlistConfig = settings.waitlist,
        studio: StudioConfig = settings.studio,
    ) -> None:
        self._repo = repository
        self._directory = directory
        self._notifier = notifier
        self._advisor = advisor
        self._effects = side_effects
        self._fallback = fallback_advisor or FallbackAdvisor()
        self._config = config
        self._studio = studio
        # Guards the active check and deactivation of entries.
        self._state_lock = threading.Lock()

    def _validate(self, preferences: Union[WaitlistPreferences, dict[str, Any]]) -> WaitlistPreferences:
        if isinstance(preferences, dict):
            try:
                preferences = WaitlistPreferences.model_validate(preferences)
            except ValidationError as e:
                raise InvalidRequestError(f"Invalid waitlist preferences: {e}") from e
        if len(preferences.description) > self._config.description_max_length:
            raise InvalidRequestError(
                f"description exceeds {self._config.description_max_length} characters"
            )
        if preferences.resource_id is not None:
            self._directory.get_resource(preferences.resource_id)
        return preferences

    def join(
        self, customer_id: int, preferences: Union[WaitlistPreferences, dict[str, Any]]
    ) -> WaitlistEntry:
        """Create an active entry.

        Style, size, and budget outside the recommended sets are accepted as
        given; missing ones are stored as ``"unspecified"``.

        Raises:
            InvalidRequestError: Missing/blank or over-long description.
            NotFoundError: Preferred resource does not exist.
        """
        prefs = self._validate(preferences)
        entry = self._repo.add_waitlist_entry(
            WaitlistEntry(customer_id=customer_id, **prefs.model_dump())
        )
        if not prefs.uses_recommended_values():
            logger.debug("Waitlist entry %s uses free-text preferences", entry.id)
        logger.info(
            "Waitlist entry %s created for customer %s (resource: %s)",
            entry.id, customer_id, entry.resource_id or "any",
        )
        return entry

    def join_with_message(
        self, customer_id: int, preferences: Union[WaitlistPreferences, dict[str, Any]]
    ) -> WaitlistJoinResult:
        """``join`` plus a best-effort acknowledgement from the advisor."""
        prefs = self._validate(preferences)
        entry = self.join(customer_id, prefs)
        message = self._effects.call(
            "advisor.waitlist_message",
            self._advisor.waitlist_message,
            prefs,
            fallback=lambda: self._fallback.waitlist_message(prefs),
        )
        return WaitlistJoinResult(entry=entry, message=message)

    def get_entry(self, entry_id: int) -> WaitlistEntry:
        entry = self._repo.get_waitlist_entry(entry_id)
        if entry is None:
            raise NotFoundError("WaitlistEntry", entry_id)
        return entry

    def remove(self, entry_id: int, requester_id: int) -> WaitlistEntry:
        """Soft-deactivate an entry. Removing an inactive entry is a no-op."""
        entry = self.get_entry(entry_id)
        if entry.customer_id != requester_id:
            raise ForbiddenError(f"Customer {requester_id} does not own waitlist entry {entry_id}")
        with self._state_lock:
            entry = self.get_entry(entry_id)
            if not entry.is_active:
                return entry
            updated = self._repo.update_waitlist_entry(
                entry.model_copy(update={"is_active": False, "deactivated_at": datetime.now()})
            )
        logger.info("Waitlist entry %s removed by customer %s", entry_id, requester_id)
        return updated

    def find_promotion_candidates(
        self, resource_id: int, opened_interval: Optional[TimeInterval] = None
    ) -> list[WaitlistEntry]:
        """Active entries for ``resource_id`` or any resource, oldest first.

        Preferred dates are free text, so ``opened_interval`` does not filter.
        """
        self._directory.get_resource(resource_id)
        candidates = [
            e for e in self._repo.list_waitlist_entries()
            if e.is_active and (e.resource_id is None or e.resource_id == resource_id)
        ]
        candidates.sort(key=lambda e: (e.created_at, e.id))
        logger.debug(
            "%d promotion candidates for resource %s (%s)",
            len(candidates), resource_id, opened_interval,
        )
        return candidates

    def notify_candidates(self, resource_id: int, opened_interval: TimeInterval) -> list[WaitlistEntry]:
        """Tell the first candidates about an opening; returns who was told."""
        resource = self._directory.get_resource(resource_id)
        notified = self.find_promotion_candidates(resource_id, opened_interval)[
            : self._config.max_promotion_notifications
        ]
        for entry in notified:
            message = build_message(
                NotificationKind.WAITLIST_OPENING,
                self._studio.name,
                resource_name=resource.name,
                opening_date=opened_interval.start.date(),
            )
            self._effects.submit(
                "notifications.waitlist_opening",
                self._notifier.send,
                entry.customer_id, NotificationKind.WAITLIST_OPENING, message,
            )
        if notified:
            logger.info(
                "Notified %d waitlist entries of opening with resource %s",
                len(notified), resource_id,
            )
        return notified

    def mark_converted(self, entry_id: int, booking_id: int) -> WaitlistEntry:
        """Deactivate an entry that was promoted into ``booking_id``."""
        entry = self.get_entry(entry_id)
        booking = self._repo.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        if booking.customer_id != entry.customer_id:
            raise InvalidRequestError(
                f"Booking {booking_id} does not belong to the owner of waitlist entry {entry_id}"
            )
        with self._state_lock:
            entry = self.get_entry(entry_id)
            if not entry.is_active:
                raise InvalidStateError(f"Waitlist entry {entry_id} is no longer active")
            updated = self._repo.update_waitlist_entry(
                entry.model_copy(update={
                    "is_active": False,
                    "deactivated_at": datetime.now(),
                    "converted_booking_id": booking_id,
                })
            )
        logger.info("Waitlist entry %s converted to booking %s", entry_id, booking_id)
        return updated

    def list_for_resource(self, resource_id: int, include_inactive: bool = False) -> list[WaitlistEntry]:
        self._directory.get_resource(resource_id)
        entries = self._repo.list_waitlist_entries(resource_id=resource_id)
        if not include_inactive:
            entries = [e for e in entries if e.is_active]
        return sorted(entries, key=lambda e: (e.created_at, e.id))

    def list_for_customer(self, customer_id: int, include_inactive: bool = False) -> list[WaitlistEntry]:
        entries = self._repo.list_waitlist_entries(customer_id=customer_id)
        if not include_inactive:
            entries = [e for e in entries if e.is_active]
        return sorted(entries, key=lambda e: (e.created_at, e.id))
