"""Resource directory: artists, their working templates, and their offerings."""

import logging
from typing import Optional

from studio_booking.config import StudioConfig, settings
from studio_booking.engine.repository import Repository
from studio_booking.errors import InvalidRequestError, NotFoundError
from studio_booking.schemas.resource_schema import Resource, ServiceOffering, WorkingHours
from studio_booking.utils import parse_hhmm

logger = logging.getLogger(__name__)


def default_working_hours(studio: StudioConfig = settings.studio) -> dict[int, list[WorkingHours]]:
    """Weekly template from studio opening hours, minus closed weekdays."""
    window = WorkingHours(
        start=parse_hhmm(studio.opening_time), end=parse_hhmm(studio.closing_time)
    )
    return {
        weekday: [window]
        for weekday in range(7)
        if weekday not in studio.closed_weekdays
    }


class ResourceDirectory:
    """Looks up and maintains resources and their service offerings."""

    def __init__(self, repository: Repository) -> None:
        self._repo = repository

    # ------------------------------------------------------------------ #
    # Resources
    # ------------------------------------------------------------------ #

    def register_resource(
        self,
        name: str,
        specialty: str = "",
        bio: str = "",
        working_hours: Optional[dict[int, list[WorkingHours]]] = None,
        calendar_id: Optional[str] = None,
        is_available: bool = True,
    ) -> Resource:
        """Create a resource. Without a template the studio hours apply."""
        resource = Resource(
            name=name,
            specialty=specialty,
            bio=bio,
            working_hours=working_hours if working_hours is not None else default_working_hours(),
            calendar_id=calendar_id,
            is_available=is_available,
        )
        stored = self._repo.add_resource(resource)
        logger.info("Resource registered: %s (%s)", stored.id, stored.name)
        return stored

    def get_resource(self, resource_id: int) -> Resource:
        resource = self._repo.get_resource(resource_id)
        if resource is None:
            raise NotFoundError("Resource", resource_id)
        return resource

    def list_resources(self, only_available: bool = False) -> list[Resource]:
        resources = sorted(self._repo.list_resources(), key=lambda r: r.id)
        if only_available:
            return [r for r in resources if r.is_available]
        return resources

    def set_availability(self, resource_id: int, is_available: bool) -> Resource:
        """Flip the manual "accepting bookings" switch."""
        resource = self.get_resource(resource_id)
        updated = self._repo.update_resource(
            resource.model_copy(update={"is_available": is_available})
        )
        logger.info("Resource %s accepting bookings: %s", resource_id, is_available)
        return updated

    def link_calendar(self, resource_id: int, calendar_id: Optional[str]) -> Resource:
        resource = self.get_resource(resource_id)
        updated = self._repo.update_resource(
            resource.model_copy(update={"calendar_id": calendar_id})
        )
        logger.info("Resource %s calendar link set to %s", resource_id, calendar_id)
        return updated

    # ------------------------------------------------------------------ #
    # Offerings
    # ------------------------------------------------------------------ #

    def add_offering(
        self,
        resource_id: int,
        name: str,
        duration_minutes: int,
        price: Optional[int] = None,
        description: Optional[str] = None,
    ) -> ServiceOffering:
        self.get_resource(resource_id)
        stored = self._repo.add_offering(
            ServiceOffering(
                resource_id=resource_id,
                name=name,
                duration_minutes=duration_minutes,
                price=price,
                description=description,
            )
        )
        logger.info("Offering %s added for resource %s: %s", stored.id, resource_id, name)
        return stored

    def get_offering(self, offering_id: int) -> ServiceOffering:
        offering = self._repo.get_offering(offering_id)
        if offering is None:
            raise NotFoundError("ServiceOffering", offering_id)
        return offering

    def list_offerings(self, resource_id: int, include_inactive: bool = False) -> list[ServiceOffering]:
        self.get_resource(resource_id)
        offerings = sorted(self._repo.list_offerings(resource_id), key=lambda o: o.id)
        if include_inactive:
            return offerings
        return [o for o in offerings if o.is_active]

    def deactivate_offering(self, offering_id: int) -> ServiceOffering:
        """Retire an offering. Historical bookings keep referencing it."""
        offering = self.get_offering(offering_id)
        return self._repo.update_offering(offering.model_copy(update={"is_active": False}))

    def require_bookable_offering(self, resource_id: int, offering_id: int) -> ServiceOffering:
        """Return the offering if it is active and belongs to the resource.

        Raises:
            NotFoundError: Unknown resource.
            InvalidRequestError: Unknown, foreign, or inactive offering.
        """
        self.get_resource(resource_id)
        offering = self._repo.get_offering(offering_id)
        if offering is None or offering.resource_id != resource_id:
            raise InvalidRequestError(
                f"Offering {offering_id} is not offered by resource {resource_id}"
            )
        if not offering.is_active:
            raise InvalidRequestError(f"Offering {offering_id} is no longer available")
        return offering
