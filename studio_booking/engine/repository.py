"""
Persistence boundary for resources, offerings, bookings, and waitlist entries.

The engine only talks to the abstract ``Repository``. ``InMemoryRepository``
is the default backend for development and tests; a database-backed
implementation must honour the same contract, in particular a per-resource
serialization primitive for the check-then-insert booking sequence.
"""

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional

from studio_booking.schemas.booking_schema import Booking
from studio_booking.schemas.resource_schema import Resource, ServiceOffering
from studio_booking.schemas.waitlist_schema import WaitlistEntry

logger = logging.getLogger(__name__)


class Repository(ABC):
    """CRUD plus the queries and locking the booking engine needs.

    Every ``add_*`` assigns and returns the stored record with its id.
    Every read returns a detached copy; callers persist changes through
    the matching ``update_*``.
    """

    # --- Resources ---
    @abstractmethod
    def add_resource(self, resource: Resource) -> Resource: ...

    @abstractmethod
    def get_resource(self, resource_id: int) -> Optional[Resource]: ...

    @abstractmethod
    def list_resources(self) -> list[Resource]: ...

    @abstractmethod
    def update_resource(self, resource: Resource) -> Resource: ...

    # --- Offerings ---
    @abstractmethod
    def add_offering(self, offering: ServiceOffering) -> ServiceOffering: ...

    @abstractmethod
    def get_offering(self, offering_id: int) -> Optional[ServiceOffering]: ...

    @abstractmethod
    def list_offerings(self, resource_id: int) -> list[ServiceOffering]: ...

    @abstractmethod
    def update_offering(self, offering: ServiceOffering) -> ServiceOffering: ...

    # --- Bookings ---
    @abstractmethod
    def add_booking(self, booking: Booking) -> Booking: ...

    @abstractmethod
    def get_booking(self, booking_id: int) -> Optional[Booking]: ...

    @abstractmethod
    def update_booking(self, booking: Booking) -> Booking: ...

    @abstractmethod
    def list_bookings(
        self, resource_id: Optional[int] = None, customer_id: Optional[int] = None
    ) -> list[Booking]: ...

    # --- Waitlist ---
    @abstractmethod
    def add_waitlist_entry(self, entry: WaitlistEntry) -> WaitlistEntry: ...

    @abstractmethod
    def get_waitlist_entry(self, entry_id: int) -> Optional[WaitlistEntry]: ...

    @abstractmethod
    def update_waitlist_entry(self, entry: WaitlistEntry) -> WaitlistEntry: ...

    @abstractmethod
    def list_waitlist_entries(
        self, resource_id: Optional[int] = None, customer_id: Optional[int] = None
    ) -> list[WaitlistEntry]: ...

    # --- Serialization ---
    @abstractmethod
    def resource_lock(self, resource_id: int):
        """Context manager serializing booking writes for one resource."""


class InMemoryRepository(Repository):
    """Thread-safe dict-backed repository.

    A single table lock guards every read and write so readers always see
    a fully committed record. Booking writers additionally hold the
    per-resource lock across their availability re-check and insert.
    """

    def __init__(self) -> None:
        self._resources: dict[int, Resource] = {}
        self._offerings: dict[int, ServiceOffering] = {}
        self._bookings: dict[int, Booking] = {}
        self._waitlist: dict[int, WaitlistEntry] = {}
        self._ids = {
            name: itertools.count(1)
            for name in ("resource", "offering", "booking", "waitlist")
        }
        self._table_lock = threading.RLock()
        self._resource_locks: dict[int, threading.Lock] = {}
        self._resource_locks_guard = threading.Lock()

    def _insert(self, table: dict, kind: str, record):
        with self._table_lock:
            stored = record.model_copy(update={"id": next(self._ids[kind])}, deep=True)
            table[stored.id] = stored
            return stored.model_copy(deep=True)

    def _get(self, table: dict, record_id: int):
        with self._table_lock:
            record = table.get(record_id)
            return record.model_copy(deep=True) if record is not None else None

    def _replace(self, table: dict, kind: str, record):
        with self._table_lock:
            if record.id not in table:
                raise KeyError(f"{kind} {record.id} is not stored")
            table[record.id] = record.model_copy(deep=True)
            return record.model_copy(deep=True)

    # --- Resources ---
    def add_resource(self, resource: Resource) -> Resource:
        return self._insert(self._resources, "resource", resource)

    def get_resource(self, resource_id: int) -> Optional[Resource]:
        return self._get(self._resources, resource_id)

    def list_resources(self) -> list[Resource]:
        with self._table_lock:
            return [r.model_copy(deep=True) for r in self._resources.values()]

    def update_resource(self, resource: Resource) -> Resource:
        return self._replace(self._resources, "resource", resource)

    # --- Offerings ---
    def add_offering(self, offering: ServiceOffering) -> ServiceOffering:
        return self._insert(self._offerings, "offering", offering)

    def get_offering(self, offering_id: int) -> Optional[ServiceOffering]:
        return self._get(self._offerings, offering_id)

    def list_offerings(self, resource_id: int) -> list[ServiceOffering]:
        with self._table_lock:
            return [
                o.model_copy(deep=True) for o in self._offerings.values() if o.resource_id == resource_id
            ]

    def update_offering(self, offering: ServiceOffering) -> ServiceOffering:
        return self._replace(self._offerings, "offering", offering)

    # --- Bookings ---
    def add_booking(self, booking: Booking) -> Booking:
        return self._insert(self._bookings, "booking", booking)

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        return self._get(self._bookings, booking_id)

    def update_booking(self, booking: Booking) -> Booking:
        return self._replace(self._bookings, "booking", booking)

    def list_bookings(
        self, resource_id: Optional[int] = None, customer_id: Optional[int] = None
    ) -> list[Booking]:
        with self._table_lock:
            return [
                b.model_copy(deep=True)
                for b in self._bookings.values()
                if (resource_id is None or b.resource_id == resource_id)
                and (customer_id is None or b.customer_id == customer_id)
            ]

    # --- Waitlist ---
    def add_waitlist_entry(self, entry: WaitlistEntry) -> WaitlistEntry:
        return self._insert(self._waitlist, "waitlist", entry)

    def get_waitlist_entry(self, entry_id: int) -> Optional[WaitlistEntry]:
        return self._get(self._waitlist, entry_id)

    def update_waitlist_entry(self, entry: WaitlistEntry) -> WaitlistEntry:
        return self._replace(self._waitlist, "waitlist", entry)

    def list_waitlist_entries(
        self, resource_id: Optional[int] = None, customer_id: Optional[int] = None
    ) -> list[WaitlistEntry]:
        with self._table_lock:
            return [
                e.model_copy(deep=True)
                for e in self._waitlist.values()
                if (resource_id is None or e.resource_id == resource_id)
                and (customer_id is None or e.customer_id == customer_id)
            ]

    # --- Serialization ---
    @contextmanager
    def resource_lock(self, resource_id: int) -> Iterator[None]:
        with self._resource_locks_guard:
            lock = self._resource_locks.setdefault(resource_id, threading.Lock())
        with lock:
            logger.debug("Acquired booking lock for resource %s", resource_id)
            yield
