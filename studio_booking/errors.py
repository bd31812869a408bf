"""Error taxonomy for the booking engine.

Every error here is recoverable by the caller and is raised directly by
the engine. Collaborator failures (calendar, advisor, notifications) never
surface as one of these.
"""


class BookingEngineError(Exception):
    """Base class for all booking engine errors."""


class NotFoundError(BookingEngineError):
    """Unknown resource, offering, booking, or waitlist entry id."""

    def __init__(self, kind: str, entity_id: object) -> None:
        super().__init__(f"{kind} {entity_id!r} not found")
        self.kind = kind
        self.entity_id = entity_id


class InvalidRequestError(BookingEngineError):
    """Malformed or inconsistent input."""


class SlotUnavailableError(BookingEngineError):
    """The requested interval is no longer free at commit time."""


class InvalidStateError(BookingEngineError):
    """Illegal state transition, e.g. cancelling a cancelled booking."""


class ForbiddenError(BookingEngineError):
    """The actor lacks rights over the entity."""
