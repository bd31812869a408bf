from studio_booking.engine.repository import InMemoryRepository, Repository
from studio_booking.engine.service import BookingEngine, build_engine

__all__ = ["InMemoryRepository", "Repository", "BookingEngine", "build_engine"]
