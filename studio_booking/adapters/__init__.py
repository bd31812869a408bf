from studio_booking.adapters.registry import create_backend, register_backend, get_registered_backends
from studio_booking.adapters.side_effects import SideEffects

__all__ = ["create_backend", "register_backend", "get_registered_backends", "SideEffects"]
