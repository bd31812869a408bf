"""
Backend registry for pluggable collaborators.

Calendar, advisor, and notification backends are registered here by
kind and name, and the engine factory resolves them from configuration
at runtime. This keeps backend modules out of the core's import graph
and lets tests or deployments register their own.
"""

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

BACKEND_KINDS = ("calendar", "advisor", "notifier")

_BACKEND_REGISTRY: dict[str, dict[str, Callable[..., Any]]] = {
    kind: {} for kind in BACKEND_KINDS
}


def register_backend(kind: str, name: str, factory: Callable[..., Any]) -> None:
    """Register a backend factory under ``kind``/``name``."""
    if kind not in _BACKEND_REGISTRY:
        raise KeyError(f"Unknown backend kind '{kind}'. Available: {list(BACKEND_KINDS)}")
    _BACKEND_REGISTRY[kind][name] = factory
    logger.debug("Backend registered: %s/%s", kind, name)


def create_backend(kind: str, name: str, **kwargs: Any) -> Any:
    """Create a backend instance by registered kind and name.

    Raises:
        KeyError: If the kind or name is not registered.
    """
    if kind not in _BACKEND_REGISTRY:
        raise KeyError(f"Unknown backend kind '{kind}'. Available: {list(BACKEND_KINDS)}")
    backends = _BACKEND_REGISTRY[kind]
    if name not in backends:
        raise KeyError(f"{kind} backend '{name}' not registered. Available: {list(backends)}")
    return backends[name](**kwargs)


def get_registered_backends(kind: str) -> list[str]:
    """Return names of all registered backends of ``kind``."""
    return list(_BACKEND_REGISTRY.get(kind, {}))


def _auto_register() -> None:
    """Auto-register all built-in backends. Called once at import time."""
    from studio_booking.adapters.advisor import FallbackAdvisor, OpenAIAdvisor
    from studio_booking.adapters.calendar import GoogleCalendarAdapter, InMemoryCalendar
    from studio_booking.adapters.notifications import LoggingNotificationSender

    register_backend("calendar", "memory", lambda config: InMemoryCalendar())
    register_backend(
        "calendar", "google",
        lambda config: GoogleCalendarAdapter(config.calendar, timezone=config.studio.timezone),
    )
    register_backend("advisor", "fallback", lambda config: FallbackAdvisor())
    register_backend("advisor", "openai", lambda config: OpenAIAdvisor(config.advisor))
    register_backend(
        "notifier", "log",
        lambda config: LoggingNotificationSender(config.notifications.sender_name),
    )


_auto_register()
