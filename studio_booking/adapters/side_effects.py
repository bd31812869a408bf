"""
Single boundary for best-effort collaborator calls.

Calendar mirroring, advisor text generation, and customer notifications
all go through ``SideEffects``. Any exception they raise is logged here
and never reaches the booking core.

Two modes:
    inline      run the call immediately in the caller's thread (tests, CLI)
    background  hand the call to a thread pool and return at once

Usage:
    effects = SideEffects(mode="inline")
    effects.submit("calendar.create_event", calendar.create_event, resource, interval, {})
    busy = effects.call("calendar.get_busy_intervals", calendar.get_busy_intervals,
                        resource, day, day, default=[])
"""

import contextvars
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class SideEffects:
    """Runs collaborator calls so their failures cannot fail a core operation."""

    def __init__(self, mode: str = "inline", max_workers: int = 4) -> None:
        if mode not in ("inline", "background"):
            raise ValueError(f"Unknown side effect mode: {mode!r}")
        self.mode = mode
        self._executor: Optional[ThreadPoolExecutor] = None
        if mode == "background":
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="side-effect"
            )
        self._failures = 0
        self._failures_lock = threading.Lock()

    @property
    def failures(self) -> int:
        """Number of collaborator calls that raised."""
        with self._failures_lock:
            return self._failures

    def call(
        self,
        name: str,
        fn: Callable[..., Any],
        *args: Any,
        default: Any = None,
        fallback: Optional[Callable[[], Any]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        **kwargs: Any,
    ) -> Any:
        """Run ``fn`` synchronously; on failure log and return the fallback.

        ``fallback`` is evaluated only when ``fn`` raises and wins over
        ``default``.
        """
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            with self._failures_lock:
                self._failures += 1
            logger.warning("Side effect '%s' failed: %s", name, exc, exc_info=True)
            if on_error is not None:
                try:
                    on_error(exc)
                except Exception:
                    logger.exception("Error handler for '%s' failed", name)
            if fallback is not None:
                return fallback()
            return default

    def submit(
        self,
        name: str,
        fn: Callable[..., Any],
        *args: Any,
        on_error: Optional[Callable[[Exception], None]] = None,
        **kwargs: Any,
    ) -> Optional[Future]:
        """Fire-and-forget. Returns the Future in background mode."""
        if self._executor is None:
            self.call(name, fn, *args, on_error=on_error, **kwargs)
            return None
        # Carry the request id into the worker thread.
        ctx = contextvars.copy_context()
        logger.debug("Queued side effect '%s'", name)
        return self._executor.submit(
            ctx.run, self.call, name, fn, *args, on_error=on_error, **kwargs
        )

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
