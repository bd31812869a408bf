"""
Centralized configuration with environment variable overrides.

All studio-specific values, thresholds, and collaborator backends are
configurable here. Nothing is hardcoded in the availability or booking logic.
"""

import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_int_tuple(env_var: str, default: str) -> tuple[int, ...]:
    """Parse a comma-separated list of integers, e.g. ``"5,6"``."""
    raw = os.getenv(env_var, default)
    try:
        return tuple(int(part) for part in raw.split(",") if part.strip())
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer list for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class StudioConfig:
    """Studio-wide defaults used when a resource has no explicit template."""

    name: str = os.getenv("STUDIO_NAME", "InkSync Tattoo")
    opening_time: str = os.getenv("STUDIO_OPENING_TIME", "09:00")
    closing_time: str = os.getenv("STUDIO_CLOSING_TIME", "18:00")
    # Monday=0 ... Sunday=6
    closed_weekdays: tuple[int, ...] = _safe_int_tuple("STUDIO_CLOSED_WEEKDAYS", "6")
    # IANA name. Booking times are naive wall-clock times in this zone.
    timezone: str = os.getenv("STUDIO_TIMEZONE", "UTC")


@dataclass(frozen=True)
class AvailabilityConfig:
    """Slot granularity and day classification thresholds."""

    slot_granularity_minutes: int = _safe_int("SLOT_GRANULARITY_MINUTES", "30")
    limited_threshold: float = _safe_float("LIMITED_THRESHOLD", "0.5")
    max_range_days: int = _safe_int("MAX_RANGE_DAYS", "92")


@dataclass(frozen=True)
class WaitlistConfig:
    """Waitlist validation and promotion settings."""

    description_max_length: int = _safe_int("WAITLIST_DESCRIPTION_MAX_LENGTH", "2000")
    max_promotion_notifications: int = _safe_int("MAX_PROMOTION_NOTIFICATIONS", "5")


@dataclass(frozen=True)
class AdvisorConfig:
    """Text advisor (LLM) settings."""

    backend: str = os.getenv("ADVISOR_BACKEND", "fallback")
    llm_model: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    llm_temperature: float = _safe_float("LLM_TEMPERATURE", "0.3")
    request_timeout_sec: float = _safe_float("ADVISOR_TIMEOUT", "10.0")


@dataclass(frozen=True)
class CalendarConfig:
    """External calendar backend settings."""

    backend: str = os.getenv("CALENDAR_BACKEND", "memory")
    credentials_file: str = os.getenv("GOOGLE_CREDENTIALS_FILE", "")
    default_calendar_id: str = os.getenv("GOOGLE_CALENDAR_ID", "primary")


@dataclass(frozen=True)
class NotificationConfig:
    """Customer notification settings."""

    backend: str = os.getenv("NOTIFICATION_BACKEND", "log")
    sender_name: str = os.getenv("NOTIFICATION_SENDER", "InkSync Tattoo")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    studio: StudioConfig = field(default_factory=StudioConfig)
    availability: AvailabilityConfig = field(default_factory=AvailabilityConfig)
    waitlist: WaitlistConfig = field(default_factory=WaitlistConfig)
    advisor: AdvisorConfig = field(default_factory=AdvisorConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    side_effect_mode: str = os.getenv("SIDE_EFFECT_MODE", "inline")
    side_effect_workers: int = _safe_int("SIDE_EFFECT_WORKERS", "4")


_SIDE_EFFECT_MODES = ("inline", "background")


def _validate_hhmm(env_var: str, value: str) -> int:
    try:
        hours, minutes = value.split(":")
        total = int(hours) * 60 + int(minutes)
    except ValueError:
        raise ValueError(f"{env_var} must be HH:MM, got {value!r}") from None
    if not 0 <= total <= 24 * 60:
        raise ValueError(f"{env_var} must be within the day, got {value!r}")
    return total


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    opening = _validate_hhmm("STUDIO_OPENING_TIME", config.studio.opening_time)
    closing = _validate_hhmm("STUDIO_CLOSING_TIME", config.studio.closing_time)
    if opening >= closing:
        raise ValueError(
            "STUDIO_OPENING_TIME must be before STUDIO_CLOSING_TIME, "
            f"got {config.studio.opening_time} - {config.studio.closing_time}"
        )
    try:
        ZoneInfo(config.studio.timezone)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise ValueError(
            f"STUDIO_TIMEZONE must be an IANA timezone name, got {config.studio.timezone!r}"
        ) from None
    for weekday in config.studio.closed_weekdays:
        if not 0 <= weekday <= 6:
            raise ValueError(
                f"STUDIO_CLOSED_WEEKDAYS entries must be 0-6, got {weekday}"
            )

    if config.availability.slot_granularity_minutes < 1:
        raise ValueError(
            "SLOT_GRANULARITY_MINUTES must be >= 1, "
            f"got {config.availability.slot_granularity_minutes}"
        )
    if not 0.0 < config.availability.limited_threshold <= 1.0:
        raise ValueError(
            "LIMITED_THRESHOLD must be in (0.0, 1.0], "
            f"got {config.availability.limited_threshold}"
        )
    if config.availability.max_range_days < 1:
        raise ValueError(
            f"MAX_RANGE_DAYS must be >= 1, got {config.availability.max_range_days}"
        )

    if config.waitlist.description_max_length < 1:
        raise ValueError(
            "WAITLIST_DESCRIPTION_MAX_LENGTH must be >= 1, "
            f"got {config.waitlist.description_max_length}"
        )
    if config.waitlist.max_promotion_notifications < 0:
        raise ValueError(
            "MAX_PROMOTION_NOTIFICATIONS must be >= 0, "
            f"got {config.waitlist.max_promotion_notifications}"
        )

    if not 0.0 <= config.advisor.llm_temperature <= 2.0:
        raise ValueError(
            f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {config.advisor.llm_temperature}"
        )
    if config.advisor.request_timeout_sec <= 0:
        raise ValueError(
            f"ADVISOR_TIMEOUT must be > 0, got {config.advisor.request_timeout_sec}"
        )

    if config.side_effect_mode not in _SIDE_EFFECT_MODES:
        raise ValueError(
            f"SIDE_EFFECT_MODE must be one of {_SIDE_EFFECT_MODES}, "
            f"got {config.side_effect_mode!r}"
        )
    if config.side_effect_workers < 1:
        raise ValueError(
            f"SIDE_EFFECT_WORKERS must be >= 1, got {config.side_effect_workers}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.studio.name)
    return config


# Singleton instance
settings = load_config()
