"""
Studio booking engine command line.

Runs against an in-memory studio seeded with demo artists, so no API keys
or external calendar are needed.

Usage:
    python main.py demo
    python main.py slots --resource 1 --date 2026-03-16
    python main.py slots --resource 1 --date 2026-03-16 --granularity 60
"""

import argparse
import logging
import sys
from datetime import date, datetime, timedelta

from studio_booking.config import settings
from studio_booking.engine.analytics import format_report
from studio_booking.engine.service import BookingEngine, build_engine
from studio_booking.errors import BookingEngineError, SlotUnavailableError
from studio_booking.schemas.booking_schema import AvailabilityStatus
from studio_booking.seed import seed_demo_studio

logger = logging.getLogger(__name__)

GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

STATUS_COLORS = {
    AvailabilityStatus.AVAILABLE: GREEN,
    AvailabilityStatus.LIMITED: YELLOW,
    AvailabilityStatus.UNAVAILABLE: RED,
}


def _banner(text: str) -> None:
    print()
    print(f"{BOLD}{'=' * 60}{RESET}")
    print(f"{BOLD}  {text}{RESET}")
    print(f"{BOLD}{'=' * 60}{RESET}")


def _next_monday(today: date) -> date:
    return today + timedelta(days=(7 - today.weekday()) % 7 or 7)


def _print_slots(engine: BookingEngine, resource_id: int, day: date, granularity: int) -> None:
    slots = engine.availability.compute_slots(resource_id, day, granularity)
    if not slots:
        print(f"{DIM}  No working hours on {day:%A %Y-%m-%d}{RESET}")
        return
    for slot in slots:
        color = GREEN if slot.is_available else RED
        label = "free" if slot.is_available else "taken"
        print(f"  {color}{slot.start_time:%H:%M}-{slot.end_time:%H:%M}  {label}{RESET}")


def run_demo(engine: BookingEngine) -> None:
    resources = seed_demo_studio(engine.directory)
    artist = resources[0]
    medium = next(
        o for o in engine.directory.list_offerings(artist.id) if o.duration_minutes == 240
    )
    monday = _next_monday(date.today())

    _banner(f"{settings.studio.name} - week of {monday}")
    print(f"{BOLD}Artist:{RESET} {artist.name} ({artist.specialty})")

    booking = engine.book({
        "resource_id": artist.id,
        "offering_id": medium.id,
        "customer_id": 101,
        "start_time": datetime.combine(monday, datetime.min.time()).replace(hour=10),
        "notes": "Rose on forearm",
    })
    print(f"{GREEN}Booked #{booking.id}: {booking.start_time:%a %H:%M}-{booking.end_time:%H:%M}{RESET}")

    try:
        engine.bookings.create_booking(
            artist.id, medium.id, booking.start_time + timedelta(hours=2), 102
        )
    except SlotUnavailableError as e:
        print(f"{RED}Overlapping request rejected: {e}{RESET}")

    print(f"\n{BOLD}Day availability{RESET}")
    for day in engine.availability.compute_day_availability(
        artist.id, monday, monday + timedelta(days=6)
    ):
        color = STATUS_COLORS[day.status]
        print(
            f"  {day.date:%a %Y-%m-%d}  {color}{day.status.value:<11}{RESET}"
            f" {DIM}{day.occupied_minutes}/{day.working_minutes} min{RESET}"
        )

    print(f"\n{BOLD}Slots on {monday:%A}{RESET}")
    _print_slots(engine, artist.id, monday, settings.availability.slot_granularity_minutes)

    joined = engine.join_waitlist(
        103, {"resource_id": artist.id, "style": "traditional", "description": "Swallow on chest"}
    )
    print(f"\n{BOLD}Waitlist:{RESET} entry #{joined.entry.id} - {joined.message}")

    result = engine.cancel({"booking_id": booking.id, "reason": "Schedule conflict", "actor_id": 101})
    print(f"\n{YELLOW}Cancelled #{result.booking.id}{RESET}; waitlist notified: "
          f"{result.notified_waitlist_entry_ids}")
    if result.suggestions:
        print(f"{DIM}  {result.suggestions.message}{RESET}")
        print(f"{DIM}  Dates: {', '.join(str(d) for d in result.suggestions.dates)}{RESET}")

    rebooked = engine.bookings.create_booking(artist.id, medium.id, booking.start_time, 103)
    engine.waitlist.mark_converted(joined.entry.id, rebooked.id)
    engine.bookings.complete_booking(rebooked.id)

    analytics = engine.analytics.studio_analytics(monday, monday + timedelta(days=6))
    _banner("Analytics")
    print(format_report(analytics, engine.analytics.insights(analytics)))


def main() -> None:
    parser = argparse.ArgumentParser(description="Studio availability and booking engine.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("demo", help="Seed a demo studio and walk through a booking lifecycle.")

    slots = sub.add_parser("slots", help="Print the slots for one resource and date.")
    slots.add_argument("--resource", type=int, required=True, help="Resource id.")
    slots.add_argument(
        "--date", type=date.fromisoformat, required=True, help="Date as YYYY-MM-DD."
    )
    slots.add_argument(
        "--granularity",
        type=int,
        default=settings.availability.slot_granularity_minutes,
        help="Slot length in minutes.",
    )

    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    engine = build_engine()
    try:
        if args.command == "demo":
            run_demo(engine)
        else:
            seed_demo_studio(engine.directory)
            _banner(f"Slots for resource {args.resource} on {args.date:%A %Y-%m-%d}")
            _print_slots(engine, args.resource, args.date, args.granularity)
    except BookingEngineError as e:
        logger.error("%s", e)
        sys.exit(1)
    finally:
        engine.close()


if __name__ == "__main__":
    main()
