"""
Read-only reporting over bookings and the waitlist.

Every figure for a period ``[start, end]`` (inclusive dates) is compared
with the immediately preceding period of the same number of days. Growth
is ``(current - previous) / previous * 100`` and is 0 when the previous
value is 0.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from studio_booking.adapters.advisor import AdvisorInsights, FallbackAdvisor, TextAdvisor
from studio_booking.adapters.side_effects import SideEffects
from studio_booking.engine.directory import ResourceDirectory
from studio_booking.engine.repository import Repository
from studio_booking.errors import InvalidRequestError
from studio_booking.schemas.booking_schema import Booking, BookingStatus
from studio_booking.schemas.waitlist_schema import UNSPECIFIED, WaitlistEntry

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
TOP_N = 3


def growth_percentage(current: float, previous: float) -> float:
    """Percentage change from ``previous`` to ``current``; 0 when previous is 0."""
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


def previous_period(start: date, end: date) -> tuple[date, date]:
    """Equal-length period ending the day before ``start``."""
    days = (end - start).days + 1
    return start - timedelta(days=days), start - timedelta(days=1)


def _percent(part: int, whole: int) -> float:
    return part / whole * 100 if whole else 0.0


@dataclass
class BookingAnalytics:
    """Booking counts, revenue, and growth for one period."""

    start_date: date
    end_date: date
    resource_id: Optional[int] = None

    total_bookings: int = 0
    scheduled_bookings: int = 0
    completed_bookings: int = 0
    cancelled_bookings: int = 0
    revenue: int = 0

    previous_total_bookings: int = 0
    previous_revenue: int = 0
    booking_growth: float = 0.0
    revenue_growth: float = 0.0

    average_duration_minutes: float = 0.0
    top_offerings: list[tuple[str, int]] = field(default_factory=list)
    bookings_by_weekday: dict[str, int] = field(default_factory=dict)


@dataclass
class WaitlistAnalytics:
    """Waitlist volume and conversion for one period."""

    start_date: date
    end_date: date
    total_entries: int = 0
    active_entries: int = 0
    converted_entries: int = 0
    conversion_rate: float = 0.0
    average_wait_days: float = 0.0
    top_styles: list[tuple[str, int]] = field(default_factory=list)
    top_requested_resources: list[tuple[str, int]] = field(default_factory=list)


@dataclass
class ResourceAnalytics:
    """Performance of a single resource for one period."""

    resource_id: int
    name: str
    total_bookings: int = 0
    completed_bookings: int = 0
    cancelled_bookings: int = 0
    revenue: int = 0
    booked_hours: float = 0.0
    popular_offerings: list[tuple[str, int]] = field(default_factory=list)
    peak_hours: list[tuple[str, int]] = field(default_factory=list)


@dataclass
class StudioAnalytics:
    """Studio-wide snapshot combining every report."""

    bookings: BookingAnalytics
    waitlist: WaitlistAnalytics
    resources: list[ResourceAnalytics] = field(default_factory=list)
    total_revenue: int = 0
    completion_rate: float = 0.0
    waitlist_conversion_rate: float = 0.0
    business_growth: float = 0.0
    peak_times: list[tuple[str, int]] = field(default_factory=list)

    def snapshot(self) -> dict:
        """Flat summary handed to the advisor."""
        return {
            "period": f"{self.bookings.start_date} to {self.bookings.end_date}",
            "total_bookings": self.bookings.total_bookings,
            "completed_bookings": self.bookings.completed_bookings,
            "cancelled_bookings": self.bookings.cancelled_bookings,
            "total_revenue": self.total_revenue,
            "business_growth": round(self.business_growth, 1),
            "completion_rate": round(self.completion_rate, 1),
            "waitlist_conversion_rate": round(self.waitlist_conversion_rate, 1),
            "average_wait_days": round(self.waitlist.average_wait_days, 1),
            "peak_times": self.peak_times,
            "resources": [
                {"name": r.name, "bookings": r.total_bookings, "revenue": r.revenue}
                for r in self.resources
            ],
        }


class AnalyticsAggregator:
    """Computes reports without mutating bookings or waitlist entries."""

    def __init__(
        self,
        repository: Repository,
        directory: ResourceDirectory,
        advisor: TextAdvisor,
        side_effects: SideEffects,
        fallback_advisor: Optional[TextAdvisor] = None,
    ) -> None:
        self._repo = repository
        self._directory = directory
        self._advisor = advisor
        self._effects = side_effects
        self._fallback = fallback_advisor or FallbackAdvisor()

    @staticmethod
    def _check_range(start: date, end: date) -> None:
        if end < start:
            raise InvalidRequestError(f"end date {end} is before start date {start}")

    def _bookings_in(self, start: date, end: date, resource_id: Optional[int] = None) -> list[Booking]:
        return [
            b for b in self._repo.list_bookings(resource_id=resource_id)
            if start <= b.start_time.date() <= end
        ]

    def _revenue(self, bookings: list[Booking], prices: dict[int, int]) -> int:
        return sum(
            prices.get(b.offering_id, 0)
            for b in bookings
            if b.status == BookingStatus.COMPLETED
        )

    def _offering_lookup(self, bookings: list[Booking]) -> tuple[dict[int, int], dict[int, str]]:
        prices: dict[int, int] = {}
        names: dict[int, str] = {}
        for offering_id in {b.offering_id for b in bookings}:
            offering = self._repo.get_offering(offering_id)
            if offering is None:
                continue
            prices[offering_id] = offering.price or 0
            names[offering_id] = offering.name
        return prices, names

    def booking_analytics(
        self, start: date, end: date, resource_id: Optional[int] = None
    ) -> BookingAnalytics:
        self._check_range(start, end)
        if resource_id is not None:
            self._directory.get_resource(resource_id)
        prev_start, prev_end = previous_period(start, end)
        current = self._bookings_in(start, end, resource_id)
        previous = self._bookings_in(prev_start, prev_end, resource_id)
        prices, names = self._offering_lookup(current + previous)

        report = BookingAnalytics(start_date=start, end_date=end, resource_id=resource_id)
        statuses = Counter(b.status for b in current)
        report.total_bookings = len(current)
        report.scheduled_bookings = statuses[BookingStatus.SCHEDULED]
        report.completed_bookings = statuses[BookingStatus.COMPLETED]
        report.cancelled_bookings = statuses[BookingStatus.CANCELLED]
        report.revenue = self._revenue(current, prices)

        report.previous_total_bookings = len(previous)
        report.previous_revenue = self._revenue(previous, prices)
        report.booking_growth = growth_percentage(report.total_bookings, report.previous_total_bookings)
        report.revenue_growth = growth_percentage(report.revenue, report.previous_revenue)

        if current:
            report.average_duration_minutes = sum(b.duration_minutes for b in current) / len(current)
        report.top_offerings = Counter(
            names.get(b.offering_id, f"Offering {b.offering_id}") for b in current
        ).most_common(TOP_N)
        weekdays = Counter(b.start_time.weekday() for b in current)
        report.bookings_by_weekday = {WEEKDAY_NAMES[i]: weekdays[i] for i in range(7)}
        return report

    def _entries_in(self, start: date, end: date, resource_id: Optional[int] = None) -> list[WaitlistEntry]:
        return [
            e for e in self._repo.list_waitlist_entries(resource_id=resource_id)
            if start <= e.created_at.date() <= end
        ]

    def waitlist_analytics(
        self, start: date, end: date, resource_id: Optional[int] = None
    ) -> WaitlistAnalytics:
        self._check_range(start, end)
        if resource_id is not None:
            self._directory.get_resource(resource_id)
        entries = self._entries_in(start, end, resource_id)
        converted = [e for e in entries if e.converted_booking_id is not None]

        report = WaitlistAnalytics(start_date=start, end_date=end)
        report.total_entries = len(entries)
        report.active_entries = sum(1 for e in entries if e.is_active)
        report.converted_entries = len(converted)
        report.conversion_rate = _percent(len(converted), len(entries))

        waits = [
            (e.deactivated_at - e.created_at).total_seconds() / 86400
            for e in converted
            if e.deactivated_at is not None
        ]
        if waits:
            report.average_wait_days = sum(waits) / len(waits)

        report.top_styles = Counter(
            e.style for e in entries if e.style != UNSPECIFIED
        ).most_common(TOP_N)
        names = {r.id: r.name for r in self._directory.list_resources()}
        report.top_requested_resources = Counter(
            names.get(e.resource_id, f"Resource {e.resource_id}")
            for e in entries
            if e.resource_id is not None
        ).most_common(TOP_N)
        return report

    def resource_analytics(self, resource_id: int, start: date, end: date) -> ResourceAnalytics:
        self._check_range(start, end)
        resource = self._directory.get_resource(resource_id)
        bookings = self._bookings_in(start, end, resource_id)
        prices, names = self._offering_lookup(bookings)
        statuses = Counter(b.status for b in bookings)

        report = ResourceAnalytics(resource_id=resource.id, name=resource.name)
        report.total_bookings = len(bookings)
        report.completed_bookings = statuses[BookingStatus.COMPLETED]
        report.cancelled_bookings = statuses[BookingStatus.CANCELLED]
        report.revenue = self._revenue(bookings, prices)
        report.booked_hours = sum(b.duration_minutes for b in bookings if b.occupies_interval) / 60
        report.popular_offerings = Counter(
            names.get(b.offering_id, f"Offering {b.offering_id}") for b in bookings
        ).most_common(TOP_N)
        report.peak_hours = Counter(
            f"{b.start_time.hour:02d}:00" for b in bookings if b.occupies_interval
        ).most_common(TOP_N)
        return report

    def studio_analytics(self, start: date, end: date) -> StudioAnalytics:
        bookings = self.booking_analytics(start, end)
        waitlist = self.waitlist_analytics(start, end)
        resources = [
            self.resource_analytics(r.id, start, end) for r in self._directory.list_resources()
        ]
        peak = Counter(
            f"{WEEKDAY_NAMES[b.start_time.weekday()]} {b.start_time.hour:02d}:00"
            for b in self._bookings_in(start, end)
            if b.occupies_interval
        ).most_common(TOP_N)

        report = StudioAnalytics(
            bookings=bookings,
            waitlist=waitlist,
            resources=sorted(resources, key=lambda r: r.revenue, reverse=True),
            total_revenue=bookings.revenue,
            completion_rate=_percent(bookings.completed_bookings, bookings.total_bookings),
            waitlist_conversion_rate=waitlist.conversion_rate,
            business_growth=bookings.revenue_growth,
            peak_times=peak,
        )
        logger.debug("Studio analytics computed for %s to %s", start, end)
        return report

    def insights(self, analytics: StudioAnalytics) -> AdvisorInsights:
        """Narrative insights; deterministic text when the advisor fails."""
        snapshot = analytics.snapshot()
        return self._effects.call(
            "advisor.summarize",
            self._advisor.summarize,
            snapshot,
            fallback=lambda: self._fallback.summarize(snapshot),
        )


def format_report(analytics: StudioAnalytics, insights: Optional[AdvisorInsights] = None) -> str:
    """Plain-text rendering of a studio analytics snapshot."""
    b = analytics.bookings
    lines = [
        f"Studio report {b.start_date} to {b.end_date}",
        "=" * 40,
        f"Bookings: {b.total_bookings} ({b.booking_growth:+.1f}% vs previous period)",
        f"  scheduled {b.scheduled_bookings}, completed {b.completed_bookings}, "
        f"cancelled {b.cancelled_bookings}",
        f"Revenue: ${analytics.total_revenue} ({analytics.business_growth:+.1f}%)",
        f"Completion rate: {analytics.completion_rate:.1f}%",
        f"Waitlist: {analytics.waitlist.total_entries} entries, "
        f"{analytics.waitlist_conversion_rate:.1f}% converted",
    ]
    if analytics.peak_times:
        lines.append("Peak times: " + ", ".join(f"{label} ({n})" for label, n in analytics.peak_times))
    if analytics.resources:
        lines.append("")
        lines.append("Per resource:")
        for r in analytics.resources:
            lines.append(
                f"  {r.name}: {r.total_bookings} bookings, ${r.revenue}, {r.booked_hours:.1f}h booked"
            )
    if insights is not None:
        lines.append("")
        lines.append("Insights:")
        lines.extend(f"  - {text}" for text in insights.insights)
        lines.append("Recommendations:")
        lines.extend(f"  - {text}" for text in insights.recommendations)
    return "\n".join(lines)
