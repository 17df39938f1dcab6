# backend/spabooker/services/scheduling/availability.py
"""
Availability checking for a single resource (therapist or room).

Overlap rule, half-open intervals:
  [s1, e1) and [s2, e2) conflict  ⇔  s1 < e2 and s2 < e1

So a booking ending at 11:00 and one starting at 11:00 do not conflict.

Takes into account:
✓ Existing bookings of the resource (cancelled ones are ignored)
✓ Blocked time for the resource or for the whole location
✓ Optional buffer after each existing booking
✓ Therapist working hours (weekly entries, per-date overrides)

Does NOT do:
✗ Any database access (callers pre-filter by resource and date)
✗ Room opening hours
"""

import logging
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from typing import Iterable, Optional, Sequence

from .domain import AvailabilityQuery, BlockedTime, Booking, ResourceKind, ResourceRef, WorkingHours
from .timeutils import Interval, combine_utc

logger = logging.getLogger(__name__)

DAY_OPEN_HOUR = 9
DAY_CLOSE_HOUR = 21


@dataclass
class ConflictReport:
    """Everything standing in the way of an interval on one resource."""
    resource: ResourceRef
    interval: Interval
    booking_ids: list = field(default_factory=list)
    booking_windows: list = field(default_factory=list)
    blocks: list = field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return bool(self.booking_windows or self.blocks)

    @property
    def reasons(self) -> list[str]:
        label = "Therapist" if self.resource.kind == ResourceKind.THERAPIST else "Room"
        reasons = []
        if self.booking_windows:
            windows = ", ".join(str(w) for w in self.booking_windows)
            reasons.append(f"{label} is already booked for overlapping time slots: {windows}")
        if self.blocks:
            windows = ", ".join(str(b) for b in self.blocks)
            reasons.append(f"{label} is blocked: {windows}")
        return reasons


@dataclass(frozen=True)
class TimeSlot:
    interval: Interval
    is_available: bool
    booking_id: Optional[int] = None


def conflicts(a: Interval, b: Interval) -> bool:
    """Symmetric half-open overlap test."""
    return a.start < b.end and b.start < a.end


def block_conflicts(block: BlockedTime, interval: Interval) -> bool:
    """
    A full-day block wins over any interval touching its date; a partial
    block uses the regular overlap test.
    """
    if block.is_full_day:
        return block.day in interval.days()
    return conflicts(block.window(), interval)


# ── Pre-filtering ────────────────────────────────────────────────────────


def bookings_for_resource(
    resource: ResourceRef,
    bookings: Iterable[Booking],
    day: date | None = None,
    exclude_booking_id: int | None = None,
) -> list[Booking]:
    """Bookings that currently hold `resource` (optionally only on `day`)."""
    result = []
    for booking in bookings:
        if not booking.occupies_resources or not booking.uses(resource):
            continue
        if exclude_booking_id is not None and booking.id == exclude_booking_id:
            continue
        if day is not None and day not in booking.interval.days():
            continue
        result.append(booking)
    return result


def blocks_for_resource(
    resource: ResourceRef,
    blocks: Iterable[BlockedTime],
    day: date | None = None,
) -> list[BlockedTime]:
    return [
        block for block in blocks
        if block.applies_to(resource) and (day is None or block.day == day)
    ]


# ── Checks ───────────────────────────────────────────────────────────────


def find_conflicts(
    resource: ResourceRef,
    interval: Interval,
    bookings: Iterable[Booking],
    blocks: Iterable[BlockedTime] = (),
    exclude_booking_id: int | None = None,
    buffer_minutes: int = 0,
) -> ConflictReport:
    """
    Collect bookings and blocks that overlap `interval` on `resource`.

    Bookings and blocks not belonging to the resource are skipped, so the
    caller may pass a whole day's reservations.
    """
    report = ConflictReport(resource=resource, interval=interval)

    for booking in bookings_for_resource(resource, bookings, exclude_booking_id=exclude_booking_id):
        occupied = booking.interval.extended(buffer_minutes)
        if conflicts(occupied, interval):
            report.booking_ids.append(booking.id)
            report.booking_windows.append(booking.interval)

    for block in blocks_for_resource(resource, blocks):
        if block_conflicts(block, interval):
            report.blocks.append(block)

    if report.has_conflict:
        logger.warning(
            "Conflict for %s at %s: %s",
            resource, interval, "; ".join(report.reasons),
        )
    return report


def is_available(
    resource: ResourceRef,
    interval: Interval,
    bookings: Iterable[Booking],
    blocks: Iterable[BlockedTime] = (),
    exclude_booking_id: int | None = None,
    buffer_minutes: int = 0,
) -> bool:
    """Pure predicate: can `resource` take `interval`?"""
    return not find_conflicts(
        resource, interval, bookings, blocks, exclude_booking_id, buffer_minutes
    ).has_conflict


def check(query: AvailabilityQuery, buffer_minutes: int = 0) -> bool:
    """is_available() for a prepared AvailabilityQuery."""
    return is_available(
        query.resource,
        query.interval,
        query.bookings,
        query.blocks,
        query.exclude_booking_id,
        buffer_minutes,
    )


# ── Working hours ────────────────────────────────────────────────────────


def working_windows(
    therapist_id: int,
    day: date,
    hours: Iterable[WorkingHours],
) -> list[Interval]:
    """
    Windows the therapist works on `day`.

    Entries for that exact date replace the weekly ones; an entry with
    is_available=False contributes no window. No entry at all means the
    therapist does not work that day.
    """
    own = [h for h in hours if h.therapist_id == therapist_id]
    dated = [h for h in own if h.specific_date == day]
    chosen = dated or [
        h for h in own
        if h.specific_date is None and h.day_of_week == day.weekday()
    ]
    return [h.window(day) for h in chosen if h.is_available and h.start_time < h.end_time]


def within_working_hours(
    therapist_id: int,
    interval: Interval,
    hours: Iterable[WorkingHours],
) -> bool:
    """True iff one working window of the start date holds the whole interval."""
    return any(
        window.start <= interval.start and interval.end <= window.end
        for window in working_windows(therapist_id, interval.start.date(), hours)
    )


# ── Resource search ──────────────────────────────────────────────────────


def available_resources(
    candidates: Sequence[ResourceRef],
    interval: Interval,
    bookings: Sequence[Booking],
    blocks: Sequence[BlockedTime] = (),
    exclude_booking_id: int | None = None,
    buffer_minutes: int = 0,
    working_hours: Sequence[WorkingHours] | None = None,
) -> list[ResourceRef]:
    """
    Candidates free for `interval`, in the order given (display order).

    With working_hours given, therapists must also be on shift.
    """
    result = []
    for resource in candidates:
        if not is_available(resource, interval, bookings, blocks, exclude_booking_id, buffer_minutes):
            continue
        if (
            working_hours is not None
            and resource.kind == ResourceKind.THERAPIST
            and not within_working_hours(resource.id, interval, working_hours)
        ):
            continue
        result.append(resource)
    return result


def least_loaded(
    candidates: Sequence[ResourceRef],
    day: date,
    bookings: Sequence[Booking],
) -> Optional[ResourceRef]:
    """
    Pick the candidate with the fewest bookings on `day`.

    Ties keep the candidates' order.
    """
    if not candidates:
        return None
    return min(
        candidates,
        key=lambda resource: len(bookings_for_resource(resource, bookings, day=day)),
    )


# ── Day grid ─────────────────────────────────────────────────────────────


def day_grid(
    resource: ResourceRef,
    day: date,
    bookings: Sequence[Booking],
    blocks: Sequence[BlockedTime] = (),
    open_hour: int = DAY_OPEN_HOUR,
    close_hour: int = DAY_CLOSE_HOUR,
    slot_minutes: int = 60,
    buffer_minutes: int = 0,
    working_hours: Sequence[WorkingHours] | None = None,
) -> list[TimeSlot]:
    """
    Fixed-step slots between open_hour and close_hour for one resource.

    Each slot is either free or carries the id of the first booking
    occupying it (None when only a block or the end of a shift is in
    the way).
    """
    own_bookings = bookings_for_resource(resource, bookings, day=day)
    own_blocks = blocks_for_resource(resource, blocks, day=day)
    check_shift = working_hours is not None and resource.kind == ResourceKind.THERAPIST

    slots = []
    midnight = combine_utc(day, time(0, 0))
    start = midnight + timedelta(hours=open_hour)
    close = midnight + timedelta(hours=close_hour)
    step = timedelta(minutes=slot_minutes)

    while start + step <= close:
        slot = Interval(start, start + step)
        occupying = next(
            (b for b in own_bookings if conflicts(b.interval.extended(buffer_minutes), slot)),
            None,
        )
        blocked = any(block_conflicts(block, slot) for block in own_blocks)
        if check_shift and not within_working_hours(resource.id, slot, working_hours):
            blocked = True
        slots.append(TimeSlot(
            interval=slot,
            is_available=occupying is None and not blocked,
            booking_id=occupying.id if occupying else None,
        ))
        start += step

    return slots
