# backend/spabooker/services/scheduling/facade.py
"""
SchedulingFacade: the single entry point for booking decisions.

Sequence for a new booking:
  lookups (NotFound) → validator → pricing & credit allocation

The facade reads through a SchedulingStore and never writes to it: every
decision comes back inside a Result and the caller persists it. Time only
comes from the injected clock.
"""

import logging
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional, Protocol, Sequence

from . import errors
from .availability import (
    ConflictReport,
    TimeSlot,
    available_resources,
    day_grid,
    find_conflicts,
    least_loaded,
)
from .cancellation import CancellationOutcome, cancel, reschedule, transition
from .domain import (
    Booking,
    BookingRequest,
    BookingStatus,
    CreditLedger,
    GiftCertificateBalance,
    ResourceKind,
    ResourceRef,
    SchedulingContext,
    ServiceInfo,
)
from .errors import Result
from .policy import BookingPolicyConfig
from .pricing import PricingOutcome, allocate
from .timeutils import Interval, combine_utc, to_utc, utc_now
from .validator import validate_booking

logger = logging.getLogger(__name__)


class SchedulingStore(Protocol):
    """Read access the facade needs from persistence."""

    def get_booking(self, booking_id: int) -> Optional[Booking]: ...

    def get_service(self, service_id: int) -> Optional[ServiceInfo]: ...

    def client_exists(self, client_id: int) -> bool: ...

    def therapist_exists(self, therapist_id: int) -> bool: ...

    def room_exists(self, room_id: int) -> bool: ...

    def location_exists(self, location_id: int) -> bool: ...

    def load_context(
        self,
        interval: Interval,
        therapist_ids: Sequence[int],
        room_ids: Sequence[int],
        location_id: Optional[int] = None,
    ) -> SchedulingContext: ...

    def get_membership(self, client_id: int) -> Optional[CreditLedger]: ...

    def get_gift_certificate(self, code: str) -> Optional[GiftCertificateBalance]: ...

    def rooms_for_service(self, service_id: int) -> list[int]: ...

    def therapists_for_service(self, service_id: int) -> list[int]: ...


def _interval_or_none(start: Optional[datetime], end: Optional[datetime]) -> Optional[Interval]:
    if start is None or end is None or to_utc(end) <= to_utc(start):
        return None
    return Interval.of(start, end)


def _ids(*values: Optional[int]) -> list[int]:
    return [v for v in values if v is not None]


class SchedulingFacade:

    def __init__(
        self,
        store: SchedulingStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.clock = clock

    # ── Lookups ──────────────────────────────────────────────────────────

    def _context(
        self,
        start: Optional[datetime],
        end: Optional[datetime],
        therapist_id: Optional[int],
        room_id: Optional[int],
        location_id: Optional[int],
    ) -> SchedulingContext:
        interval = _interval_or_none(start, end)
        if interval is None:
            # Structural validation rejects the request before the context is used
            return SchedulingContext()
        return self.store.load_context(
            interval, _ids(therapist_id), _ids(room_id), location_id
        )

    def _check_references(self, request: BookingRequest) -> Result[ServiceInfo]:
        service = self.store.get_service(request.service_id)
        if service is None:
            return Result.failure(errors.SERVICE_NOT_FOUND)
        if not service.is_active:
            return Result.failure(errors.SERVICE_NOT_ACTIVE)
        if not self.store.client_exists(request.client_id):
            return Result.failure(errors.CLIENT_NOT_FOUND)
        if request.location_id is not None and not self.store.location_exists(request.location_id):
            return Result.failure(errors.LOCATION_NOT_FOUND)
        if request.therapist_id is not None and not self.store.therapist_exists(request.therapist_id):
            return Result.failure(errors.THERAPIST_NOT_FOUND)
        if request.room_id is not None and not self.store.room_exists(request.room_id):
            return Result.failure(errors.ROOM_NOT_FOUND)
        return Result.success(service)

    # ── Booking ──────────────────────────────────────────────────────────

    def request_booking(
        self,
        request: BookingRequest,
        policy: BookingPolicyConfig,
    ) -> Result[PricingOutcome]:
        """
        Decide whether `request` can be booked and what it costs.

        Returns:
            Result with a PricingOutcome (Pending booking draft plus any
            debited membership or gift certificate) or a BookingError.
        """
        now = self.clock()

        lookup = self._check_references(request)
        if lookup.is_failure:
            return Result.failure(lookup.error)
        service = lookup.value

        if request.location_id is None and service.location_id is not None:
            request = replace(request, location_id=service.location_id)

        context = self._context(
            request.start_time, request.end_time,
            request.therapist_id, request.room_id, request.location_id,
        )
        validation = validate_booking(request, context, policy, now)
        if validation.is_failure:
            return Result.failure(validation.error)

        draft = validation.value
        draft.created_at = to_utc(now)

        membership = None
        if request.use_membership_credits:
            membership = self.store.get_membership(request.client_id)
        certificate = None
        if request.gift_certificate_code:
            certificate = self.store.get_gift_certificate(request.gift_certificate_code)

        result = allocate(
            draft,
            service,
            policy,
            now,
            use_membership_credits=request.use_membership_credits,
            membership=membership,
            gift_certificate_code=request.gift_certificate_code,
            gift_certificate=certificate,
        )
        if result.is_success:
            logger.info(
                "Booking accepted for client %s, service %s at %s (%s)",
                request.client_id, request.service_id, draft.interval, result.value.source,
            )
        return result

    def cancel_booking(
        self,
        booking_id: int,
        reason: str,
        policy: BookingPolicyConfig,
    ) -> Result[CancellationOutcome]:
        booking = self.store.get_booking(booking_id)
        if booking is None:
            return Result.failure(errors.BOOKING_NOT_FOUND)
        return cancel(booking, reason, policy, self.clock())

    def reschedule_booking(
        self,
        booking_id: int,
        new_start: Optional[datetime],
        new_end: Optional[datetime],
        reason: str,
        policy: BookingPolicyConfig,
    ) -> Result[Booking]:
        booking = self.store.get_booking(booking_id)
        if booking is None:
            return Result.failure(errors.BOOKING_NOT_FOUND)
        context = self._context(
            new_start, new_end, booking.therapist_id, booking.room_id, booking.location_id
        )
        return reschedule(booking, new_start, new_end, reason, context, policy, self.clock())

    def _move(self, booking_id: int, target: BookingStatus) -> Result[Booking]:
        booking = self.store.get_booking(booking_id)
        if booking is None:
            return Result.failure(errors.BOOKING_NOT_FOUND)
        return transition(booking, target, self.clock())

    def confirm_booking(self, booking_id: int) -> Result[Booking]:
        return self._move(booking_id, BookingStatus.CONFIRMED)

    def complete_booking(self, booking_id: int) -> Result[Booking]:
        return self._move(booking_id, BookingStatus.COMPLETED)

    def mark_no_show(self, booking_id: int) -> Result[Booking]:
        return self._move(booking_id, BookingStatus.NO_SHOW)

    # ── Availability lookups ─────────────────────────────────────────────

    def check_conflicts(
        self,
        resource: ResourceRef,
        start: datetime,
        end: datetime,
        policy: BookingPolicyConfig,
        exclude_booking_id: Optional[int] = None,
        location_id: Optional[int] = None,
    ) -> Result[ConflictReport]:
        interval = _interval_or_none(start, end)
        if interval is None:
            return Result.failure(errors.INVALID_TIME_SLOT)
        therapist_ids = [resource.id] if resource.kind == ResourceKind.THERAPIST else []
        room_ids = [resource.id] if resource.kind == ResourceKind.ROOM else []
        context = self.store.load_context(interval, therapist_ids, room_ids, location_id)
        return Result.success(find_conflicts(
            resource, interval, context.bookings, context.blocks,
            exclude_booking_id=exclude_booking_id,
            buffer_minutes=policy.buffer_minutes,
        ))

    def _free_resources(
        self,
        kind: ResourceKind,
        service_id: int,
        start: datetime,
        end: datetime,
        policy: BookingPolicyConfig,
    ) -> Result[list[ResourceRef]]:
        interval = _interval_or_none(start, end)
        if interval is None:
            return Result.failure(errors.INVALID_TIME_SLOT)
        service = self.store.get_service(service_id)
        if service is None:
            return Result.failure(errors.SERVICE_NOT_FOUND)

        if kind == ResourceKind.ROOM:
            ids = self.store.rooms_for_service(service_id)
            context = self.store.load_context(interval, [], ids, service.location_id)
        else:
            ids = self.store.therapists_for_service(service_id)
            context = self.store.load_context(interval, ids, [], service.location_id)

        candidates = [ResourceRef(kind, resource_id) for resource_id in ids]
        free = available_resources(
            candidates, interval, context.bookings, context.blocks,
            buffer_minutes=policy.buffer_minutes,
            working_hours=context.working_hours,
        )
        return Result.success(free)

    def find_available_rooms(
        self,
        service_id: int,
        start: datetime,
        end: datetime,
        policy: BookingPolicyConfig,
    ) -> Result[list[int]]:
        """Rooms able to host the service and free for the interval, display order."""
        result = self._free_resources(ResourceKind.ROOM, service_id, start, end, policy)
        if result.is_failure:
            return Result.failure(result.error)
        return Result.success([r.id for r in result.value])

    def find_available_therapists(
        self,
        service_id: int,
        start: datetime,
        end: datetime,
        policy: BookingPolicyConfig,
    ) -> Result[list[int]]:
        """Qualified, free therapists; the least busy one that day comes first."""
        result = self._free_resources(ResourceKind.THERAPIST, service_id, start, end, policy)
        if result.is_failure:
            return Result.failure(result.error)

        free = list(result.value)
        if not free:
            return Result.success([])

        interval = Interval.of(start, end)
        context = self.store.load_context(interval, [r.id for r in free], [])
        best = least_loaded(free, interval.day, context.bookings)
        ordered = [best] + [r for r in free if r != best]
        return Result.success([r.id for r in ordered])

    def day_schedule(
        self,
        resource: ResourceRef,
        day: date,
        policy: BookingPolicyConfig,
        location_id: Optional[int] = None,
        slot_minutes: int = 60,
    ) -> Result[list[TimeSlot]]:
        """Hourly grid of one therapist or room for a calendar day."""
        if slot_minutes < 1:
            return Result.failure(errors.INVALID_TIME_SLOT)
        start = combine_utc(day, time(0, 0))
        interval = Interval(start, start + timedelta(days=1))
        therapist_ids = [resource.id] if resource.kind == ResourceKind.THERAPIST else []
        room_ids = [resource.id] if resource.kind == ResourceKind.ROOM else []
        context = self.store.load_context(interval, therapist_ids, room_ids, location_id)
        return Result.success(day_grid(
            resource, day, context.bookings, context.blocks,
            slot_minutes=slot_minutes,
            buffer_minutes=policy.buffer_minutes,
            working_hours=context.working_hours,
        ))
