# backend/spabooker/services/scheduling/validator.py
"""
Booking validation.

An ordered list of pure checks. The first one that fails decides the
rejection; nothing is written either way.

  1. Structure: times present, end > start, duration, notes length
  2. Time window: start in the future, within the advance-booking limit
  3. Resources: room supports the service, therapist is qualified
  4. Working hours: the therapist is on shift for the whole interval
  5. Therapist: no overlapping booking or block
  6. Room: no overlapping booking or block
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from . import errors
from .availability import find_conflicts, within_working_hours
from .domain import (
    Booking,
    BookingRequest,
    BookingStatus,
    ResourceKind,
    ResourceRef,
    SchedulingContext,
)
from .errors import BookingError, Result
from .policy import BookingPolicyConfig
from .timeutils import Interval, to_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationInput:
    request: BookingRequest
    context: SchedulingContext
    policy: BookingPolicyConfig
    now: datetime
    exclude_booking_id: Optional[int] = None


Check = Callable[[ValidationInput], Optional[BookingError]]


def _check_structure(data: ValidationInput) -> Optional[BookingError]:
    request, policy = data.request, data.policy

    if request.start_time is None or request.end_time is None:
        return errors.INVALID_TIME_SLOT.with_message("Start and end time are required")

    start, end = to_utc(request.start_time), to_utc(request.end_time)
    if end <= start:
        return errors.INVALID_TIME_SLOT.with_message("End time must be after start time")

    minutes = (end - start).total_seconds() / 60
    if not policy.min_duration_minutes <= minutes <= policy.max_duration_minutes:
        return errors.DURATION_OUT_OF_RANGE.with_message(
            f"Duration must be between {policy.min_duration_minutes} and "
            f"{policy.max_duration_minutes} minutes, got {minutes:g}"
        )

    if request.notes and len(request.notes) > policy.max_notes_length:
        return errors.NOTES_TOO_LONG.with_message(
            f"Notes cannot exceed {policy.max_notes_length} characters"
        )
    return None


def _check_time_window(data: ValidationInput) -> Optional[BookingError]:
    start = to_utc(data.request.start_time)
    now = to_utc(data.now)

    if start <= now:
        return errors.START_NOT_IN_FUTURE

    horizon = now + timedelta(days=data.policy.max_booking_advance_days)
    if start > horizon:
        return errors.TOO_FAR_IN_ADVANCE.with_message(
            f"Bookings can be made at most {data.policy.max_booking_advance_days} days in advance"
        )
    return None


def _check_resources(data: ValidationInput) -> Optional[BookingError]:
    request, context = data.request, data.context

    if request.room_id is not None and not context.room_supports(request.room_id, request.service_id):
        return errors.ROOM_NOT_COMPATIBLE
    if request.therapist_id is not None and not context.therapist_qualified(
        request.therapist_id, request.service_id
    ):
        return errors.THERAPIST_NOT_QUALIFIED
    return None


def _check_working_hours(data: ValidationInput) -> Optional[BookingError]:
    request = data.request
    if request.therapist_id is None:
        return None

    interval = Interval.of(request.start_time, request.end_time)
    if not within_working_hours(request.therapist_id, interval, data.context.working_hours):
        return errors.THERAPIST_NOT_AVAILABLE.with_message(
            f"Therapist is not working on {interval.start:%Y-%m-%d} "
            f"between {interval.start:%H:%M} and {interval.end:%H:%M}"
        )
    return None


def _resource_check(kind: ResourceKind, error: BookingError) -> Check:
    """Availability check for the requested therapist or room."""

    def check(data: ValidationInput) -> Optional[BookingError]:
        request = data.request
        resource_id = request.therapist_id if kind == ResourceKind.THERAPIST else request.room_id
        if resource_id is None:
            return None

        report = find_conflicts(
            ResourceRef(kind, resource_id),
            Interval.of(request.start_time, request.end_time),
            data.context.bookings,
            data.context.blocks,
            exclude_booking_id=data.exclude_booking_id,
            buffer_minutes=data.policy.buffer_minutes,
        )
        if report.has_conflict:
            return error.with_message(f"{error.message}. {' '.join(report.reasons)}")
        return None

    return check


CHECKS: tuple[Check, ...] = (
    _check_structure,
    _check_time_window,
    _check_resources,
    _check_working_hours,
    _resource_check(ResourceKind.THERAPIST, errors.THERAPIST_NOT_AVAILABLE),
    _resource_check(ResourceKind.ROOM, errors.ROOM_NOT_AVAILABLE),
)


def first_failure(data: ValidationInput) -> Optional[BookingError]:
    for check in CHECKS:
        error = check(data)
        if error is not None:
            return error
    return None


def validate_booking(
    request: BookingRequest,
    context: SchedulingContext,
    policy: BookingPolicyConfig,
    now: datetime,
    exclude_booking_id: Optional[int] = None,
) -> Result[Booking]:
    """
    Validate a booking request.

    Returns:
        Result with a Pending draft Booking (UTC times, no prices yet)
        or the first failing BookingError.
    """
    data = ValidationInput(request, context, policy, now, exclude_booking_id)
    error = first_failure(data)
    if error is not None:
        logger.info(
            "Booking request rejected for client %s: %s", request.client_id, error.code
        )
        return Result.failure(error)

    draft = Booking(
        client_id=request.client_id,
        service_id=request.service_id,
        location_id=request.location_id,
        start_time=to_utc(request.start_time),
        end_time=to_utc(request.end_time),
        therapist_id=request.therapist_id,
        room_id=request.room_id,
        status=BookingStatus.PENDING,
        notes=request.notes,
        gift_certificate_code=request.gift_certificate_code,
    )
    return Result.success(draft)
