# backend/spabooker/services/scheduling/cancellation.py
"""
Booking status machine, cancellation fees and rescheduling.

Status transitions:
  pending   → confirmed | cancelled
  confirmed → cancelled | completed | no_show
  cancelled, completed, no_show → terminal

Cancellation outcome (only decided here, executed by billing):
  hours until start ≥ window → refund the whole deposit, no fee
  hours until start <  window → fee = deposit × late fee %, refund the rest
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from . import errors
from .domain import Booking, BookingRequest, BookingStatus, SchedulingContext
from .errors import Result
from .policy import BookingPolicyConfig
from .pricing import HUNDRED, to_money
from .timeutils import hours_between, to_utc
from .validator import validate_booking

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.CANCELLED,
        BookingStatus.COMPLETED,
        BookingStatus.NO_SHOW,
    }),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}

RESCHEDULABLE = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


@dataclass(frozen=True)
class CancellationOutcome:
    booking_id: Optional[int]
    hours_until_start: float
    is_late: bool
    deposit_amount: Decimal
    fee_amount: Decimal
    refund_amount: Decimal
    reason: str
    booking: Optional[Booking] = None


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def transition(booking: Booking, target: BookingStatus, now: datetime) -> Result[Booking]:
    """Move a booking to `target` if the status machine allows it."""
    if not can_transition(booking.status, target):
        return Result.failure(errors.INVALID_STATUS_TRANSITION.with_message(
            f"Cannot change booking status from {booking.status.value} to {target.value}"
        ))
    booking.status = target
    booking.updated_at = to_utc(now)
    logger.info("Booking %s moved to %s", booking.id, target.value)
    return Result.success(booking)


def cancellation_terms(
    booking: Booking,
    policy: BookingPolicyConfig,
    now: datetime,
    reason: str = "",
) -> CancellationOutcome:
    """Fee and refund for cancelling `booking` at `now`, without changing it."""
    hours = hours_between(now, booking.start_time)
    deposit = to_money(booking.deposit_amount)
    is_late = hours < policy.cancellation_window_hours

    if is_late:
        fee = to_money(deposit * Decimal(policy.late_cancellation_fee_percentage) / HUNDRED)
    elif policy.refund_deposit:
        fee = Decimal("0.00")
    else:
        fee = deposit

    return CancellationOutcome(
        booking_id=booking.id,
        hours_until_start=hours,
        is_late=is_late,
        deposit_amount=deposit,
        fee_amount=fee,
        refund_amount=deposit - fee,
        reason=reason,
        booking=booking,
    )


def cancel(
    booking: Booking,
    reason: str,
    policy: BookingPolicyConfig,
    now: datetime,
) -> Result[CancellationOutcome]:
    """Cancel `booking` and decide the refund and fee."""
    if not can_transition(booking.status, BookingStatus.CANCELLED):
        return Result.failure(errors.INVALID_STATUS_TRANSITION.with_message(
            f"Booking in status {booking.status.value} cannot be cancelled"
        ))

    outcome = cancellation_terms(booking, policy, now, reason)

    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = to_utc(now)
    booking.updated_at = to_utc(now)
    booking.cancellation_reason = reason

    logger.info(
        "Booking %s cancelled %.1fh before start: fee %s, refund %s",
        booking.id, outcome.hours_until_start, outcome.fee_amount, outcome.refund_amount,
    )
    return Result.success(outcome)


def reschedule(
    booking: Booking,
    new_start: Optional[datetime],
    new_end: Optional[datetime],
    reason: str,
    context: SchedulingContext,
    policy: BookingPolicyConfig,
    now: datetime,
) -> Result[Booking]:
    """
    Move `booking` to a new interval.

    The new slot goes through the full validator with the booking itself
    excluded from the conflict set. On any failure the booking is left
    untouched.
    """
    if booking.status not in RESCHEDULABLE:
        return Result.failure(errors.INVALID_STATUS_TRANSITION.with_message(
            f"Booking in status {booking.status.value} cannot be rescheduled"
        ))

    request = BookingRequest(
        client_id=booking.client_id,
        service_id=booking.service_id,
        start_time=new_start,
        end_time=new_end,
        therapist_id=booking.therapist_id,
        room_id=booking.room_id,
        location_id=booking.location_id,
        notes=booking.notes,
    )
    result = validate_booking(request, context, policy, now, exclude_booking_id=booking.id)
    if result.is_failure:
        logger.info("Reschedule of booking %s rejected: %s", booking.id, result.error.code)
        return Result.failure(result.error)

    draft = result.value
    booking.start_time = draft.start_time
    booking.end_time = draft.end_time
    booking.reschedule_reason = reason
    booking.updated_at = to_utc(now)

    logger.info("Booking %s rescheduled to %s", booking.id, booking.interval)
    return Result.success(booking)
