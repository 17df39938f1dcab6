# backend/spabooker/services/booking_service.py
"""
Booking operations over a database session.

Wraps the SchedulingFacade with persistence and event emission:

  decide (facade) → commit (store) → emit event

A commit that loses a race to a concurrent booking is retried once as a
completely fresh request (full validation again), never as a bare
re-write.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from .booking_store import BookingCommitConflict, SqlSchedulingStore
from .events import booking_payload, emit_event
from .scheduling import errors
from .scheduling.cancellation import CancellationOutcome
from .scheduling.domain import Booking, BookingRequest, BookingStatus
from .scheduling.errors import Result
from .scheduling.facade import SchedulingFacade
from .scheduling.policy import BookingPolicyConfig, get_booking_policy
from .scheduling.timeutils import utc_now

logger = logging.getLogger(__name__)

COMMIT_ATTEMPTS = 2


def _facade(db: Session, clock: Callable[[], datetime]) -> tuple[SqlSchedulingStore, SchedulingFacade]:
    store = SqlSchedulingStore(db)
    return store, SchedulingFacade(store, clock)


def place_booking(
    db: Session,
    request: BookingRequest,
    policy: Optional[BookingPolicyConfig] = None,
    clock: Callable[[], datetime] = utc_now,
) -> Result[Booking]:
    """
    Decide and store a new booking.

    Returns:
        Result with the stored Booking (id set) or the rejection.

    Raises:
        InvariantViolation: pricing produced inconsistent terms; nothing stored.
    """
    policy = policy or get_booking_policy()
    store, facade = _facade(db, clock)

    for attempt in range(1, COMMIT_ATTEMPTS + 1):
        decision = facade.request_booking(request, policy)
        if decision.is_failure:
            return Result.failure(decision.error)

        try:
            booking = store.commit_new_booking(decision.value, buffer_minutes=policy.buffer_minutes)
        except BookingCommitConflict as e:
            logger.warning(
                f"Commit conflict for client {request.client_id} "
                f"(attempt {attempt}/{COMMIT_ATTEMPTS}): {e}"
            )
            continue

        emit_event("booking_created", {
            **booking_payload(booking),
            "total_price": str(booking.total_price),
            "deposit_amount": str(booking.deposit_amount),
        })
        return Result.success(booking)

    return Result.failure(errors.BOOKING_CONFLICT)


def cancel_booking(
    db: Session,
    booking_id: int,
    reason: str,
    policy: Optional[BookingPolicyConfig] = None,
    clock: Callable[[], datetime] = utc_now,
) -> Result[CancellationOutcome]:
    """Cancel a booking and store it; the outcome tells billing what to refund."""
    policy = policy or get_booking_policy()
    store, facade = _facade(db, clock)

    result = facade.cancel_booking(booking_id, reason, policy)
    if result.is_failure:
        return result

    outcome = result.value
    booking = store.save_booking(outcome.booking)
    emit_event("booking_cancelled", {
        **booking_payload(booking),
        "fee_amount": str(outcome.fee_amount),
        "refund_amount": str(outcome.refund_amount),
        "reason": reason,
    })
    return result


def reschedule_booking(
    db: Session,
    booking_id: int,
    new_start: Optional[datetime],
    new_end: Optional[datetime],
    reason: str,
    policy: Optional[BookingPolicyConfig] = None,
    clock: Callable[[], datetime] = utc_now,
) -> Result[Booking]:
    """Move a booking to a new slot; on any failure the stored booking is unchanged."""
    policy = policy or get_booking_policy()
    store, facade = _facade(db, clock)

    for attempt in range(1, COMMIT_ATTEMPTS + 1):
        result = facade.reschedule_booking(booking_id, new_start, new_end, reason, policy)
        if result.is_failure:
            return result

        try:
            booking = store.save_booking(
                result.value, recheck_slot=True, buffer_minutes=policy.buffer_minutes,
            )
        except BookingCommitConflict as e:
            logger.warning(
                f"Reschedule conflict for booking {booking_id} "
                f"(attempt {attempt}/{COMMIT_ATTEMPTS}): {e}"
            )
            continue

        emit_event("booking_rescheduled", {**booking_payload(booking), "reason": reason})
        return Result.success(booking)

    return Result.failure(errors.BOOKING_CONFLICT)


def change_status(
    db: Session,
    booking_id: int,
    target: BookingStatus,
    clock: Callable[[], datetime] = utc_now,
) -> Result[Booking]:
    """Confirm, complete or mark a booking as no-show."""
    store, facade = _facade(db, clock)

    moves = {
        BookingStatus.CONFIRMED: facade.confirm_booking,
        BookingStatus.COMPLETED: facade.complete_booking,
        BookingStatus.NO_SHOW: facade.mark_no_show,
    }
    move = moves.get(target)
    if move is None:
        return Result.failure(errors.INVALID_STATUS_TRANSITION.with_message(
            f"Use cancel to move a booking to {target.value}"
        ))

    result = move(booking_id)
    if result.is_failure:
        return result

    booking = store.save_booking(result.value)
    emit_event("booking_status_changed", booking_payload(booking))
    return Result.success(booking)
