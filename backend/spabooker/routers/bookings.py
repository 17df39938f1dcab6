# backend/spabooker/routers/bookings.py
# PATCH = 405, DELETE = 405 (bookings are cancelled via POST /{id}/cancel)
"""
Bookings API endpoints.

Every change goes through services.booking_service; this module only maps
requests onto it and business errors onto HTTP statuses.
"""

import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.bookings import (
    AvailabilityResponse,
    BookingCreate,
    BookingRead,
    CancellationRead,
    CancelRequest,
    DayGridResponse,
    GridSlot,
    RescheduleRequest,
)
from ..services import booking_service
from ..services.booking_store import SqlSchedulingStore
from ..services.scheduling import (
    BookingError,
    BookingRequest,
    BookingStatus,
    ErrorKind,
    InvariantViolation,
    ResourceKind,
    ResourceRef,
    SchedulingFacade,
    errors,
    get_booking_policy,
)
from ..services.scheduling.timeutils import format_hhmm

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])

ERROR_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INCOMPATIBLE_RESOURCE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.INSUFFICIENT_BALANCE: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorKind.INVARIANT_VIOLATION: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _raise(error: BookingError):
    raise HTTPException(
        status_code=ERROR_STATUS.get(error.kind, status.HTTP_400_BAD_REQUEST),
        detail={"code": error.code, "message": error.message},
    )


def _unwrap(result):
    if result.is_failure:
        _raise(result.error)
    return result.value


# ── Availability ─────────────────────────────────────────────────────────


@router.get("/availability/rooms", response_model=AvailabilityResponse)
def available_rooms(
    service_id: int,
    start_time: datetime,
    end_time: datetime,
    db: Session = Depends(get_db),
):
    """Rooms able to host the service and free for the interval."""
    facade = SchedulingFacade(SqlSchedulingStore(db))
    ids = _unwrap(facade.find_available_rooms(service_id, start_time, end_time, get_booking_policy()))
    return AvailabilityResponse(
        service_id=service_id,
        start_time=start_time,
        end_time=end_time,
        resource_ids=ids,
    )


@router.get("/availability/therapists", response_model=AvailabilityResponse)
def available_therapists(
    service_id: int,
    start_time: datetime,
    end_time: datetime,
    db: Session = Depends(get_db),
):
    """Qualified free therapists; the least busy one that day first."""
    facade = SchedulingFacade(SqlSchedulingStore(db))
    ids = _unwrap(facade.find_available_therapists(service_id, start_time, end_time, get_booking_policy()))
    return AvailabilityResponse(
        service_id=service_id,
        start_time=start_time,
        end_time=end_time,
        resource_ids=ids,
    )


@router.get("/availability/grid", response_model=DayGridResponse)
def availability_grid(
    resource_kind: ResourceKind,
    resource_id: int,
    day: date = Query(alias="date"),
    location_id: int | None = None,
    slot_minutes: int = Query(default=60, ge=15, le=240),
    db: Session = Depends(get_db),
):
    facade = SchedulingFacade(SqlSchedulingStore(db))
    resource = ResourceRef(resource_kind, resource_id)
    slots = _unwrap(facade.day_schedule(
        resource, day, get_booking_policy(),
        location_id=location_id,
        slot_minutes=slot_minutes,
    ))
    return DayGridResponse(
        resource_kind=resource_kind.value,
        resource_id=resource_id,
        date=day,
        slot_minutes=slot_minutes,
        slots=[
            GridSlot(
                time=format_hhmm(s.interval.start),
                is_available=s.is_available,
                booking_id=s.booking_id,
            )
            for s in slots
        ],
    )


# ── Bookings ─────────────────────────────────────────────────────────────


@router.get("/{id}", response_model=BookingRead)
def get_booking(id: int, db: Session = Depends(get_db)):
    booking = SqlSchedulingStore(db).get_booking(id)
    if not booking:
        _raise(errors.BOOKING_NOT_FOUND)
    return booking


@router.post("/", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    db: Session = Depends(get_db),
):
    request = BookingRequest(**data.model_dump())
    try:
        result = booking_service.place_booking(db, request)
    except InvariantViolation as e:
        logger.error(f"Invariant violation while booking for client {data.client_id}: {e}")
        _raise(e.error)
    return _unwrap(result)


@router.post("/{id}/cancel", response_model=CancellationRead)
def cancel_booking(
    id: int,
    data: CancelRequest,
    db: Session = Depends(get_db),
):
    return _unwrap(booking_service.cancel_booking(db, id, data.reason))


@router.post("/{id}/reschedule", response_model=BookingRead)
def reschedule_booking(
    id: int,
    data: RescheduleRequest,
    db: Session = Depends(get_db),
):
    return _unwrap(booking_service.reschedule_booking(
        db, id, data.new_start_time, data.new_end_time, data.reason,
    ))


@router.post("/{id}/confirm", response_model=BookingRead)
def confirm_booking(id: int, db: Session = Depends(get_db)):
    return _unwrap(booking_service.change_status(db, id, BookingStatus.CONFIRMED))


@router.post("/{id}/complete", response_model=BookingRead)
def complete_booking(id: int, db: Session = Depends(get_db)):
    return _unwrap(booking_service.change_status(db, id, BookingStatus.COMPLETED))


@router.post("/{id}/no-show", response_model=BookingRead)
def mark_no_show(id: int, db: Session = Depends(get_db)):
    return _unwrap(booking_service.change_status(db, id, BookingStatus.NO_SHOW))


@router.patch("/{id}")
def patch_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )


@router.delete("/{id}")
def delete_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )
