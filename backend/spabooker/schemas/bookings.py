# backend/spabooker/schemas/bookings.py

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from ..services.scheduling.domain import BookingStatus


class BookingCreate(BaseModel):
    client_id: int
    service_id: int
    therapist_id: Optional[int] = None
    room_id: Optional[int] = None
    location_id: Optional[int] = None

    start_time: datetime
    end_time: datetime

    notes: Optional[str] = None
    use_membership_credits: bool = False
    gift_certificate_code: Optional[str] = None

    model_config = {"from_attributes": True}


class BookingRead(BaseModel):
    id: int

    client_id: int
    service_id: int
    therapist_id: Optional[int] = None
    room_id: Optional[int] = None
    location_id: Optional[int] = None

    start_time: datetime
    end_time: datetime

    status: BookingStatus
    service_price: Decimal
    total_price: Decimal
    deposit_amount: Decimal
    discount_applied: Decimal
    used_membership_credits: bool
    credits_used: Decimal
    gift_certificate_code: Optional[str] = None

    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    reschedule_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CancelRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class CancellationRead(BaseModel):
    """Refund decision; billing executes it."""
    booking_id: int
    hours_until_start: float
    is_late: bool
    deposit_amount: Decimal
    fee_amount: Decimal
    refund_amount: Decimal
    reason: str

    model_config = {"from_attributes": True}


class RescheduleRequest(BaseModel):
    new_start_time: datetime
    new_end_time: datetime
    reason: str = ""


class ErrorDetail(BaseModel):
    code: str
    message: str


class AvailabilityResponse(BaseModel):
    """Free rooms or therapists for a service and interval."""
    service_id: int
    start_time: datetime
    end_time: datetime
    resource_ids: list[int]


class GridSlot(BaseModel):
    time: str  # "HH:MM"
    is_available: bool
    booking_id: Optional[int] = None


class DayGridResponse(BaseModel):
    resource_kind: str
    resource_id: int
    date: date
    slot_minutes: int
    slots: list[GridSlot]
