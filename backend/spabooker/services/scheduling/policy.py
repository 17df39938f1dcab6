# backend/spabooker/services/scheduling/policy.py
"""
Booking policy configuration.

An immutable snapshot handed to every engine call. The engine never keeps
policy state of its own.
"""

from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache


@dataclass(frozen=True)
class BookingPolicyConfig:
    """
    Policy parameters for deposits, cancellations and booking limits.

    Attributes:
        deposit_percentage: Share of the amount owed collected at booking (0-100)
        cancellation_window_hours: Cancelling at least this early gets a full refund
        late_cancellation_fee_percentage: Share of the deposit kept on late cancel (0-100)
        refund_deposit: Whether an early cancellation refunds the deposit at all
        min_duration_minutes / max_duration_minutes: Allowed appointment length
        max_booking_advance_days: How far ahead a booking may start
        max_notes_length: Maximum length of client notes
        buffer_minutes: Cleanup time appended after every existing booking
        credit_cost_per_booking: Membership credits consumed per redemption
    """
    deposit_percentage: Decimal = Decimal("50.0")
    cancellation_window_hours: int = 24
    late_cancellation_fee_percentage: Decimal = Decimal("100.0")
    refund_deposit: bool = True
    min_duration_minutes: int = 15
    max_duration_minutes: int = 480
    max_booking_advance_days: int = 90
    max_notes_length: int = 2000
    buffer_minutes: int = 0
    credit_cost_per_booking: Decimal = Decimal("1.0")

    def __post_init__(self):
        """Validate configuration."""
        for name in ("deposit_percentage", "late_cancellation_fee_percentage"):
            value = getattr(self, name)
            if not Decimal(0) <= Decimal(value) <= Decimal(100):
                raise ValueError(f"{name} must be between 0 and 100, got {value}")
        if self.cancellation_window_hours < 0:
            raise ValueError(
                f"cancellation_window_hours must be >= 0, got {self.cancellation_window_hours}"
            )
        if self.min_duration_minutes < 1:
            raise ValueError(f"min_duration_minutes must be >= 1, got {self.min_duration_minutes}")
        if self.max_duration_minutes < self.min_duration_minutes:
            raise ValueError(
                f"max_duration_minutes ({self.max_duration_minutes}) must be >= "
                f"min_duration_minutes ({self.min_duration_minutes})"
            )
        if self.max_booking_advance_days < 1:
            raise ValueError(
                f"max_booking_advance_days must be >= 1, got {self.max_booking_advance_days}"
            )
        if self.buffer_minutes < 0:
            raise ValueError(f"buffer_minutes must be >= 0, got {self.buffer_minutes}")
        if Decimal(self.credit_cost_per_booking) <= 0:
            raise ValueError(
                f"credit_cost_per_booking must be > 0, got {self.credit_cost_per_booking}"
            )


@lru_cache
def get_booking_policy() -> BookingPolicyConfig:
    """
    Get booking policy built from application settings (singleton).
    """
    from ...config import settings

    return BookingPolicyConfig(
        deposit_percentage=settings.booking_deposit_percentage,
        cancellation_window_hours=settings.booking_cancellation_window_hours,
        late_cancellation_fee_percentage=settings.booking_late_cancellation_fee_percentage,
        refund_deposit=settings.booking_refund_deposit,
        min_duration_minutes=settings.booking_min_duration_minutes,
        max_duration_minutes=settings.booking_max_duration_minutes,
        max_booking_advance_days=settings.booking_max_advance_days,
        buffer_minutes=settings.booking_buffer_minutes,
    )
