# backend/spabooker/services/scheduling/timeutils.py
"""
UTC normalization and interval arithmetic.

Every timestamp entering the engine goes through to_utc():
  naive datetime  → treated as already UTC
  aware datetime  → converted to UTC

"now" is always passed in explicitly. utc_now() is only used as the
default clock of the SchedulingFacade.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone


def utc_now() -> datetime:
    """System clock in UTC."""
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to an aware UTC datetime."""
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day_utc(value: datetime) -> datetime:
    utc = to_utc(value)
    return datetime(utc.year, utc.month, utc.day, tzinfo=timezone.utc)


def end_of_day_utc(value: datetime) -> datetime:
    utc = to_utc(value)
    return datetime(utc.year, utc.month, utc.day, 23, 59, 59, tzinfo=timezone.utc)


def hours_between(start: datetime, end: datetime) -> float:
    """Signed number of hours from start to end."""
    return (to_utc(end) - to_utc(start)).total_seconds() / 3600


def is_past(value: datetime, now: datetime) -> bool:
    return to_utc(value) < to_utc(now)


def is_future(value: datetime, now: datetime) -> bool:
    return to_utc(value) > to_utc(now)


def combine_utc(day: date, at: time) -> datetime:
    """Build a UTC datetime from a calendar date and a time of day."""
    return datetime.combine(day, at.replace(tzinfo=None), tzinfo=timezone.utc)


def format_hhmm(value: datetime) -> str:
    return to_utc(value).strftime("%H:%M")


@dataclass(frozen=True)
class Interval:
    """
    Half-open UTC interval [start, end).

    Build with Interval.of() to get normalization and the start < end check.
    """
    start: datetime
    end: datetime

    @classmethod
    def of(cls, start: datetime, end: datetime) -> "Interval":
        start_utc = to_utc(start)
        end_utc = to_utc(end)
        if end_utc <= start_utc:
            raise ValueError(f"Interval end {end_utc} must be after start {start_utc}")
        return cls(start_utc, end_utc)

    @property
    def duration_minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60

    @property
    def day(self) -> date:
        return self.start.date()

    def overlaps(self, other: "Interval") -> bool:
        """True iff the two half-open intervals share at least one instant."""
        return self.start < other.end and other.start < self.end

    def contains(self, moment: datetime) -> bool:
        moment = to_utc(moment)
        return self.start <= moment < self.end

    def extended(self, minutes: int) -> "Interval":
        """Same interval with the end pushed out by `minutes`."""
        if not minutes:
            return self
        return Interval(self.start, self.end + timedelta(minutes=minutes))

    def days(self) -> list[date]:
        """Calendar dates (UTC) touched by the interval."""
        result = []
        current = self.start.date()
        last = (self.end - timedelta(microseconds=1)).date()
        while current <= last:
            result.append(current)
            current += timedelta(days=1)
        return result

    def __str__(self) -> str:
        return f"{format_hhmm(self.start)}-{format_hhmm(self.end)}"
