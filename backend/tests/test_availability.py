# backend/tests/test_availability.py

from datetime import date, time

import pytest

from spabooker.services.scheduling.availability import (
    available_resources,
    check,
    day_grid,
    find_conflicts,
    is_available,
    least_loaded,
    within_working_hours,
    working_windows,
)
from spabooker.services.scheduling.domain import (
    AvailabilityQuery,
    BookingStatus,
    ResourceKind,
    ResourceRef,
    WorkingHours,
)
from spabooker.services.scheduling.timeutils import Interval

from .factories import at, make_block, make_booking, weekly_shift

THERAPIST = ResourceRef(ResourceKind.THERAPIST, 1)
ROOM = ResourceRef(ResourceKind.ROOM, 1)


def slot(start_hour, end_hour, day=12, start_minute=0, end_minute=0):
    return Interval.of(at(day, start_hour, start_minute), at(day, end_hour, end_minute))


class TestBookingOverlap:

    def test_overlapping_booking_conflicts(self):
        existing = [make_booking(start=at(12, 10), end=at(12, 11))]
        assert not is_available(THERAPIST, slot(10, 11, start_minute=30, end_minute=30), existing)

    def test_back_to_back_booking_is_free(self):
        existing = [make_booking(start=at(12, 10), end=at(12, 11))]
        assert is_available(THERAPIST, slot(11, 12), existing)
        assert is_available(THERAPIST, slot(9, 10), existing)

    @pytest.mark.parametrize("first,second", [
        ((10, 11), (10, 12)),
        ((10, 12), (11, 13)),
        ((10, 11), (11, 12)),
        ((9, 17), (12, 13)),
    ])
    def test_overlap_is_symmetric(self, first, second):
        a = make_booking(id=1, start=at(12, first[0]), end=at(12, first[1]))
        b = make_booking(id=2, start=at(12, second[0]), end=at(12, second[1]))
        assert is_available(THERAPIST, a.interval, [b]) == is_available(THERAPIST, b.interval, [a])

    def test_cancelled_booking_does_not_occupy(self):
        existing = [make_booking(status=BookingStatus.CANCELLED)]
        assert is_available(THERAPIST, slot(10, 11), existing)

    @pytest.mark.parametrize("status", [
        BookingStatus.PENDING,
        BookingStatus.CONFIRMED,
        BookingStatus.COMPLETED,
        BookingStatus.NO_SHOW,
    ])
    def test_other_statuses_occupy(self, status):
        existing = [make_booking(status=status)]
        assert not is_available(THERAPIST, slot(10, 11), existing)

    def test_other_resources_are_ignored(self):
        existing = [make_booking(therapist_id=2, room_id=5)]
        assert is_available(THERAPIST, slot(10, 11), existing)
        assert is_available(ROOM, slot(10, 11), existing)

    def test_excluded_booking_is_ignored(self):
        existing = [make_booking(id=7)]
        assert is_available(THERAPIST, slot(10, 11), existing, exclude_booking_id=7)

    def test_buffer_extends_existing_booking(self):
        existing = [make_booking(start=at(12, 10), end=at(12, 11))]
        assert is_available(THERAPIST, slot(11, 12), existing, buffer_minutes=0)
        assert not is_available(THERAPIST, slot(11, 12), existing, buffer_minutes=15)

    def test_check_prepared_query(self):
        query = AvailabilityQuery(
            resource=THERAPIST,
            interval=slot(10, 11),
            bookings=(make_booking(id=3),),
            exclude_booking_id=3,
        )
        assert check(query)


class TestBlockedTime:

    def test_full_day_block_rejects_any_interval_that_day(self):
        blocks = [make_block(date(2025, 11, 15), room_id=1)]
        for start, end in ((6, 7), (12, 13), (22, 23)):
            assert not is_available(ROOM, slot(start, end, day=15), [], blocks)

    def test_full_day_block_catches_overnight_interval(self):
        blocks = [make_block(date(2025, 11, 15), room_id=1)]
        overnight = Interval.of(at(14, 23), at(15, 1))
        assert not is_available(ROOM, overnight, [], blocks)

    def test_full_day_block_leaves_other_days_free(self):
        blocks = [make_block(date(2025, 11, 15), room_id=1)]
        assert is_available(ROOM, slot(10, 11, day=16), [], blocks)

    def test_partial_block_uses_half_open_overlap(self):
        blocks = [make_block(date(2025, 11, 12), time(13, 0), time(14, 0), therapist_id=1)]
        assert not is_available(THERAPIST, slot(13, 14, start_minute=30, end_minute=30), [], blocks)
        assert is_available(THERAPIST, slot(14, 15), [], blocks)
        assert is_available(THERAPIST, slot(12, 13), [], blocks)

    def test_location_wide_block_applies_to_every_resource(self):
        blocks = [make_block(date(2025, 11, 12), time(9, 0), time(12, 0))]
        assert not is_available(THERAPIST, slot(10, 11), [], blocks)
        assert not is_available(ROOM, slot(10, 11), [], blocks)

    def test_block_for_other_therapist_is_ignored(self):
        blocks = [make_block(date(2025, 11, 12), therapist_id=9)]
        assert is_available(THERAPIST, slot(10, 11), [], blocks)


class TestConflictReport:

    def test_lists_bookings_and_reasons(self):
        existing = [make_booking(id=4, start=at(12, 10), end=at(12, 11))]
        report = find_conflicts(THERAPIST, slot(10, 12), existing)

        assert report.has_conflict
        assert report.booking_ids == [4]
        assert report.reasons == [
            "Therapist is already booked for overlapping time slots: 10:00-11:00"
        ]

    def test_lists_blocks(self):
        blocks = [make_block(date(2025, 11, 12), room_id=1)]
        report = find_conflicts(ROOM, slot(10, 11), [], blocks)
        assert report.blocks == blocks
        assert report.reasons == ["Room is blocked: 2025-11-12 all day"]

    def test_empty_report(self):
        report = find_conflicts(THERAPIST, slot(10, 11), [])
        assert not report.has_conflict
        assert report.reasons == []


class TestResourceSearch:

    def test_available_resources_keeps_candidate_order(self):
        candidates = [ResourceRef(ResourceKind.ROOM, i) for i in (3, 1, 2)]
        existing = [make_booking(therapist_id=None, room_id=1)]
        free = available_resources(candidates, slot(10, 11), existing)
        assert [r.id for r in free] == [3, 2]

    def test_least_loaded_picks_fewest_bookings_that_day(self):
        first = ResourceRef(ResourceKind.THERAPIST, 1)
        second = ResourceRef(ResourceKind.THERAPIST, 2)
        existing = [
            make_booking(id=1, therapist_id=1, start=at(12, 9), end=at(12, 10)),
            make_booking(id=2, therapist_id=1, start=at(12, 14), end=at(12, 15)),
            make_booking(id=3, therapist_id=2, start=at(12, 16), end=at(12, 17)),
            make_booking(id=4, therapist_id=2, start=at(13, 9), end=at(13, 10)),
        ]
        assert least_loaded([first, second], date(2025, 11, 12), existing) == second

    def test_least_loaded_ties_keep_order(self):
        candidates = [ResourceRef(ResourceKind.THERAPIST, 5), ResourceRef(ResourceKind.THERAPIST, 6)]
        assert least_loaded(candidates, date(2025, 11, 12), []) == candidates[0]
        assert least_loaded([], date(2025, 11, 12), []) is None


class TestDayGrid:

    def test_hourly_grid_marks_bookings_and_blocks(self):
        existing = [make_booking(id=8, start=at(12, 10), end=at(12, 11))]
        blocks = [make_block(date(2025, 11, 12), time(15, 0), time(16, 0), therapist_id=1)]

        grid = day_grid(THERAPIST, date(2025, 11, 12), existing, blocks)

        assert len(grid) == 12
        by_hour = {s.interval.start.hour: s for s in grid}
        assert by_hour[9].is_available
        assert not by_hour[10].is_available
        assert by_hour[10].booking_id == 8
        assert by_hour[11].is_available
        assert not by_hour[15].is_available
        assert by_hour[15].booking_id is None

    def test_custom_step(self):
        grid = day_grid(ROOM, date(2025, 11, 12), [], open_hour=10, close_hour=12, slot_minutes=30)
        assert [str(s.interval) for s in grid] == ["10:00-10:30", "10:30-11:00", "11:00-11:30", "11:30-12:00"]


class TestWorkingHours:

    def test_weekly_window(self):
        hours = weekly_shift(1, time(9, 0), time(17, 0))
        assert working_windows(1, date(2025, 11, 12), hours) == [slot(9, 17)]
        assert working_windows(2, date(2025, 11, 12), hours) == []

    def test_interval_must_fit_inside_one_window(self):
        hours = [
            WorkingHours(1, 2, time(9, 0), time(12, 0)),
            WorkingHours(1, 2, time(13, 0), time(17, 0)),
        ]
        assert within_working_hours(1, slot(9, 12), hours)
        assert within_working_hours(1, slot(13, 14), hours)
        assert not within_working_hours(1, slot(11, 14), hours)
        assert not within_working_hours(1, slot(8, 10), hours)

    def test_dated_entries_replace_the_week(self):
        hours = weekly_shift(1, time(9, 0), time(17, 0)) + [
            WorkingHours(1, 2, time(18, 0), time(21, 0), specific_date=date(2025, 11, 12)),
        ]
        assert working_windows(1, date(2025, 11, 12), hours) == [slot(18, 21)]
        assert working_windows(1, date(2025, 11, 19), hours) == [slot(9, 17, day=19)]

    def test_unavailable_entry_is_a_day_off(self):
        hours = weekly_shift(1) + [
            WorkingHours(1, 2, time(0, 0), time(0, 0), is_available=False, specific_date=date(2025, 11, 12)),
        ]
        assert working_windows(1, date(2025, 11, 12), hours) == []
        assert not within_working_hours(1, slot(10, 11), hours)

    def test_room_search_ignores_hours(self):
        rooms = [ROOM]
        assert available_resources(rooms, slot(10, 11), [], working_hours=[]) == rooms

    def test_therapist_search_requires_hours(self):
        candidates = [THERAPIST, ResourceRef(ResourceKind.THERAPIST, 2)]
        hours = weekly_shift(2)
        assert available_resources(candidates, slot(10, 11), [], working_hours=hours) == [candidates[1]]
        assert available_resources(candidates, slot(10, 11), []) == candidates
