"""Tests for the pure slot engine."""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from agenda.schemas.scheduling import (
    BlockKind,
    EmployeeWindow,
    OperatingWindow,
    Slot,
    TimeInterval,
    UnavailableReason,
    WindowSource,
)
from agenda.services.exceptions import (
    InvalidBookingPolicy,
    InvalidDuration,
    PolicyViolation,
    SchedulingError,
    ViolationReason,
)
from agenda.services.slots import (
    BookingWindowPolicy,
    aggregate_services,
    filter_slots,
    find_conflicts,
    generate_slots,
    intersect_windows,
    overlaps,
    snap_to_increment,
)

DAY = date(2024, 1, 16)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    return datetime.combine(day, time(hour, minute))


def service(service_id, minutes, price="10.00"):
    return SimpleNamespace(id=service_id, duration_minutes=minutes, price=Decimal(price))


def appointment_block(start, end, appointment_id=99):
    return TimeInterval(start=start, end=end, appointment_id=appointment_id)


@pytest.mark.unit
class TestAggregateServices:
    def test_sums_duration_and_price(self):
        block = aggregate_services([service(1, 30, "25.00"), service(2, 45, "15.50")])

        assert block.duration_minutes == 75
        assert block.total_price == Decimal("40.50")
        assert block.service_ids == [1, 2]

    def test_empty_selection_is_invalid(self):
        with pytest.raises(InvalidDuration):
            aggregate_services([])

    @pytest.mark.parametrize("minutes", [0, -15, None, 30.5])
    def test_bad_duration_is_invalid(self, minutes):
        with pytest.raises(InvalidDuration):
            aggregate_services([service(1, 30), service(2, minutes)])

    def test_invalid_duration_is_a_value_error(self):
        with pytest.raises(ValueError):
            aggregate_services([])


@pytest.mark.unit
class TestGenerateSlots:
    def test_full_day_with_hour_long_service(self):
        slots = generate_slots(DAY, time(9, 0), time(18, 0), 30, 60)

        starts = [slot.start_time for slot in slots]
        assert starts[0] == time(9, 0)
        assert starts[-1] == time(17, 0)
        assert time(17, 30) not in starts
        assert len(slots) == 17
        assert all(slot.end - slot.start == timedelta(minutes=60) for slot in slots)

    def test_last_slot_ends_exactly_at_close(self):
        slots = generate_slots(DAY, time(9, 0), time(10, 0), 30, 30)

        assert [slot.start_time for slot in slots] == [time(9, 0), time(9, 30)]
        assert slots[-1].end_time == time(10, 0)

    def test_block_longer_than_window_gives_no_slots(self):
        assert generate_slots(DAY, time(9, 0), time(10, 0), 30, 90) == []

    def test_is_deterministic(self):
        first = generate_slots(DAY, time(9, 0), time(12, 0), 15, 45)
        second = generate_slots(DAY, time(9, 0), time(12, 0), 15, 45)

        assert first == second

    def test_step_must_be_positive(self):
        with pytest.raises(ValueError):
            generate_slots(DAY, time(9, 0), time(18, 0), 0, 30)

    def test_block_must_be_positive(self):
        with pytest.raises(InvalidDuration):
            generate_slots(DAY, time(9, 0), time(18, 0), 30, 0)


@pytest.mark.unit
class TestConflicts:
    def test_adjacent_intervals_do_not_overlap(self):
        assert not overlaps(at(9, 30), at(10, 0), at(10, 0), at(10, 30))
        assert not overlaps(at(10, 30), at(11, 0), at(10, 0), at(10, 30))

    def test_partial_and_containing_overlaps(self):
        assert overlaps(at(9, 45), at(10, 15), at(10, 0), at(10, 30))
        assert overlaps(at(9, 0), at(12, 0), at(10, 0), at(10, 30))
        assert overlaps(at(10, 10), at(10, 20), at(10, 0), at(10, 30))

    def test_find_conflicts_returns_offenders(self):
        first = appointment_block(at(10, 0), at(10, 30), 1)
        second = appointment_block(at(11, 0), at(11, 30), 2)

        conflicts = find_conflicts(at(10, 15), at(11, 15), [first, second])

        assert [c.appointment_id for c in conflicts] == [1, 2]


@pytest.mark.unit
class TestFilterSlots:
    def test_existing_appointment_blocks_overlapping_slot_only(self):
        slots = generate_slots(DAY, time(9, 0), time(11, 0), 30, 30)
        blocking = [appointment_block(at(10, 0), at(10, 30))]

        kept = filter_slots(slots, blocking, now=at(8, 0))

        starts = [slot.start_time for slot in kept]
        assert time(10, 0) not in starts
        assert time(9, 30) in starts
        assert time(10, 30) in starts

    def test_slot_at_now_is_rejected(self):
        slots = generate_slots(DAY, time(9, 0), time(11, 0), 30, 30)

        kept = filter_slots(slots, [], now=at(9, 30))

        assert [slot.start_time for slot in kept] == [time(10, 0), time(10, 30)]

    def test_slot_at_earliest_bookable_is_kept(self):
        slots = generate_slots(DAY, time(9, 0), time(11, 0), 30, 30)

        kept = filter_slots(slots, [], now=at(8, 0), earliest_bookable=at(10, 0))

        assert [slot.start_time for slot in kept] == [time(10, 0), time(10, 30)]

    def test_cutouts_block_like_appointments(self):
        slots = generate_slots(DAY, time(9, 0), time(11, 0), 30, 30)
        cutout = TimeInterval(start=at(9, 0), end=at(10, 0), kind=BlockKind.CUTOUT)

        kept = filter_slots(slots, [cutout], now=at(8, 0))

        assert [slot.start_time for slot in kept] == [time(10, 0), time(10, 30)]

    def test_order_is_preserved_and_input_untouched(self):
        slots = generate_slots(DAY, time(9, 0), time(12, 0), 30, 30)
        original = list(slots)

        kept = filter_slots(slots, [appointment_block(at(10, 0), at(11, 0))], at(8, 0))

        assert kept == sorted(kept, key=lambda slot: slot.start)
        assert slots == original

    def test_filtering_twice_changes_nothing(self):
        slots = generate_slots(DAY, time(9, 0), time(12, 0), 30, 60)
        blocking = [appointment_block(at(10, 0), at(10, 30))]

        once = filter_slots(slots, blocking, at(8, 0), at(9, 30))
        twice = filter_slots(once, blocking, at(8, 0), at(9, 30))

        assert once == twice

    def test_no_kept_slot_overlaps_a_blocking_interval(self):
        slots = generate_slots(DAY, time(9, 0), time(18, 0), 15, 45)
        blocking = [
            appointment_block(at(9, 40), at(10, 20), 1),
            appointment_block(at(13, 0), at(14, 30), 2),
        ]

        kept = filter_slots(slots, blocking, at(8, 0))

        assert kept
        for slot in kept:
            assert not find_conflicts(slot.start, slot.end, blocking)


@pytest.mark.unit
class TestIntersectWindows:
    def test_intersection_of_business_and_employee(self):
        operating = OperatingWindow(
            closed=False,
            open_time=time(9, 0),
            close_time=time(18, 0),
            source=WindowSource.WEEKLY_HOURS,
        )
        employee = EmployeeWindow(
            unavailable=False, start_time=time(10, 0), end_time=time(20, 0)
        )

        assert intersect_windows(operating, employee) == (time(10, 0), time(18, 0))

    def test_disjoint_windows(self):
        operating = OperatingWindow(
            closed=False,
            open_time=time(9, 0),
            close_time=time(12, 0),
            source=WindowSource.DEFAULT,
        )
        employee = EmployeeWindow(
            unavailable=False, start_time=time(13, 0), end_time=time(17, 0)
        )

        assert intersect_windows(operating, employee) is None

    def test_closed_or_unavailable(self):
        closed = OperatingWindow(closed=True, source=WindowSource.SPECIAL_DATE)
        employee = EmployeeWindow(
            unavailable=False, start_time=time(9, 0), end_time=time(17, 0)
        )
        absent = EmployeeWindow.unavailable_for(UnavailableReason.ABSENT)
        open_window = OperatingWindow(
            closed=False,
            open_time=time(9, 0),
            close_time=time(17, 0),
            source=WindowSource.DEFAULT,
        )

        assert intersect_windows(closed, employee) is None
        assert intersect_windows(open_window, absent) is None


@pytest.mark.unit
class TestSnapToIncrement:
    @pytest.mark.parametrize(
        "dropped, expected",
        [
            (time(10, 0), time(10, 0)),
            (time(10, 7), time(10, 0)),
            (time(10, 8), time(10, 15)),
            (time(10, 7, 30), time(10, 15)),
            (time(10, 52), time(10, 45)),
            (time(10, 53), time(11, 0)),
            (time(23, 55), time(23, 45)),
        ],
    )
    def test_rounds_to_nearest_quarter_hour(self, dropped, expected):
        assert snap_to_increment(dropped, 15) == expected

    def test_increment_must_be_positive(self):
        with pytest.raises(ValueError):
            snap_to_increment(time(10, 0), 0)


@pytest.mark.unit
class TestBookingWindowPolicy:
    def test_bounds(self):
        policy = BookingWindowPolicy(min_booking_hours=2, max_booking_days=30)

        bounds = policy.bounds(at(8, 0))

        assert bounds.earliest_bookable == at(10, 0)
        assert bounds.latest_bookable_date == DAY + timedelta(days=30)
        assert bounds.today == DAY

    def test_date_selectable(self):
        policy = BookingWindowPolicy(min_booking_hours=0, max_booking_days=7)
        now = at(8, 0)

        assert policy.is_date_selectable(DAY, now)
        assert policy.is_date_selectable(DAY + timedelta(days=7), now)
        assert not policy.is_date_selectable(DAY + timedelta(days=8), now)
        assert not policy.is_date_selectable(DAY - timedelta(days=1), now)

    def test_lead_time_can_push_past_today(self):
        policy = BookingWindowPolicy(min_booking_hours=20, max_booking_days=7)

        assert not policy.is_date_selectable(DAY, at(8, 0))
        assert policy.is_date_selectable(DAY + timedelta(days=1), at(8, 0))

    def test_zero_horizon_allows_only_today(self):
        policy = BookingWindowPolicy(min_booking_hours=0, max_booking_days=0)

        assert policy.is_date_selectable(DAY, at(8, 0))
        assert not policy.is_date_selectable(DAY + timedelta(days=1), at(8, 0))

    @pytest.mark.parametrize(
        "start, reason",
        [
            (at(7, 0), ViolationReason.IN_PAST),
            (at(8, 0), ViolationReason.IN_PAST),
            (at(9, 30), ViolationReason.LEAD_TIME),
            (at(10, 0, DAY + timedelta(days=31)), ViolationReason.HORIZON),
        ],
    )
    def test_check_start_violations(self, start, reason):
        policy = BookingWindowPolicy(min_booking_hours=2, max_booking_days=30)

        with pytest.raises(PolicyViolation) as exc_info:
            policy.check_start(start, at(8, 0))

        assert exc_info.value.reason == reason

    def test_check_start_accepts_boundaries(self):
        policy = BookingWindowPolicy(min_booking_hours=2, max_booking_days=30)

        policy.check_start(at(10, 0), at(8, 0))
        policy.check_start(at(17, 0, DAY + timedelta(days=30)), at(8, 0))

    def test_negative_values_are_rejected(self):
        with pytest.raises(InvalidBookingPolicy) as exc_info:
            BookingWindowPolicy(min_booking_hours=-1, max_booking_days=30)

        assert exc_info.value.errors == [
            "min_booking_hours must be a non-negative integer"
        ]
        assert isinstance(exc_info.value, SchedulingError)

    def test_invalid_stored_policy(self, sample_business):
        sample_business.max_booking_days = -5

        with pytest.raises(InvalidBookingPolicy):
            BookingWindowPolicy.for_business(sample_business)

    def test_for_business(self, sample_business):
        policy = BookingWindowPolicy.for_business(sample_business)

        assert policy.min_booking_hours == 2
        assert policy.max_booking_days == 30


@pytest.mark.unit
def test_slot_exposes_times():
    slot = Slot(start=at(9, 0), end=at(9, 30))

    assert slot.start_time == time(9, 0)
    assert slot.end_time == time(9, 30)
