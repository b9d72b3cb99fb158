"""Pure scheduling primitives.

Nothing in this module touches the database or reads the clock: the current
time is always passed in, so the same inputs always give the same slots.
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from agenda.schemas.scheduling import (
    BookingBounds,
    EmployeeWindow,
    OperatingWindow,
    ServiceBlock,
    Slot,
    TimeInterval,
)
from agenda.services.exceptions import (
    InvalidBookingPolicy,
    InvalidDuration,
    PolicyViolation,
    ViolationReason,
)
from agenda.utils.validation import BookingPolicyValidationError, validate_and_raise


MINUTES_PER_DAY = 24 * 60


def aggregate_services(services: Sequence) -> ServiceBlock:
    """Sum durations and prices of the selected services.

    Accepts any objects with ``id``, ``duration_minutes`` and ``price``
    attributes (ORM rows or schemas). Never substitutes a default duration.
    """
    if not services:
        raise InvalidDuration("At least one service must be selected")

    total_minutes = 0
    total_price = Decimal("0")
    service_ids = []
    for service in services:
        duration = service.duration_minutes
        if (
            not isinstance(duration, int)
            or isinstance(duration, bool)
            or duration <= 0
        ):
            raise InvalidDuration(
                f"Service {service.id} has an invalid duration: {duration!r}"
            )
        total_minutes += duration
        total_price += Decimal(str(service.price or 0))
        service_ids.append(service.id)

    if total_minutes <= 0:
        raise InvalidDuration("Total service duration must be positive")

    return ServiceBlock(
        duration_minutes=total_minutes,
        total_price=total_price,
        service_ids=service_ids,
    )


def generate_slots(
    target_date: date,
    window_start: time,
    window_end: time,
    step_minutes: int,
    block_minutes: int,
) -> List[Slot]:
    """Candidate slots every ``step_minutes`` from the window start.

    A candidate is kept only when the whole block fits before the window end.
    """
    if step_minutes <= 0:
        raise ValueError("step_minutes must be positive")
    if block_minutes <= 0:
        raise InvalidDuration("block_minutes must be positive")

    start = datetime.combine(target_date, window_start)
    end = datetime.combine(target_date, window_end)
    step = timedelta(minutes=step_minutes)
    block = timedelta(minutes=block_minutes)

    slots = []
    current = start
    while current + block <= end:
        slots.append(Slot(start=current, end=current + block))
        current += step
    return slots


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    # Half-open intervals: touching endpoints do not overlap
    return start < other_end and end > other_start


def find_conflicts(
    start: datetime, end: datetime, blocking: Iterable[TimeInterval]
) -> List[TimeInterval]:
    """Blocking intervals that the interval ``[start, end)`` overlaps."""
    return [b for b in blocking if overlaps(start, end, b.start, b.end)]


def filter_slots(
    slots: Sequence[Slot],
    blocking: Sequence[TimeInterval],
    now: datetime,
    earliest_bookable: Optional[datetime] = None,
) -> List[Slot]:
    """Drop past, too-early and overlapping candidates, preserving order."""
    kept = []
    for slot in slots:
        if slot.start <= now:
            continue
        if earliest_bookable is not None and slot.start < earliest_bookable:
            continue
        if find_conflicts(slot.start, slot.end, blocking):
            continue
        kept.append(slot)
    return kept


def intersect_windows(
    operating: OperatingWindow, employee: EmployeeWindow
) -> Optional[tuple]:
    """Working window shared by the business and the employee, if any."""
    if operating.closed or employee.unavailable:
        return None
    start = max(operating.open_time, employee.start_time)
    end = min(operating.close_time, employee.end_time)
    if end <= start:
        return None
    return start, end


def snap_to_increment(dropped: time, increment_minutes: int) -> time:
    """Round a pointer time to the nearest increment within the same day."""
    if increment_minutes <= 0:
        raise ValueError("increment_minutes must be positive")
    minutes = dropped.hour * 60 + dropped.minute + dropped.second / 60
    # Round half up so 10:07:30 on a 15-minute grid lands on 10:15
    snapped = int(minutes / increment_minutes + 0.5) * increment_minutes
    last_start = MINUTES_PER_DAY - increment_minutes
    snapped = min(snapped, last_start)
    return time(snapped // 60, snapped % 60)


class BookingWindowPolicy:
    """Lead-time and horizon rules of a business."""

    def __init__(self, min_booking_hours: int, max_booking_days: int):
        try:
            validate_and_raise(
                {
                    "min_booking_hours": min_booking_hours,
                    "max_booking_days": max_booking_days,
                }
            )
        except BookingPolicyValidationError as e:
            raise InvalidBookingPolicy(e.errors, cause=e) from e
        self.min_booking_hours = min_booking_hours
        self.max_booking_days = max_booking_days

    @classmethod
    def for_business(cls, business) -> "BookingWindowPolicy":
        return cls(
            min_booking_hours=business.min_booking_hours or 0,
            max_booking_days=business.max_booking_days or 0,
        )

    def bounds(self, now: datetime) -> BookingBounds:
        today = now.date()
        return BookingBounds(
            earliest_bookable=now + timedelta(hours=self.min_booking_hours),
            latest_bookable_date=today + timedelta(days=self.max_booking_days),
            today=today,
        )

    def is_date_selectable(self, target_date: date, now: datetime) -> bool:
        bounds = self.bounds(now)
        if target_date < bounds.today:
            return False
        if target_date < bounds.earliest_bookable.date():
            return False
        return target_date <= bounds.latest_bookable_date

    def check_start(self, start: datetime, now: datetime) -> None:
        """Raise PolicyViolation when ``start`` cannot be booked at ``now``."""
        bounds = self.bounds(now)
        if start <= now:
            raise PolicyViolation(
                ViolationReason.IN_PAST, "The selected time is in the past"
            )
        if start < bounds.earliest_bookable:
            raise PolicyViolation(
                ViolationReason.LEAD_TIME,
                f"Appointments must be booked at least "
                f"{self.min_booking_hours} hours in advance",
            )
        if start.date() > bounds.latest_bookable_date:
            raise PolicyViolation(
                ViolationReason.HORIZON,
                f"Appointments can be booked at most "
                f"{self.max_booking_days} days in advance",
            )
