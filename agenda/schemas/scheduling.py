from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum

from agenda.utils.validation import validate_service_ids


class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    FULLY_BOOKED = "fully_booked"
    BUSINESS_CLOSED = "business_closed"
    EMPLOYEE_UNAVAILABLE = "employee_unavailable"
    NO_SCHEDULE = "no_schedule"
    OUTSIDE_BOOKING_WINDOW = "outside_booking_window"


class WindowSource(str, Enum):
    SPECIAL_DATE = "special_date"
    WEEKLY_HOURS = "weekly_hours"
    DEFAULT = "default"


class UnavailableReason(str, Enum):
    NO_SCHEDULE = "no_schedule"
    DAY_OFF = "day_off"
    ABSENT = "absent"


class BlockKind(str, Enum):
    APPOINTMENT = "appointment"
    CLIENT_APPOINTMENT = "client_appointment"
    CUTOUT = "cutout"


class RescheduleSource(str, Enum):
    STAFF = "staff"
    CLIENT = "client"
    CALENDAR_DRAG = "calendar_drag"


# Engine value types
class Slot(BaseModel):
    """Candidate start time plus the interval the booking would occupy."""

    start: datetime
    end: datetime

    @property
    def start_time(self) -> time:
        return self.start.time()

    @property
    def end_time(self) -> time:
        return self.end.time()


class TimeInterval(BaseModel):
    """Half-open interval that a slot must not overlap."""

    start: datetime
    end: datetime
    kind: BlockKind = BlockKind.APPOINTMENT
    appointment_id: Optional[int] = None

    @model_validator(mode="after")
    def validate_order(self):
        if self.end <= self.start:
            raise ValueError("Interval end must be after its start")
        return self


class OperatingWindow(BaseModel):
    closed: bool
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    source: WindowSource

    @model_validator(mode="after")
    def validate_times(self):
        if not self.closed:
            if self.open_time is None or self.close_time is None:
                raise ValueError("Open window requires open_time and close_time")
            if self.close_time <= self.open_time:
                raise ValueError("close_time must be after open_time")
        return self


class EmployeeWindow(BaseModel):
    unavailable: bool
    reason: Optional[UnavailableReason] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    cutouts: List[TimeInterval] = Field(default_factory=list)

    @classmethod
    def unavailable_for(cls, reason: UnavailableReason) -> "EmployeeWindow":
        return cls(unavailable=True, reason=reason)


class BookingBounds(BaseModel):
    earliest_bookable: datetime
    latest_bookable_date: date
    today: date


class ServiceBlock(BaseModel):
    duration_minutes: int
    total_price: Decimal
    service_ids: List[int]


def unique_service_ids(service_ids: List[int]) -> List[int]:
    errors = validate_service_ids(service_ids)
    if errors:
        raise ValueError(errors[0])
    return service_ids


# Requests
class AvailabilityQuery(BaseModel):
    business_id: int
    employee_id: int
    service_ids: List[int] = Field(..., min_length=1)
    date: date
    client_id: Optional[int] = None
    exclude_appointment_id: Optional[int] = None
    prevent_client_overlap: Optional[bool] = None

    @field_validator("service_ids")
    @classmethod
    def check_service_ids(cls, v):
        return unique_service_ids(v)


class BookableDatesQuery(BaseModel):
    business_id: int
    employee_id: int
    service_ids: List[int] = Field(..., min_length=1)
    start_date: date
    end_date: date
    client_id: Optional[int] = None

    @field_validator("service_ids")
    @classmethod
    def check_service_ids(cls, v):
        return unique_service_ids(v)

    @model_validator(mode="after")
    def validate_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if (self.end_date - self.start_date).days > 92:
            raise ValueError("Date range cannot exceed 92 days")
        return self


# Responses
class SlotResponse(BaseModel):
    start_time: time
    end_time: time

    @classmethod
    def from_slot(cls, slot: Slot) -> "SlotResponse":
        return cls(start_time=slot.start_time, end_time=slot.end_time)


class AvailabilityResult(BaseModel):
    date: date
    status: AvailabilityStatus
    slots: List[Slot] = Field(default_factory=list)
    duration_minutes: Optional[int] = None
    total_price: Optional[Decimal] = None
    window: Optional[OperatingWindow] = None


class AvailabilityResponse(BaseModel):
    date: date
    status: AvailabilityStatus
    slots: List[SlotResponse] = Field(default_factory=list)
    duration_minutes: Optional[int] = None
    total_price: Optional[Decimal] = None

    @classmethod
    def from_result(cls, result: AvailabilityResult) -> "AvailabilityResponse":
        return cls(
            date=result.date,
            status=result.status,
            slots=[SlotResponse.from_slot(slot) for slot in result.slots],
            duration_minutes=result.duration_minutes,
            total_price=result.total_price,
        )


class BookableDate(BaseModel):
    date: date
    status: AvailabilityStatus
    slot_count: int = 0


class BookableDatesResponse(BaseModel):
    business_id: int
    employee_id: int
    dates: List[BookableDate] = Field(default_factory=list)


class BookingWindowResponse(BaseModel):
    business_id: int
    min_booking_hours: int
    max_booking_days: int
    earliest_bookable: datetime
    latest_bookable_date: date
    today: date


class OperatingHoursResponse(BaseModel):
    business_id: int
    date: date
    closed: bool
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    source: WindowSource


class RescheduleSlotsResponse(BaseModel):
    appointment_id: int
    employee_id: int
    date: date
    status: AvailabilityStatus
    duration_minutes: int
    slots: List[SlotResponse] = Field(default_factory=list)

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, v):
        if v <= 0:
            raise ValueError("duration_minutes must be positive")
        return v
