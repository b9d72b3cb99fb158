from datetime import date, datetime, time

import pytest
from pydantic import ValidationError

from agenda.core.config import Settings
from agenda.models.business_hours import DayOfWeek
from agenda.schemas.appointment import AppointmentCreate, AppointmentReschedule
from agenda.schemas.business import (
    SpecialDateSchema,
    WeeklyHoursSchema,
)
from agenda.schemas.employee import EmployeeAbsenceSchema, EmployeeScheduleSchema
from agenda.schemas.scheduling import (
    AvailabilityQuery,
    BookableDatesQuery,
    OperatingWindow,
    RescheduleSource,
    TimeInterval,
    WindowSource,
)
from agenda.utils.validation import (
    BookingPolicyValidationError,
    validate_and_raise,
    validate_booking_policy,
    validate_service_ids,
    validate_step_minutes,
)


def create_payload(**overrides):
    payload = {
        "business_id": 1,
        "employee_id": 1,
        "service_ids": [1],
        "appointment_date": "2024-01-16",
        "start_time": "10:00",
    }
    payload.update(overrides)
    return payload


@pytest.mark.unit
class TestAppointmentCreate:
    def test_registered_client(self):
        data = AppointmentCreate(**create_payload(client_id=7))

        assert data.client_id == 7
        assert data.walk_in_name is None
        assert data.prevent_client_overlap is None

    def test_walk_in(self):
        data = AppointmentCreate(
            **create_payload(walk_in_name="  Dana ", walk_in_phone="555-0100")
        )

        assert data.walk_in_name == "Dana"
        assert data.client_id is None

    def test_requires_client_or_walk_in(self):
        with pytest.raises(ValidationError, match="client_id or walk_in_name"):
            AppointmentCreate(**create_payload())

    def test_blank_walk_in_name_counts_as_missing(self):
        with pytest.raises(ValidationError):
            AppointmentCreate(**create_payload(walk_in_name="   "))

    def test_client_and_walk_in_are_exclusive(self):
        with pytest.raises(ValidationError, match="mutually exclusive"):
            AppointmentCreate(**create_payload(client_id=7, walk_in_name="Dana"))

    def test_phone_requires_name(self):
        with pytest.raises(ValidationError, match="walk_in_phone"):
            AppointmentCreate(**create_payload(client_id=7, walk_in_phone="555-0100"))

    def test_requires_a_service(self):
        with pytest.raises(ValidationError):
            AppointmentCreate(**create_payload(client_id=7, service_ids=[]))

    def test_rejects_repeated_service(self):
        with pytest.raises(ValidationError, match="must not repeat"):
            AppointmentCreate(**create_payload(client_id=7, service_ids=[1, 2, 1]))


@pytest.mark.unit
class TestAppointmentReschedule:
    def test_defaults_to_staff(self):
        data = AppointmentReschedule(appointment_date="2024-01-16", start_time="14:00")

        assert data.source == RescheduleSource.STAFF
        assert data.employee_id is None

    def test_client_source_requires_client(self):
        with pytest.raises(ValidationError, match="client_id"):
            AppointmentReschedule(
                appointment_date="2024-01-16", start_time="14:00", source="client"
            )


@pytest.mark.unit
class TestBusinessHoursSchemas:
    def test_weekly_hours(self):
        hours = WeeklyHoursSchema(
            day_of_week=1, open_time=time(9, 0), close_time=time(17, 0)
        )

        assert hours.day_of_week == DayOfWeek.MONDAY

    def test_closed_weekday_needs_no_times(self):
        hours = WeeklyHoursSchema(day_of_week=DayOfWeek.SUNDAY, is_closed=True)

        assert hours.open_time is None

    def test_open_weekday_needs_times(self):
        with pytest.raises(ValidationError):
            WeeklyHoursSchema(day_of_week=DayOfWeek.MONDAY, open_time=time(9, 0))

    def test_weekly_close_after_open(self):
        with pytest.raises(ValidationError, match="close_time"):
            WeeklyHoursSchema(
                day_of_week=DayOfWeek.MONDAY,
                open_time=time(17, 0),
                close_time=time(9, 0),
            )

    def test_weekday_out_of_range(self):
        with pytest.raises(ValidationError):
            WeeklyHoursSchema(day_of_week=7, is_closed=True)

    def test_special_date_closed_by_default(self):
        special = SpecialDateSchema(special_date=date(2024, 12, 25))

        assert special.is_closed is True

    def test_closed_special_date_rejects_hours(self):
        with pytest.raises(ValidationError, match="closed special date"):
            SpecialDateSchema(
                special_date=date(2024, 12, 24),
                open_time=time(9, 0),
                close_time=time(12, 0),
            )

    def test_open_special_date(self):
        special = SpecialDateSchema(
            special_date=date(2024, 12, 24),
            is_closed=False,
            open_time=time(9, 0),
            close_time=time(12, 0),
        )

        assert special.close_time == time(12, 0)

    def test_open_special_date_requires_hours(self):
        with pytest.raises(ValidationError):
            SpecialDateSchema(special_date=date(2024, 12, 24), is_closed=False)


@pytest.mark.unit
class TestEmployeeSchemas:
    def test_schedule_end_after_start(self):
        with pytest.raises(ValidationError):
            EmployeeScheduleSchema(
                day_of_week=DayOfWeek.MONDAY,
                start_time=time(17, 0),
                end_time=time(9, 0),
            )

    def test_full_day_absence(self):
        absence = EmployeeAbsenceSchema(absence_date=date(2024, 1, 16))

        assert absence.is_full_day is True
        assert absence.reason == "other"

    def test_partial_absence_requires_times(self):
        with pytest.raises(ValidationError, match="Partial absences"):
            EmployeeAbsenceSchema(
                absence_date=date(2024, 1, 16),
                is_full_day=False,
                start_time=time(12, 0),
            )


@pytest.mark.unit
class TestEngineValueTypes:
    def test_interval_must_have_positive_length(self):
        with pytest.raises(ValidationError):
            TimeInterval(
                start=datetime(2024, 1, 16, 10, 0), end=datetime(2024, 1, 16, 10, 0)
            )

    def test_open_window_requires_times(self):
        with pytest.raises(ValidationError):
            OperatingWindow(closed=False, source=WindowSource.WEEKLY_HOURS)

    def test_closed_window(self):
        window = OperatingWindow(closed=True, source=WindowSource.SPECIAL_DATE)

        assert window.open_time is None


@pytest.mark.unit
class TestBookableDatesQuery:
    def test_range(self):
        query = BookableDatesQuery(
            business_id=1,
            employee_id=1,
            service_ids=[1],
            start_date=date(2024, 1, 1),
            end_date=date(2024, 4, 2),
        )

        assert (query.end_date - query.start_date).days == 92

    def test_range_too_long(self):
        with pytest.raises(ValidationError, match="92 days"):
            BookableDatesQuery(
                business_id=1,
                employee_id=1,
                service_ids=[1],
                start_date=date(2024, 1, 1),
                end_date=date(2024, 4, 3),
            )

    def test_reversed_range(self):
        with pytest.raises(ValidationError, match="end_date"):
            BookableDatesQuery(
                business_id=1,
                employee_id=1,
                service_ids=[1],
                start_date=date(2024, 1, 10),
                end_date=date(2024, 1, 9),
            )

    def test_rejects_repeated_service(self):
        with pytest.raises(ValidationError, match="must not repeat"):
            BookableDatesQuery(
                business_id=1,
                employee_id=1,
                service_ids=[3, 3],
                start_date=date(2024, 1, 1),
                end_date=date(2024, 1, 9),
            )


@pytest.mark.unit
class TestBookingPolicy:
    def test_valid_policy(self):
        assert validate_booking_policy({"min_booking_hours": 2, "max_booking_days": 30}) == []

    def test_empty_policy(self):
        assert validate_booking_policy({}) == []

    @pytest.mark.parametrize("value", [-1, 1.5, "2", True])
    def test_invalid_values(self, value):
        errors = validate_booking_policy({"min_booking_hours": value})

        assert errors == ["min_booking_hours must be a non-negative integer"]

    def test_validate_and_raise(self):
        with pytest.raises(BookingPolicyValidationError) as exc_info:
            validate_and_raise({"min_booking_hours": -1, "max_booking_days": -1})

        assert len(exc_info.value.errors) == 2


@pytest.mark.unit
class TestServiceSelection:
    def test_distinct_ids(self):
        assert validate_service_ids([3, 1, 2]) == []

    def test_repeated_ids_are_named_once(self):
        assert validate_service_ids([1, 2, 1, 1, 2]) == [
            "service_ids must not repeat a service: 1, 2"
        ]

    def test_availability_query_keeps_order(self):
        query = AvailabilityQuery(
            business_id=1, employee_id=1, service_ids=[2, 1], date=date(2024, 1, 16)
        )

        assert query.service_ids == [2, 1]

    def test_availability_query_rejects_repeats(self):
        with pytest.raises(ValidationError, match="must not repeat"):
            AvailabilityQuery(
                business_id=1, employee_id=1, service_ids=[2, 2], date=date(2024, 1, 16)
            )


@pytest.mark.unit
class TestSettings:
    def test_step_minutes(self):
        assert validate_step_minutes(15) == []
        assert validate_step_minutes(0) == ["step_minutes must be a positive integer"]
        assert validate_step_minutes(7) == ["step_minutes must divide a day evenly"]

    def test_invalid_slot_step(self):
        with pytest.raises(ValidationError, match="SLOT_STEP_MINUTES"):
            Settings(SLOT_STEP_MINUTES=7)

    def test_cors_origins_from_comma_separated_string(self):
        settings = Settings(ALLOWED_ORIGINS="http://a.test, http://b.test")

        assert settings.ALLOWED_ORIGINS == ["http://a.test", "http://b.test"]

    def test_scheduling_defaults(self):
        settings = Settings()

        assert settings.DEFAULT_OPEN_TIME == time(9, 0)
        assert settings.DEFAULT_CLOSE_TIME == time(18, 0)
        assert settings.PREVENT_CLIENT_SELF_OVERLAP is True
