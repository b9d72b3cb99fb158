from datetime import date, time
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from agenda.models.business_hours import DayOfWeek
from agenda.models.employee import AbsenceReason


class EmployeeScheduleSchema(BaseModel):
    """Recurring working window of an employee for one weekday."""
    day_of_week: DayOfWeek
    is_available: bool = True
    start_time: time
    end_time: time

    @model_validator(mode="after")
    def validate_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    class Config:
        from_attributes = True


class EmployeeAbsenceSchema(BaseModel):
    """Full-day or partial-day absence of an employee."""
    absence_date: date
    is_full_day: bool = True
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    reason: str = Field(AbsenceReason.OTHER.value, max_length=20)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_times(self):
        if self.is_full_day:
            return self
        if self.start_time is None or self.end_time is None:
            raise ValueError("Partial absences require start_time and end_time")
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    class Config:
        from_attributes = True
