from typing import Optional
from datetime import date, time
from pydantic import BaseModel, Field, model_validator

from agenda.models.business_hours import DayOfWeek


class WeeklyHoursSchema(BaseModel):
    """Opening hours of one weekday (0 = Sunday)."""
    day_of_week: DayOfWeek
    is_closed: bool = False
    open_time: Optional[time] = None
    close_time: Optional[time] = None

    @model_validator(mode="after")
    def validate_times(self):
        if self.is_closed:
            return self
        if self.open_time is None or self.close_time is None:
            raise ValueError("open_time and close_time are required unless the day is closed")
        if self.close_time <= self.open_time:
            raise ValueError("close_time must be after open_time")
        return self

    class Config:
        from_attributes = True


class SpecialDateSchema(BaseModel):
    """Override of the opening hours for one calendar date."""
    special_date: date
    is_closed: bool = True
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    reason: str = Field("other", max_length=50)
    description: Optional[str] = None

    @model_validator(mode="after")
    def validate_times(self):
        if self.is_closed:
            if self.open_time is not None or self.close_time is not None:
                raise ValueError("A closed special date cannot carry opening hours")
            return self
        if self.open_time is None or self.close_time is None:
            raise ValueError("open_time and close_time are required when the date is open")
        if self.close_time <= self.open_time:
            raise ValueError("close_time must be after open_time")
        return self

    class Config:
        from_attributes = True
