from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, Field, field_validator, model_validator

# Import enums from the model to avoid duplication
from agenda.models.appointment import AppointmentStatus
from agenda.schemas.scheduling import RescheduleSource, unique_service_ids


class AppointmentCreate(BaseModel):
    business_id: int
    employee_id: int
    service_ids: List[int] = Field(..., min_length=1)
    appointment_date: date
    start_time: time
    client_id: Optional[int] = None
    walk_in_name: Optional[str] = Field(None, max_length=255)
    walk_in_phone: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    prevent_client_overlap: Optional[bool] = None

    @field_validator("service_ids")
    @classmethod
    def check_service_ids(cls, v):
        return unique_service_ids(v)

    @field_validator("walk_in_name", "walk_in_phone")
    @classmethod
    def strip_blank(cls, v):
        if v is not None:
            v = v.strip()
            return v or None
        return v

    @model_validator(mode="after")
    def validate_client(self):
        if self.client_id is None and self.walk_in_name is None:
            raise ValueError("Either client_id or walk_in_name is required")
        if self.client_id is not None and self.walk_in_name is not None:
            raise ValueError("client_id and walk_in_name are mutually exclusive")
        if self.walk_in_phone is not None and self.walk_in_name is None:
            raise ValueError("walk_in_phone requires walk_in_name")
        return self


class AppointmentReschedule(BaseModel):
    employee_id: Optional[int] = None
    appointment_date: date
    start_time: time
    source: RescheduleSource = RescheduleSource.STAFF
    client_id: Optional[int] = None

    @model_validator(mode="after")
    def validate_client_source(self):
        if self.source == RescheduleSource.CLIENT and self.client_id is None:
            raise ValueError("client_id is required for client reschedules")
        return self


class AppointmentMove(BaseModel):
    """Drop target of a calendar drag; the time is snapped before validation."""
    employee_id: Optional[int] = None
    appointment_date: date
    dropped_time: time


class AppointmentStatusTransition(BaseModel):
    new_status: AppointmentStatus


# Response schemas
class AppointmentServiceLine(BaseModel):
    service_id: int
    price: Decimal
    duration_minutes: int

    class Config:
        from_attributes = True


class Appointment(BaseModel):
    id: int
    uuid: UUID
    business_id: int
    employee_id: int
    client_id: Optional[int] = None
    walk_in_name: Optional[str] = None
    walk_in_phone: Optional[str] = None
    appointment_date: date
    start_time: time
    end_time: time
    status: AppointmentStatus
    total_price: Decimal
    notes: Optional[str] = None
    service_lines: List[AppointmentServiceLine] = Field(default_factory=list)

    # Timestamps
    status_changed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
