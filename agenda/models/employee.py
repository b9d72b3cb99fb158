import enum
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from agenda.core.database import Base


class AbsenceReason(enum.Enum):
    VACATION = "vacation"
    SICK_LEAVE = "sick_leave"
    PERSONAL = "personal"
    TRAINING = "training"
    OTHER = "other"


class Employee(Base):
    """Employee who can be booked for services."""

    __tablename__ = "employees"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        UUID(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True
    )
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    position = Column(String(100), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    business = relationship("Business", back_populates="employees")
    weekly_schedule = relationship(
        "EmployeeWeeklySchedule", back_populates="employee", cascade="all, delete-orphan"
    )
    absences = relationship(
        "EmployeeAbsence", back_populates="employee", cascade="all, delete-orphan"
    )
    employee_services = relationship(
        "EmployeeService", back_populates="employee", cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self):
        return (
            f"<Employee(id={self.id}, name='{self.full_name}', "
            f"business_id={self.business_id}, active={self.is_active})>"
        )


class EmployeeWeeklySchedule(Base):
    """Recurring working window of an employee for one weekday."""

    __tablename__ = "employee_schedules"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False)
    day_of_week = Column(Integer, nullable=False)

    is_available = Column(Boolean, default=True, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    employee = relationship("Employee", back_populates="weekly_schedule")

    __table_args__ = (
        UniqueConstraint("employee_id", "day_of_week", name="uq_employee_schedule_day"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_schedule_day_of_week"),
        CheckConstraint("end_time > start_time", name="check_schedule_times"),
    )

    def __repr__(self):
        return (
            f"<EmployeeWeeklySchedule(employee_id={self.employee_id}, "
            f"day={self.day_of_week}: {self.start_time}-{self.end_time}, "
            f"available={self.is_available})>"
        )


class EmployeeAbsence(Base):
    """Full-day or partial-day absence of an employee."""

    __tablename__ = "employee_absences"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False)
    absence_date = Column(Date, nullable=False)

    is_full_day = Column(Boolean, default=True, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)

    reason = Column(String(20), nullable=False, default=AbsenceReason.OTHER.value)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    employee = relationship("Employee", back_populates="absences")

    __table_args__ = (
        Index("ix_employee_absences_employee_date", "employee_id", "absence_date"),
        CheckConstraint(
            "is_full_day OR (start_time IS NOT NULL AND end_time IS NOT NULL "
            "AND end_time > start_time)",
            name="check_partial_absence_times",
        ),
    )

    @property
    def is_partial(self) -> bool:
        return (
            not self.is_full_day
            and self.start_time is not None
            and self.end_time is not None
        )

    def __repr__(self):
        span = "full day" if self.is_full_day else f"{self.start_time}-{self.end_time}"
        return (
            f"<EmployeeAbsence(employee_id={self.employee_id}, "
            f"{self.absence_date}: {span}, reason={self.reason})>"
        )
