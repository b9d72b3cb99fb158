from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Time,
    Text,
    ForeignKey,
    Numeric,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from agenda.core.database import Base
import enum
import uuid
from datetime import datetime
from typing import List, Optional


class AppointmentStatus(enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses whose interval blocks the employee's (and client's) calendar
ACTIVE_STATUSES = (
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.IN_PROGRESS,
)

TERMINAL_STATUSES = (
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
)

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: [
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
    ],
    AppointmentStatus.CONFIRMED: [
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    ],
    AppointmentStatus.IN_PROGRESS: [
        AppointmentStatus.COMPLETED,
    ],
    AppointmentStatus.COMPLETED: [],  # Final state
    AppointmentStatus.CANCELLED: [],  # Final state
    AppointmentStatus.NO_SHOW: [],  # Final state
}


class Appointment(Base):
    """Appointment of a client or walk-in with one employee on one date."""

    __tablename__ = "appointments"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        UUID(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True
    )
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False)

    # Registered client or walk-in identified by name/phone
    client_id = Column(Integer, nullable=True, index=True)
    walk_in_name = Column(String(255), nullable=True)
    walk_in_phone = Column(String(50), nullable=True)

    # Scheduling details, business local wall clock
    appointment_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    # Status management
    status = Column(
        String(20), nullable=False, default=AppointmentStatus.PENDING.value, index=True
    )
    status_changed_at = Column(DateTime(timezone=True), server_default=func.now())

    total_price = Column(Numeric(10, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_end_after_start"),
        CheckConstraint("total_price >= 0", name="check_non_negative_price"),
        CheckConstraint(
            "(client_id IS NOT NULL AND walk_in_name IS NULL) OR "
            "(client_id IS NULL AND walk_in_name IS NOT NULL)",
            name="check_client_or_walk_in",
        ),
        Index(
            "ix_appointments_employee_date", "employee_id", "appointment_date"
        ),
    )

    # Relationships
    business = relationship("Business")
    employee = relationship("Employee")
    service_lines = relationship(
        "AppointmentServiceLine",
        back_populates="appointment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # Status transition methods
    def can_transition_to(self, new_status: AppointmentStatus) -> bool:
        """Check if appointment can transition to the new status."""
        current = AppointmentStatus(self.status)
        return new_status in ALLOWED_TRANSITIONS.get(current, [])

    def transition_to(self, new_status: AppointmentStatus) -> bool:
        """Transition appointment to new status with validation."""
        if not self.can_transition_to(new_status):
            return False

        from datetime import timezone
        self.status = new_status.value
        self.status_changed_at = datetime.now(timezone.utc)
        return True

    @property
    def is_active(self) -> bool:
        """Check if appointment blocks its time interval."""
        return AppointmentStatus(self.status) in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return AppointmentStatus(self.status) in TERMINAL_STATUSES

    @property
    def block_minutes(self) -> int:
        """Length of the appointment derived from its service lines."""
        return sum(line.duration_minutes or 0 for line in self.service_lines)

    @property
    def service_ids(self) -> List[int]:
        return [line.service_id for line in self.service_lines]

    @property
    def is_walk_in(self) -> bool:
        return self.client_id is None

    @property
    def start_datetime(self) -> Optional[datetime]:
        if self.appointment_date is None or self.start_time is None:
            return None
        return datetime.combine(self.appointment_date, self.start_time)

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, status='{self.status}', "
            f"date='{self.appointment_date}', {self.start_time}-{self.end_time}, "
            f"employee_id={self.employee_id}, client_id={self.client_id})>"
        )


class AppointmentServiceLine(Base):
    """Service booked within an appointment, priced at booking time."""

    __tablename__ = "appointment_services"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)

    # Snapshot of the service at booking time
    price = Column(Numeric(10, 2), nullable=False)
    duration_minutes = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_line_duration"),
        CheckConstraint("price >= 0", name="check_line_price"),
    )

    appointment = relationship("Appointment", back_populates="service_lines")
    service = relationship("Service")

    def __repr__(self):
        return (
            f"<AppointmentServiceLine(appointment_id={self.appointment_id}, "
            f"service_id={self.service_id}, {self.duration_minutes}min, ${self.price})>"
        )
