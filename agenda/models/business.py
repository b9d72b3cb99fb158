import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from agenda.core.database import Base


class Business(Base):
    """Business model with timezone and booking window policy."""

    __tablename__ = "businesses"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        UUID(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)

    # Local wall clock of the business; appointment times carry no timezone
    timezone = Column(String(50), nullable=False, default="UTC")

    # Booking window policy
    min_booking_hours = Column(Integer, nullable=False, default=0)
    max_booking_days = Column(Integer, nullable=False, default=30)

    # Client self-service permissions
    allow_client_reschedule = Column(Boolean, default=True, nullable=False)
    allow_client_cancellation = Column(Boolean, default=True, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("min_booking_hours >= 0", name="check_min_booking_hours"),
        CheckConstraint("max_booking_days >= 0", name="check_max_booking_days"),
    )

    # Relationships
    weekly_hours = relationship(
        "BusinessWeeklyHours", back_populates="business", cascade="all, delete-orphan"
    )
    special_dates = relationship(
        "BusinessSpecialDate", back_populates="business", cascade="all, delete-orphan"
    )
    employees = relationship("Employee", back_populates="business")
    services = relationship("Service", back_populates="business")

    def __repr__(self):
        return (
            f"<Business(id={self.id}, name='{self.name}', "
            f"min_booking_hours={self.min_booking_hours}, "
            f"max_booking_days={self.max_booking_days})>"
        )
