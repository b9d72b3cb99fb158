import enum
from datetime import date

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from agenda.core.database import Base


class DayOfWeek(enum.IntEnum):
    """Weekday numbering used by stored schedules (Sunday first)."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def for_date(cls, target_date: date) -> "DayOfWeek":
        # date.weekday() is Monday=0
        return cls((target_date.weekday() + 1) % 7)


class BusinessWeeklyHours(Base):
    """Recurring opening hours for one weekday of a business."""

    __tablename__ = "business_hours"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False)
    day_of_week = Column(Integer, nullable=False)

    is_closed = Column(Boolean, default=False, nullable=False)
    open_time = Column(Time, nullable=True)
    close_time = Column(Time, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    business = relationship("Business", back_populates="weekly_hours")

    __table_args__ = (
        UniqueConstraint("business_id", "day_of_week", name="uq_business_hours_day"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_day_of_week"),
        CheckConstraint(
            "is_closed OR (open_time IS NOT NULL AND close_time IS NOT NULL "
            "AND close_time > open_time)",
            name="check_business_hours_times",
        ),
    )

    def __repr__(self):
        day = DayOfWeek(self.day_of_week).name if self.day_of_week is not None else None
        if self.is_closed:
            return f"<BusinessWeeklyHours(business_id={self.business_id}, {day}: closed)>"
        return (
            f"<BusinessWeeklyHours(business_id={self.business_id}, "
            f"{day}: {self.open_time}-{self.close_time})>"
        )


class BusinessSpecialDate(Base):
    """One-off override of the opening hours for an exact calendar date."""

    __tablename__ = "business_special_hours"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False)
    special_date = Column(Date, nullable=False)

    is_closed = Column(Boolean, default=True, nullable=False)
    open_time = Column(Time, nullable=True)
    close_time = Column(Time, nullable=True)

    reason = Column(String(50), nullable=False, default="other")
    description = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    business = relationship("Business", back_populates="special_dates")

    __table_args__ = (
        UniqueConstraint("business_id", "special_date", name="uq_business_special_date"),
        CheckConstraint(
            "(is_closed AND open_time IS NULL AND close_time IS NULL) OR "
            "(NOT is_closed AND open_time IS NOT NULL AND close_time IS NOT NULL "
            "AND close_time > open_time)",
            name="check_special_hours_times",
        ),
    )

    def __repr__(self):
        hours = "closed" if self.is_closed else f"{self.open_time}-{self.close_time}"
        return (
            f"<BusinessSpecialDate(business_id={self.business_id}, "
            f"{self.special_date}: {hours}, reason={self.reason})>"
        )
