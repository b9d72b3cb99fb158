from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from agenda.core.database import Base
import uuid


class EmployeeService(Base):
    """Services an employee can perform."""

    __tablename__ = "employee_services"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        UUID(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True
    )
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)

    # Cleared to take the service off an employee without losing the row
    is_available = Column(Boolean, default=True, nullable=False)
    notes = Column(Text, nullable=True)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("employee_id", "service_id", name="uq_employee_service"),
    )

    # Relationships
    employee = relationship("Employee", back_populates="employee_services")
    service = relationship("Service", back_populates="employee_services")

    def __repr__(self):
        return (
            f"<EmployeeService(id={self.id}, employee_id={self.employee_id}, "
            f"service_id={self.service_id}, available={self.is_available})>"
        )
