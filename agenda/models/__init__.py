# Import all models to ensure they are registered with SQLAlchemy
from . import (
    appointment,
    business,
    business_hours,
    employee,
    employee_service,
    service,
)

__all__ = [
    "appointment",
    "business",
    "business_hours",
    "employee",
    "employee_service",
    "service",
]
