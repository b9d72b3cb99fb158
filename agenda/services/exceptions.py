import enum
from typing import Optional


class ViolationReason(str, enum.Enum):
    IN_PAST = "in_past"
    LEAD_TIME = "lead_time"
    HORIZON = "horizon"
    BUSINESS_CLOSED = "business_closed"
    EMPLOYEE_UNAVAILABLE = "employee_unavailable"
    OUTSIDE_WORKING_HOURS = "outside_working_hours"
    CONFLICT = "conflict"
    CLIENT_CONFLICT = "client_conflict"
    NOT_RESCHEDULABLE = "not_reschedulable"
    RESCHEDULE_NOT_ALLOWED = "reschedule_not_allowed"
    INVALID_TRANSITION = "invalid_transition"
    SERVICE_NOT_OFFERED = "service_not_offered"


class SchedulingError(Exception):
    """Base exception for scheduling engine failures."""

    def __init__(self, message: str, *, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class PolicyLookupFailure(SchedulingError):
    """Raised when business hours or an employee schedule cannot be read.

    Resolvers absorb it and fall through to the next tier; it never reaches
    API callers.
    """

    def __init__(self, tier: str, *, cause: Optional[Exception] = None):
        super().__init__(f"Failed to read {tier}", cause=cause)
        self.tier = tier


class InvalidDuration(SchedulingError, ValueError):
    """Raised when the aggregate service duration is missing or not positive."""


class InvalidBookingPolicy(SchedulingError, ValueError):
    """Raised when a business has a stored lead time or horizon that makes no sense."""

    def __init__(self, errors, *, cause: Optional[Exception] = None):
        super().__init__(
            f"Invalid booking policy: {'; '.join(errors)}", cause=cause
        )
        self.errors = errors


class PolicyViolation(SchedulingError, ValueError):
    """Raised when a booking or reschedule breaks a scheduling rule."""

    def __init__(
        self,
        reason: ViolationReason,
        message: str,
        *,
        conflicting_appointment_id: Optional[int] = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.conflicting_appointment_id = conflicting_appointment_id

    def to_detail(self) -> dict:
        detail = {"reason": self.reason.value, "message": self.message}
        if self.conflicting_appointment_id is not None:
            detail["conflicting_appointment_id"] = self.conflicting_appointment_id
        return detail


class ConcurrentConflict(SchedulingError):
    """Raised when a concurrent write invalidated the availability check."""

    retryable = True


class NotFoundError(SchedulingError, LookupError):
    """Raised when a referenced business, employee, service or appointment is missing."""

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id
