from typing import Dict, Any, List


def _is_non_negative_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def validate_booking_policy(policy: Dict[str, Any]) -> List[str]:
    """Validate business booking window configuration."""
    errors = []

    if not policy:
        return errors

    if 'min_booking_hours' in policy and not _is_non_negative_int(policy['min_booking_hours']):
        errors.append("min_booking_hours must be a non-negative integer")

    if 'max_booking_days' in policy and not _is_non_negative_int(policy['max_booking_days']):
        errors.append("max_booking_days must be a non-negative integer")

    return errors


def validate_step_minutes(value: Any, name: str = "step_minutes") -> List[str]:
    """Validate a slot step or snap increment in minutes."""
    errors = []
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        errors.append(f"{name} must be a positive integer")
    elif 1440 % value != 0:
        errors.append(f"{name} must divide a day evenly")
    return errors


class BookingPolicyValidationError(ValueError):
    """Custom exception for booking policy validation errors."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(f"Booking policy validation failed: {'; '.join(errors)}")


def validate_and_raise(policy: Dict[str, Any]) -> None:
    """Validate booking policy and raise exception if errors found."""
    errors = validate_booking_policy(policy)
    if errors:
        raise BookingPolicyValidationError(errors)


def validate_service_ids(service_ids: List[int]) -> List[str]:
    """Validate a service selection: an ordered set of service ids."""
    errors = []
    seen = set()
    duplicates = []
    for service_id in service_ids:
        if service_id in seen and service_id not in duplicates:
            duplicates.append(service_id)
        seen.add(service_id)
    if duplicates:
        errors.append(
            f"service_ids must not repeat a service: {', '.join(map(str, duplicates))}"
        )
    return errors
