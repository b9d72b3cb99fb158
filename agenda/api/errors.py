import structlog
from fastapi import HTTPException, status

from agenda.services.exceptions import (
    ConcurrentConflict,
    InvalidBookingPolicy,
    InvalidDuration,
    NotFoundError,
    PolicyViolation,
    SchedulingError,
)

logger = structlog.get_logger(__name__)


def storage_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Scheduling data is temporarily unavailable",
    )


def to_http_exception(error: SchedulingError) -> HTTPException:
    """Map a scheduling error to the HTTP error callers receive."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    if isinstance(error, InvalidDuration):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=error.message
        )
    if isinstance(error, InvalidBookingPolicy):
        logger.error("Stored booking policy is invalid", errors=error.errors)
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=error.message
        )
    if isinstance(error, PolicyViolation):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=error.to_detail()
        )
    if isinstance(error, ConcurrentConflict):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": error.message, "retryable": error.retryable},
        )
    logger.error("Unmapped scheduling error", error=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)
