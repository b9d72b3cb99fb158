from datetime import date
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.api.deps.business import (
    BusinessContext,
    get_business_context,
    load_business_context,
)
from agenda.api.deps.clock import Clock, get_clock
from agenda.api.deps.database import get_db
from agenda.api.errors import storage_unavailable, to_http_exception
from agenda.schemas.scheduling import (
    AvailabilityQuery,
    AvailabilityResponse,
    BookableDatesQuery,
    BookableDatesResponse,
    BookingWindowResponse,
    OperatingHoursResponse,
    RescheduleSlotsResponse,
    SlotResponse,
)
from agenda.services.exceptions import SchedulingError
from agenda.services.scheduling import SchedulingEngineService
from agenda.services.slots import BookingWindowPolicy

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/businesses/{business_id}/booking-window", response_model=BookingWindowResponse
)
async def get_booking_window(
    context: BusinessContext = Depends(get_business_context),
) -> BookingWindowResponse:
    """Date bounds for the booking date picker."""
    business = context.business
    try:
        bounds = BookingWindowPolicy.for_business(business).bounds(context.now)
    except SchedulingError as e:
        raise to_http_exception(e)
    return BookingWindowResponse(
        business_id=business.id,
        min_booking_hours=business.min_booking_hours,
        max_booking_days=business.max_booking_days,
        earliest_bookable=bounds.earliest_bookable,
        latest_bookable_date=bounds.latest_bookable_date,
        today=bounds.today,
    )


@router.get("/businesses/{business_id}/hours", response_model=OperatingHoursResponse)
async def get_operating_hours(
    business_id: int,
    target_date: date = Query(..., alias="date", description="Calendar date"),
    db: AsyncSession = Depends(get_db),
) -> OperatingHoursResponse:
    """Operating window of a business for one date."""
    try:
        window = await SchedulingEngineService(db).get_operating_hours(
            business_id, target_date
        )
    except SchedulingError as e:
        raise to_http_exception(e)
    except SQLAlchemyError as e:
        logger.error(
            "Failed to read operating hours",
            business_id=business_id,
            date=str(target_date),
            error=str(e),
        )
        raise storage_unavailable()

    return OperatingHoursResponse(
        business_id=business_id,
        date=target_date,
        closed=window.closed,
        open_time=window.open_time,
        close_time=window.close_time,
        source=window.source,
    )


@router.post("/availability", response_model=AvailabilityResponse)
async def get_availability(
    query: AvailabilityQuery,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> AvailabilityResponse:
    """
    Bookable time slots for an employee, a date and a set of services.

    An empty slot list is not an error: ``status`` tells why nothing is
    offered (closed, unavailable, fully booked, outside the booking window).
    """
    try:
        context = await load_business_context(db, query.business_id, clock)
        result = await SchedulingEngineService(db).get_available_slots(
            query, context.now
        )
    except SchedulingError as e:
        raise to_http_exception(e)
    except SQLAlchemyError as e:
        logger.error(
            "Failed to read appointments for availability",
            business_id=query.business_id,
            employee_id=query.employee_id,
            error=str(e),
        )
        raise storage_unavailable()

    return AvailabilityResponse.from_result(result)


@router.post("/availability/dates", response_model=BookableDatesResponse)
async def get_bookable_dates(
    query: BookableDatesQuery,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> BookableDatesResponse:
    """Availability status per date for the booking date picker."""
    try:
        context = await load_business_context(db, query.business_id, clock)
        dates = await SchedulingEngineService(db).get_bookable_dates(
            query.business_id,
            query.employee_id,
            query.service_ids,
            query.start_date,
            query.end_date,
            context.now,
            client_id=query.client_id,
        )
    except SchedulingError as e:
        raise to_http_exception(e)
    except SQLAlchemyError as e:
        logger.error(
            "Failed to read appointments for bookable dates",
            business_id=query.business_id,
            employee_id=query.employee_id,
            error=str(e),
        )
        raise storage_unavailable()

    return BookableDatesResponse(
        business_id=query.business_id, employee_id=query.employee_id, dates=dates
    )


@router.get(
    "/appointments/{appointment_id}/reschedule-slots",
    response_model=RescheduleSlotsResponse,
)
async def get_reschedule_slots(
    appointment_id: int,
    target_date: date = Query(..., alias="date", description="Target date"),
    employee_id: Optional[int] = Query(
        None, description="Employee to move to; defaults to the current one"
    ),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> RescheduleSlotsResponse:
    """Slots an existing appointment can be moved to on a date."""
    engine = SchedulingEngineService(db)
    try:
        appointment = await engine.get_appointment(appointment_id)
        context = await load_business_context(db, appointment.business_id, clock)
        result = await engine.get_reschedule_slots(
            appointment_id, target_date, context.now, employee_id=employee_id
        )
    except SchedulingError as e:
        raise to_http_exception(e)
    except SQLAlchemyError as e:
        logger.error(
            "Failed to read appointments for reschedule slots",
            appointment_id=appointment_id,
            error=str(e),
        )
        raise storage_unavailable()

    return RescheduleSlotsResponse(
        appointment_id=appointment_id,
        employee_id=employee_id or appointment.employee_id,
        date=target_date,
        status=result.status,
        duration_minutes=result.duration_minutes,
        slots=[SlotResponse.from_slot(slot) for slot in result.slots],
    )
