import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.api.deps.business import load_business_context
from agenda.api.deps.clock import Clock, get_clock
from agenda.api.deps.database import get_db
from agenda.api.errors import storage_unavailable, to_http_exception
from agenda.schemas.appointment import (
    Appointment,
    AppointmentCreate,
    AppointmentMove,
    AppointmentReschedule,
    AppointmentStatusTransition,
)
from agenda.services.appointment import AppointmentService
from agenda.services.exceptions import SchedulingError

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/", response_model=Appointment, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    appointment_data: AppointmentCreate,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Book an appointment after re-validating the chosen slot."""
    service = AppointmentService(db)
    try:
        context = await load_business_context(db, appointment_data.business_id, clock)
        return await service.book_appointment(appointment_data, context.now)
    except SchedulingError as e:
        raise to_http_exception(e)
    except SQLAlchemyError as e:
        logger.error(
            "Failed to book appointment",
            business_id=appointment_data.business_id,
            employee_id=appointment_data.employee_id,
            error=str(e),
        )
        raise storage_unavailable()


@router.post("/{appointment_id}/reschedule", response_model=Appointment)
async def reschedule_appointment(
    appointment_id: int,
    reschedule_data: AppointmentReschedule,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Move an appointment to a new employee, date or start time."""
    service = AppointmentService(db)
    try:
        appointment = await service.get_appointment(appointment_id)
        context = await load_business_context(db, appointment.business_id, clock)
        return await service.reschedule_appointment(
            appointment_id, reschedule_data, context.now
        )
    except SchedulingError as e:
        raise to_http_exception(e)
    except SQLAlchemyError as e:
        logger.error(
            "Failed to reschedule appointment",
            appointment_id=appointment_id,
            error=str(e),
        )
        raise storage_unavailable()


@router.post("/{appointment_id}/move", response_model=Appointment)
async def move_appointment(
    appointment_id: int,
    move_data: AppointmentMove,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Calendar drag-and-drop; validated exactly like a reschedule."""
    service = AppointmentService(db)
    try:
        appointment = await service.get_appointment(appointment_id)
        context = await load_business_context(db, appointment.business_id, clock)
        return await service.move_appointment_on_calendar(
            appointment_id,
            move_data.appointment_date,
            move_data.dropped_time,
            context.now,
            employee_id=move_data.employee_id,
        )
    except SchedulingError as e:
        raise to_http_exception(e)
    except SQLAlchemyError as e:
        logger.error(
            "Failed to move appointment",
            appointment_id=appointment_id,
            error=str(e),
        )
        raise storage_unavailable()


@router.post("/{appointment_id}/status", response_model=Appointment)
async def transition_appointment_status(
    appointment_id: int,
    transition_data: AppointmentStatusTransition,
    db: AsyncSession = Depends(get_db),
):
    """Transition appointment status with validation."""
    service = AppointmentService(db)
    try:
        return await service.transition_status(
            appointment_id, transition_data.new_status
        )
    except SchedulingError as e:
        raise to_http_exception(e)
    except SQLAlchemyError as e:
        logger.error(
            "Failed to change appointment status",
            appointment_id=appointment_id,
            error=str(e),
        )
        raise storage_unavailable()
