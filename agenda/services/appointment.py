from datetime import date as date_type, datetime, time, timedelta
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.core.config import settings
from agenda.models.appointment import (
    Appointment,
    AppointmentServiceLine,
    AppointmentStatus,
)
from agenda.models.employee import Employee
from agenda.schemas.appointment import AppointmentCreate, AppointmentReschedule
from agenda.schemas.scheduling import BlockKind, RescheduleSource, UnavailableReason
from agenda.services.exceptions import (
    ConcurrentConflict,
    InvalidDuration,
    NotFoundError,
    PolicyViolation,
    ViolationReason,
)
from agenda.services.scheduling import SchedulingEngineService
from agenda.services.slots import (
    BookingWindowPolicy,
    aggregate_services,
    find_conflicts,
    snap_to_increment,
)

logger = structlog.get_logger(__name__)


class AppointmentService:
    """Appointment booking, rescheduling and status management.

    Writes re-validate inside the transaction that persists them, after
    locking the target employee row.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.scheduling_engine = SchedulingEngineService(db)

    async def get_appointment(self, appointment_id: int) -> Appointment:
        return await self.scheduling_engine.get_appointment(appointment_id)

    async def book_appointment(
        self, appointment_data: AppointmentCreate, now: datetime
    ) -> Appointment:
        """Create a pending appointment after the full availability check."""
        engine = self.scheduling_engine

        business = await engine.get_business(appointment_data.business_id)
        employee = await engine.get_employee(appointment_data.employee_id, business.id)
        services = await engine.get_services(business.id, appointment_data.service_ids)
        await engine.check_services_offered(employee.id, appointment_data.service_ids)
        block = aggregate_services(services)

        start = datetime.combine(
            appointment_data.appointment_date, appointment_data.start_time
        )
        end = self._block_end(start, block.duration_minutes)

        BookingWindowPolicy.for_business(business).check_start(start, now)
        await engine.check_placement(business.id, employee, start, end)

        await self._lock_employee(employee.id)
        await self._check_overlaps(
            employee.id,
            start,
            end,
            client_id=appointment_data.client_id,
            prevent_client_overlap=appointment_data.prevent_client_overlap,
        )

        appointment = Appointment(
            business_id=business.id,
            employee_id=employee.id,
            client_id=appointment_data.client_id,
            walk_in_name=appointment_data.walk_in_name,
            walk_in_phone=appointment_data.walk_in_phone,
            appointment_date=start.date(),
            start_time=start.time(),
            end_time=end.time(),
            status=AppointmentStatus.PENDING.value,
            total_price=block.total_price,
            notes=appointment_data.notes,
        )
        appointment.service_lines = [
            AppointmentServiceLine(
                service_id=service.id,
                price=service.price,
                duration_minutes=service.duration_minutes,
            )
            for service in services
        ]
        self.db.add(appointment)
        await self._commit("book", employee_id=employee.id)
        await self.db.refresh(appointment)

        logger.info(
            "Appointment booked",
            appointment_id=appointment.id,
            business_id=business.id,
            employee_id=employee.id,
            date=str(appointment.appointment_date),
            start_time=str(appointment.start_time),
            duration_minutes=block.duration_minutes,
        )
        return appointment

    async def reschedule_appointment(
        self,
        appointment_id: int,
        reschedule_data: AppointmentReschedule,
        now: datetime,
    ) -> Appointment:
        """Move an appointment keeping its duration; status is left untouched."""
        engine = self.scheduling_engine
        appointment = await engine.get_appointment(appointment_id)

        block_minutes = appointment.block_minutes
        if block_minutes <= 0:
            raise InvalidDuration(
                f"Appointment {appointment_id} has no service duration"
            )

        new_start = datetime.combine(
            reschedule_data.appointment_date, reschedule_data.start_time
        )
        new_end = self._block_end(new_start, block_minutes)

        if appointment.is_terminal:
            raise PolicyViolation(
                ViolationReason.NOT_RESCHEDULABLE,
                f"A {appointment.status} appointment cannot be rescheduled",
            )

        employee_id = reschedule_data.employee_id or appointment.employee_id
        employee = await engine.get_employee(employee_id, appointment.business_id)
        if employee.id != appointment.employee_id:
            await engine.check_services_offered(employee.id, appointment.service_ids)

        is_client = reschedule_data.source == RescheduleSource.CLIENT
        if is_client:
            await self._check_client_reschedule(
                appointment, reschedule_data, employee, new_start, new_end, now
            )
        elif new_start <= now:
            raise PolicyViolation(
                ViolationReason.IN_PAST, "The selected time is in the past"
            )

        await self._lock_employee(employee.id)
        await self._check_overlaps(
            employee.id,
            new_start,
            new_end,
            client_id=appointment.client_id if is_client else None,
            exclude_appointment_id=appointment.id,
        )

        previous = (
            appointment.employee_id,
            appointment.appointment_date,
            appointment.start_time,
        )
        appointment.employee_id = employee.id
        appointment.appointment_date = new_start.date()
        appointment.start_time = new_start.time()
        appointment.end_time = new_end.time()
        await self._commit("reschedule", employee_id=employee.id)
        await self.db.refresh(appointment)

        logger.info(
            "Appointment rescheduled",
            appointment_id=appointment.id,
            source=reschedule_data.source.value,
            from_employee_id=previous[0],
            from_date=str(previous[1]),
            from_start_time=str(previous[2]),
            employee_id=appointment.employee_id,
            date=str(appointment.appointment_date),
            start_time=str(appointment.start_time),
        )
        return appointment

    async def move_appointment_on_calendar(
        self,
        appointment_id: int,
        target_date: date_type,
        dropped_time: time,
        now: datetime,
        employee_id: Optional[int] = None,
    ) -> Appointment:
        """Calendar drag-and-drop: snap the drop time, then reschedule with validation."""
        snapped = snap_to_increment(dropped_time, settings.CALENDAR_SNAP_MINUTES)
        logger.debug(
            "Snapped calendar drop",
            appointment_id=appointment_id,
            dropped_time=str(dropped_time),
            snapped_time=str(snapped),
        )
        return await self.reschedule_appointment(
            appointment_id,
            AppointmentReschedule(
                employee_id=employee_id,
                appointment_date=target_date,
                start_time=snapped,
                source=RescheduleSource.CALENDAR_DRAG,
            ),
            now,
        )

    async def transition_status(
        self, appointment_id: int, new_status: AppointmentStatus
    ) -> Appointment:
        appointment = await self.scheduling_engine.get_appointment(appointment_id)
        old_status = appointment.status
        if not appointment.transition_to(new_status):
            raise PolicyViolation(
                ViolationReason.INVALID_TRANSITION,
                f"Cannot change status from {old_status} to {new_status.value}",
            )
        await self._commit("transition", appointment_id=appointment_id)
        await self.db.refresh(appointment)

        logger.info(
            "Appointment status changed",
            appointment_id=appointment_id,
            from_status=old_status,
            to_status=new_status.value,
        )
        return appointment

    async def _check_client_reschedule(
        self,
        appointment: Appointment,
        reschedule_data: AppointmentReschedule,
        employee: Employee,
        new_start: datetime,
        new_end: datetime,
        now: datetime,
    ) -> None:
        business = await self.scheduling_engine.get_business(appointment.business_id)
        if not business.allow_client_reschedule:
            raise PolicyViolation(
                ViolationReason.RESCHEDULE_NOT_ALLOWED,
                "This business does not allow clients to reschedule online",
            )
        if (
            reschedule_data.client_id is None
            or reschedule_data.client_id != appointment.client_id
        ):
            raise PolicyViolation(
                ViolationReason.RESCHEDULE_NOT_ALLOWED,
                "The appointment does not belong to this client",
            )
        BookingWindowPolicy.for_business(business).check_start(new_start, now)
        await self.scheduling_engine.check_placement(
            business.id, employee, new_start, new_end
        )

    async def _check_overlaps(
        self,
        employee_id: int,
        start: datetime,
        end: datetime,
        client_id: Optional[int] = None,
        exclude_appointment_id: Optional[int] = None,
        prevent_client_overlap: Optional[bool] = None,
    ) -> None:
        engine = self.scheduling_engine
        # Absences bind every source, even moves that may leave working hours
        employee_window = await engine.employee_availability.resolve(
            employee_id, start.date()
        )
        if (
            employee_window.unavailable
            and employee_window.reason == UnavailableReason.ABSENT
        ):
            raise PolicyViolation(
                ViolationReason.EMPLOYEE_UNAVAILABLE,
                f"The selected employee is absent on {start.date()}",
            )

        blocking = await engine.collect_blocking(
            employee_id,
            start.date(),
            cutouts=employee_window.cutouts,
            client_id=client_id,
            exclude_appointment_id=exclude_appointment_id,
            prevent_client_overlap=prevent_client_overlap,
        )

        conflicts = find_conflicts(start, end, blocking)
        if not conflicts:
            return

        conflict = conflicts[0]
        logger.info(
            "Scheduling conflict",
            employee_id=employee_id,
            start=start.isoformat(),
            end=end.isoformat(),
            conflicting_appointment_id=conflict.appointment_id,
            kind=conflict.kind.value,
        )
        if conflict.kind == BlockKind.CUTOUT:
            raise PolicyViolation(
                ViolationReason.EMPLOYEE_UNAVAILABLE,
                "The selected employee is absent at that time",
            )
        if conflict.kind == BlockKind.CLIENT_APPOINTMENT:
            raise PolicyViolation(
                ViolationReason.CLIENT_CONFLICT,
                "The client already has an appointment at this time",
                conflicting_appointment_id=conflict.appointment_id,
            )
        raise PolicyViolation(
            ViolationReason.CONFLICT,
            "The employee already has an appointment at this time",
            conflicting_appointment_id=conflict.appointment_id,
        )

    async def _lock_employee(self, employee_id: int) -> Employee:
        """Serialize writers per employee for the rest of the transaction."""
        result = await self.db.execute(
            select(Employee).where(Employee.id == employee_id).with_for_update()
        )
        employee = result.scalar_one_or_none()
        if not employee:
            raise NotFoundError("Employee", employee_id)
        return employee

    async def _commit(self, operation: str, **context) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                "Concurrent write rejected", operation=operation, error=str(e), **context
            )
            raise ConcurrentConflict(
                "The schedule changed while saving; please try again", cause=e
            )

    @staticmethod
    def _block_end(start: datetime, block_minutes: int) -> datetime:
        end = start + timedelta(minutes=block_minutes)
        if end.date() != start.date():
            raise PolicyViolation(
                ViolationReason.OUTSIDE_WORKING_HOURS,
                "The appointment would end after midnight",
            )
        return end
