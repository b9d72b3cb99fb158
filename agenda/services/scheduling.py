from datetime import date as date_type, datetime, timedelta
from typing import List, Optional, Sequence

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agenda.core.config import settings
from agenda.models.appointment import ACTIVE_STATUSES, Appointment
from agenda.models.business import Business
from agenda.models.employee import Employee
from agenda.models.employee_service import EmployeeService
from agenda.models.service import Service
from agenda.schemas.scheduling import (
    AvailabilityQuery,
    AvailabilityResult,
    AvailabilityStatus,
    BlockKind,
    BookableDate,
    BookingBounds,
    OperatingWindow,
    TimeInterval,
    UnavailableReason,
)
from agenda.services.calendar_policy import CalendarPolicyResolver
from agenda.services.employee_availability import EmployeeAvailabilityResolver
from agenda.services.exceptions import (
    InvalidDuration,
    NotFoundError,
    PolicyViolation,
    ViolationReason,
)
from agenda.services.slots import (
    BookingWindowPolicy,
    aggregate_services,
    filter_slots,
    find_conflicts,
    generate_slots,
    intersect_windows,
)

logger = structlog.get_logger(__name__)


class SchedulingEngineService:
    """Availability pipeline shared by booking, client reschedule and the staff calendar.

    Every call takes ``now`` explicitly; nothing here reads the clock.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.calendar_policy = CalendarPolicyResolver(db)
        self.employee_availability = EmployeeAvailabilityResolver(db)

    async def get_booking_window(self, business_id: int, now: datetime) -> BookingBounds:
        """Earliest bookable instant and last bookable date for a business."""
        business = await self.get_business(business_id)
        return BookingWindowPolicy.for_business(business).bounds(now)

    async def get_operating_hours(
        self, business_id: int, target_date: date_type
    ) -> OperatingWindow:
        await self.get_business(business_id)
        return await self.calendar_policy.resolve(business_id, target_date)

    async def get_available_slots(
        self, query: AvailabilityQuery, now: datetime
    ) -> AvailabilityResult:
        """Bookable slots for an employee, a date and a set of services."""
        business = await self.get_business(query.business_id)
        employee = await self.get_employee(query.employee_id, business.id)
        services = await self.get_services(business.id, query.service_ids)
        await self.check_services_offered(employee.id, query.service_ids)
        block = aggregate_services(services)

        result = await self.compute_availability(
            business,
            employee,
            query.date,
            block.duration_minutes,
            now,
            client_id=query.client_id,
            exclude_appointment_id=query.exclude_appointment_id,
            prevent_client_overlap=query.prevent_client_overlap,
        )
        result.total_price = block.total_price
        return result

    async def get_reschedule_slots(
        self,
        appointment_id: int,
        target_date: date_type,
        now: datetime,
        employee_id: Optional[int] = None,
    ) -> AvailabilityResult:
        """Slots an existing appointment could move to, ignoring itself."""
        appointment = await self.get_appointment(appointment_id)
        if appointment.is_terminal:
            raise PolicyViolation(
                ViolationReason.NOT_RESCHEDULABLE,
                f"A {appointment.status} appointment cannot be rescheduled",
            )
        block_minutes = appointment.block_minutes
        if block_minutes <= 0:
            raise InvalidDuration(
                f"Appointment {appointment_id} has no service duration"
            )

        business = await self.get_business(appointment.business_id)
        employee = await self.get_employee(
            employee_id or appointment.employee_id, business.id
        )
        if employee.id != appointment.employee_id:
            await self.check_services_offered(employee.id, appointment.service_ids)
        return await self.compute_availability(
            business,
            employee,
            target_date,
            block_minutes,
            now,
            client_id=appointment.client_id,
            exclude_appointment_id=appointment.id,
        )

    async def get_bookable_dates(
        self,
        business_id: int,
        employee_id: int,
        service_ids: Sequence[int],
        start_date: date_type,
        end_date: date_type,
        now: datetime,
        client_id: Optional[int] = None,
    ) -> List[BookableDate]:
        """Availability status per date, clipped to the booking window."""
        business = await self.get_business(business_id)
        employee = await self.get_employee(employee_id, business.id)
        services = await self.get_services(business.id, service_ids)
        await self.check_services_offered(employee.id, service_ids)
        block = aggregate_services(services)

        bounds = BookingWindowPolicy.for_business(business).bounds(now)
        first = max(start_date, bounds.today, bounds.earliest_bookable.date())
        last = min(end_date, bounds.latest_bookable_date)

        logger.info(
            "Computing bookable dates",
            business_id=business_id,
            employee_id=employee_id,
            start_date=str(first),
            end_date=str(last),
        )

        dates = []
        current = first
        while current <= last:
            result = await self.compute_availability(
                business,
                employee,
                current,
                block.duration_minutes,
                now,
                client_id=client_id,
            )
            dates.append(
                BookableDate(
                    date=current, status=result.status, slot_count=len(result.slots)
                )
            )
            current += timedelta(days=1)
        return dates

    async def compute_availability(
        self,
        business: Business,
        employee: Employee,
        target_date: date_type,
        block_minutes: int,
        now: datetime,
        client_id: Optional[int] = None,
        exclude_appointment_id: Optional[int] = None,
        prevent_client_overlap: Optional[bool] = None,
    ) -> AvailabilityResult:
        """Run the pipeline for one date once the block length is known."""
        result = AvailabilityResult(
            date=target_date,
            status=AvailabilityStatus.AVAILABLE,
            duration_minutes=block_minutes,
        )

        policy = BookingWindowPolicy.for_business(business)
        if not policy.is_date_selectable(target_date, now):
            result.status = AvailabilityStatus.OUTSIDE_BOOKING_WINDOW
            return result

        operating = await self.calendar_policy.resolve(business.id, target_date)
        result.window = operating
        if operating.closed:
            result.status = AvailabilityStatus.BUSINESS_CLOSED
            return result

        if not employee.is_active:
            result.status = AvailabilityStatus.EMPLOYEE_UNAVAILABLE
            return result

        employee_window = await self.employee_availability.resolve(
            employee.id, target_date
        )
        if employee_window.unavailable:
            if employee_window.reason == UnavailableReason.NO_SCHEDULE:
                result.status = AvailabilityStatus.NO_SCHEDULE
            else:
                result.status = AvailabilityStatus.EMPLOYEE_UNAVAILABLE
            return result

        shared = intersect_windows(operating, employee_window)
        if shared is None:
            result.status = AvailabilityStatus.NO_SCHEDULE
            return result
        window_start, window_end = shared

        candidates = generate_slots(
            target_date,
            window_start,
            window_end,
            settings.SLOT_STEP_MINUTES,
            block_minutes,
        )
        blocking = await self.collect_blocking(
            employee.id,
            target_date,
            cutouts=employee_window.cutouts,
            client_id=client_id,
            exclude_appointment_id=exclude_appointment_id,
            prevent_client_overlap=prevent_client_overlap,
        )
        bounds = policy.bounds(now)
        result.slots = filter_slots(
            candidates, blocking, now, bounds.earliest_bookable
        )
        if not result.slots:
            result.status = AvailabilityStatus.FULLY_BOOKED

        logger.info(
            "Computed availability",
            business_id=business.id,
            employee_id=employee.id,
            date=str(target_date),
            status=result.status.value,
            candidates=len(candidates),
            slots=len(result.slots),
        )
        return result

    async def check_placement(
        self,
        business_id: int,
        employee: Employee,
        start: datetime,
        end: datetime,
    ) -> None:
        """Raise PolicyViolation unless ``[start, end)`` lies in working time."""
        target_date = start.date()
        operating = await self.calendar_policy.resolve(business_id, target_date)
        if operating.closed:
            raise PolicyViolation(
                ViolationReason.BUSINESS_CLOSED,
                f"The business is closed on {target_date}",
            )

        if not employee.is_active:
            raise PolicyViolation(
                ViolationReason.EMPLOYEE_UNAVAILABLE,
                "The selected employee is not available",
            )
        employee_window = await self.employee_availability.resolve(
            employee.id, target_date
        )
        if employee_window.unavailable:
            raise PolicyViolation(
                ViolationReason.EMPLOYEE_UNAVAILABLE,
                f"The selected employee is not available on {target_date}",
            )

        shared = intersect_windows(operating, employee_window)
        if (
            shared is None
            or start.time() < shared[0]
            or end.date() != target_date
            or end.time() > shared[1]
        ):
            raise PolicyViolation(
                ViolationReason.OUTSIDE_WORKING_HOURS,
                "The selected time is outside working hours",
            )

        if find_conflicts(start, end, employee_window.cutouts):
            raise PolicyViolation(
                ViolationReason.EMPLOYEE_UNAVAILABLE,
                "The selected employee is absent at that time",
            )

    async def collect_blocking(
        self,
        employee_id: int,
        target_date: date_type,
        cutouts: Sequence[TimeInterval] = (),
        client_id: Optional[int] = None,
        exclude_appointment_id: Optional[int] = None,
        prevent_client_overlap: Optional[bool] = None,
    ) -> List[TimeInterval]:
        blocking = list(
            await self.load_employee_intervals(
                employee_id, target_date, exclude_appointment_id
            )
        )
        if self.client_overlap_enabled(client_id, prevent_client_overlap):
            blocking += await self.load_client_intervals(
                client_id, target_date, exclude_appointment_id
            )
        blocking += list(cutouts)
        return blocking

    @staticmethod
    def client_overlap_enabled(
        client_id: Optional[int], prevent_client_overlap: Optional[bool] = None
    ) -> bool:
        if client_id is None:
            return False
        if prevent_client_overlap is None:
            return settings.PREVENT_CLIENT_SELF_OVERLAP
        return prevent_client_overlap

    async def load_employee_intervals(
        self,
        employee_id: int,
        target_date: date_type,
        exclude_appointment_id: Optional[int] = None,
    ) -> List[TimeInterval]:
        """Active appointments of an employee on a date, as blocking intervals."""
        conditions = [
            Appointment.employee_id == employee_id,
            Appointment.appointment_date == target_date,
            Appointment.status.in_([s.value for s in ACTIVE_STATUSES]),
        ]
        if exclude_appointment_id is not None:
            conditions.append(Appointment.id != exclude_appointment_id)
        return await self._load_intervals(conditions, BlockKind.APPOINTMENT)

    async def load_client_intervals(
        self,
        client_id: int,
        target_date: date_type,
        exclude_appointment_id: Optional[int] = None,
    ) -> List[TimeInterval]:
        """Active appointments of a client with any employee on a date."""
        conditions = [
            Appointment.client_id == client_id,
            Appointment.appointment_date == target_date,
            Appointment.status.in_([s.value for s in ACTIVE_STATUSES]),
        ]
        if exclude_appointment_id is not None:
            conditions.append(Appointment.id != exclude_appointment_id)
        return await self._load_intervals(conditions, BlockKind.CLIENT_APPOINTMENT)

    async def _load_intervals(self, conditions, kind: BlockKind) -> List[TimeInterval]:
        result = await self.db.execute(
            select(
                Appointment.id,
                Appointment.appointment_date,
                Appointment.start_time,
                Appointment.end_time,
            )
            .where(and_(*conditions))
            .order_by(Appointment.start_time)
        )
        return [
            TimeInterval(
                start=datetime.combine(row.appointment_date, row.start_time),
                end=datetime.combine(row.appointment_date, row.end_time),
                kind=kind,
                appointment_id=row.id,
            )
            for row in result.all()
        ]

    async def get_business(self, business_id: int) -> Business:
        result = await self.db.execute(
            select(Business).where(Business.id == business_id)
        )
        business = result.scalar_one_or_none()
        if not business or not business.is_active:
            logger.warning("Business not found", business_id=business_id)
            raise NotFoundError("Business", business_id)
        return business

    async def get_employee(
        self, employee_id: int, business_id: Optional[int] = None
    ) -> Employee:
        conditions = [Employee.id == employee_id]
        if business_id is not None:
            conditions.append(Employee.business_id == business_id)
        result = await self.db.execute(select(Employee).where(and_(*conditions)))
        employee = result.scalar_one_or_none()
        if not employee:
            logger.warning(
                "Employee not found", employee_id=employee_id, business_id=business_id
            )
            raise NotFoundError("Employee", employee_id)
        return employee

    async def get_services(
        self, business_id: int, service_ids: Sequence[int]
    ) -> List[Service]:
        """Active services of a business in the requested order, each once."""
        service_ids = list(dict.fromkeys(service_ids))
        result = await self.db.execute(
            select(Service).where(
                and_(
                    Service.business_id == business_id,
                    Service.id.in_(set(service_ids)),
                    Service.is_active.is_(True),
                )
            )
        )
        by_id = {service.id: service for service in result.scalars().all()}
        missing = [service_id for service_id in service_ids if service_id not in by_id]
        if missing:
            logger.warning(
                "Services not found", business_id=business_id, service_ids=missing
            )
            raise NotFoundError("Service", missing[0])
        return [by_id[service_id] for service_id in service_ids]

    async def check_services_offered(
        self, employee_id: int, service_ids: Sequence[int]
    ) -> None:
        """Raise PolicyViolation unless the employee performs every service."""
        result = await self.db.execute(
            select(EmployeeService.service_id).where(
                and_(
                    EmployeeService.employee_id == employee_id,
                    EmployeeService.service_id.in_(set(service_ids)),
                    EmployeeService.is_available.is_(True),
                )
            )
        )
        offered = set(result.scalars().all())
        missing = [service_id for service_id in service_ids if service_id not in offered]
        if missing:
            logger.info(
                "Services not offered by employee",
                employee_id=employee_id,
                service_ids=missing,
            )
            raise PolicyViolation(
                ViolationReason.SERVICE_NOT_OFFERED,
                f"The selected employee does not offer service {missing[0]}",
            )

    async def get_appointment(self, appointment_id: int) -> Appointment:
        result = await self.db.execute(
            select(Appointment)
            .options(selectinload(Appointment.service_lines))
            .where(Appointment.id == appointment_id)
        )
        appointment = result.scalar_one_or_none()
        if not appointment:
            logger.warning("Appointment not found", appointment_id=appointment_id)
            raise NotFoundError("Appointment", appointment_id)
        return appointment
