from datetime import date, datetime
from typing import List, Optional, Sequence

import structlog
from pydantic import ValidationError
from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.models.business_hours import DayOfWeek
from agenda.models.employee import EmployeeAbsence, EmployeeWeeklySchedule
from agenda.schemas.employee import EmployeeAbsenceSchema, EmployeeScheduleSchema
from agenda.schemas.scheduling import (
    BlockKind,
    EmployeeWindow,
    TimeInterval,
    UnavailableReason,
)
from agenda.services.exceptions import PolicyLookupFailure

logger = structlog.get_logger(__name__)


def resolve_employee_window(
    schedule: Optional[EmployeeScheduleSchema],
    absences: Sequence[EmployeeAbsenceSchema],
    target_date: Optional[date] = None,
) -> EmployeeWindow:
    """Combine a weekly schedule row with the absences of one date."""
    if schedule is None:
        return EmployeeWindow.unavailable_for(UnavailableReason.NO_SCHEDULE)
    if not schedule.is_available:
        return EmployeeWindow.unavailable_for(UnavailableReason.DAY_OFF)
    if any(absence.is_full_day for absence in absences):
        return EmployeeWindow.unavailable_for(UnavailableReason.ABSENT)

    cutouts: List[TimeInterval] = []
    for absence in absences:
        day = target_date or absence.absence_date
        cutouts.append(
            TimeInterval(
                start=datetime.combine(day, absence.start_time),
                end=datetime.combine(day, absence.end_time),
                kind=BlockKind.CUTOUT,
            )
        )
    cutouts.sort(key=lambda interval: interval.start)

    return EmployeeWindow(
        unavailable=False,
        start_time=schedule.start_time,
        end_time=schedule.end_time,
        cutouts=cutouts,
    )


class EmployeeAvailabilityResolver:
    """Resolves an employee's working window and absence cutouts for a date."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, employee_id: int, target_date: date) -> EmployeeWindow:
        try:
            schedule = await self._get_schedule(employee_id, target_date)
            absences = await self._get_absences(employee_id, target_date)
        except PolicyLookupFailure as e:
            # Offer nothing rather than ignore absences we could not read
            logger.warning(
                "Employee schedule lookup failed, treating as unavailable",
                employee_id=employee_id,
                date=str(target_date),
                tier=e.tier,
                error=str(e.cause),
            )
            return EmployeeWindow.unavailable_for(UnavailableReason.NO_SCHEDULE)

        window = resolve_employee_window(schedule, absences, target_date)
        logger.debug(
            "Resolved employee window",
            employee_id=employee_id,
            date=str(target_date),
            unavailable=window.unavailable,
            reason=window.reason.value if window.reason else None,
            cutouts=len(window.cutouts),
        )
        return window

    async def _get_schedule(
        self, employee_id: int, target_date: date
    ) -> Optional[EmployeeScheduleSchema]:
        try:
            async with self.db.begin_nested():
                result = await self.db.execute(
                    select(EmployeeWeeklySchedule).where(
                        and_(
                            EmployeeWeeklySchedule.employee_id == employee_id,
                            EmployeeWeeklySchedule.day_of_week
                            == DayOfWeek.for_date(target_date).value,
                        )
                    )
                )
                row = result.scalars().first()
            return EmployeeScheduleSchema.model_validate(row) if row else None
        except (SQLAlchemyError, ValidationError) as e:
            raise PolicyLookupFailure("employee_schedule", cause=e)

    async def _get_absences(
        self, employee_id: int, target_date: date
    ) -> List[EmployeeAbsenceSchema]:
        try:
            async with self.db.begin_nested():
                result = await self.db.execute(
                    select(EmployeeAbsence)
                    .where(
                        and_(
                            EmployeeAbsence.employee_id == employee_id,
                            EmployeeAbsence.absence_date == target_date,
                        )
                    )
                    .order_by(EmployeeAbsence.start_time)
                )
                rows = result.scalars().all()
            return [EmployeeAbsenceSchema.model_validate(row) for row in rows]
        except (SQLAlchemyError, ValidationError) as e:
            raise PolicyLookupFailure("employee_absences", cause=e)
