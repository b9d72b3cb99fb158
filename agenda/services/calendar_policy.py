from datetime import date, time
from typing import Optional

import structlog
from pydantic import ValidationError
from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.core.config import settings
from agenda.models.business_hours import (
    BusinessSpecialDate,
    BusinessWeeklyHours,
    DayOfWeek,
)
from agenda.schemas.business import SpecialDateSchema, WeeklyHoursSchema
from agenda.schemas.scheduling import OperatingWindow, WindowSource
from agenda.services.exceptions import PolicyLookupFailure

logger = structlog.get_logger(__name__)


def resolve_operating_window(
    special: Optional[SpecialDateSchema],
    weekly: Optional[WeeklyHoursSchema],
    default_open: time,
    default_close: time,
) -> OperatingWindow:
    """Pick the operating window: special date, then weekly hours, then default."""
    if special is not None:
        return OperatingWindow(
            closed=special.is_closed,
            open_time=None if special.is_closed else special.open_time,
            close_time=None if special.is_closed else special.close_time,
            source=WindowSource.SPECIAL_DATE,
        )
    if weekly is not None:
        return OperatingWindow(
            closed=weekly.is_closed,
            open_time=None if weekly.is_closed else weekly.open_time,
            close_time=None if weekly.is_closed else weekly.close_time,
            source=WindowSource.WEEKLY_HOURS,
        )
    return OperatingWindow(
        closed=False,
        open_time=default_open,
        close_time=default_close,
        source=WindowSource.DEFAULT,
    )


class CalendarPolicyResolver:
    """Resolves the business operating window for a calendar date."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, business_id: int, target_date: date) -> OperatingWindow:
        special = await self._read_tier(
            "special_date", self._get_special_date, business_id, target_date
        )
        weekly = None
        if special is None:
            weekly = await self._read_tier(
                "weekly_hours", self._get_weekly_hours, business_id, target_date
            )

        window = resolve_operating_window(
            special, weekly, settings.DEFAULT_OPEN_TIME, settings.DEFAULT_CLOSE_TIME
        )
        logger.debug(
            "Resolved operating window",
            business_id=business_id,
            date=str(target_date),
            source=window.source.value,
            closed=window.closed,
        )
        return window

    async def _read_tier(self, tier: str, reader, business_id: int, target_date: date):
        """Read one tier; a failed read counts as no data for that tier."""
        try:
            return await reader(business_id, target_date)
        except PolicyLookupFailure as e:
            logger.warning(
                "Operating hours lookup failed, falling through",
                business_id=business_id,
                date=str(target_date),
                tier=e.tier,
                error=str(e.cause),
            )
            return None

    async def _get_special_date(
        self, business_id: int, target_date: date
    ) -> Optional[SpecialDateSchema]:
        try:
            async with self.db.begin_nested():
                result = await self.db.execute(
                    select(BusinessSpecialDate).where(
                        and_(
                            BusinessSpecialDate.business_id == business_id,
                            BusinessSpecialDate.special_date == target_date,
                        )
                    )
                )
                row = result.scalars().first()
            return SpecialDateSchema.model_validate(row) if row else None
        except (SQLAlchemyError, ValidationError) as e:
            raise PolicyLookupFailure("special_date", cause=e)

    async def _get_weekly_hours(
        self, business_id: int, target_date: date
    ) -> Optional[WeeklyHoursSchema]:
        try:
            async with self.db.begin_nested():
                result = await self.db.execute(
                    select(BusinessWeeklyHours).where(
                        and_(
                            BusinessWeeklyHours.business_id == business_id,
                            BusinessWeeklyHours.day_of_week
                            == DayOfWeek.for_date(target_date).value,
                        )
                    )
                )
                row = result.scalars().first()
            return WeeklyHoursSchema.model_validate(row) if row else None
        except (SQLAlchemyError, ValidationError) as e:
            raise PolicyLookupFailure("weekly_hours", cause=e)
