from datetime import datetime

import structlog
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.api.deps.clock import Clock, get_clock
from agenda.api.deps.database import get_db
from agenda.api.errors import to_http_exception
from agenda.models.business import Business
from agenda.services.exceptions import NotFoundError
from agenda.services.scheduling import SchedulingEngineService

logger = structlog.get_logger(__name__)


class BusinessContext:
    """Business a request is scoped to, with its local "now"."""

    def __init__(self, business: Business, now: datetime):
        self.business = business
        self.business_id = business.id
        self.timezone = business.timezone
        self.now = now


async def load_business_context(
    db: AsyncSession, business_id: int, clock: Clock
) -> BusinessContext:
    business = await SchedulingEngineService(db).get_business(business_id)
    return BusinessContext(business, clock(business.timezone))


async def get_business_context(
    business_id: int,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> BusinessContext:
    """
    Get business context for scheduling requests.

    This dependency ensures that:
    1. The business exists and is active
    2. "now" is read once, from the business's wall clock
    """
    try:
        return await load_business_context(db, business_id, clock)
    except NotFoundError as e:
        raise to_http_exception(e)
