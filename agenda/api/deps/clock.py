from datetime import datetime
from typing import Callable

import pytz
import structlog

logger = structlog.get_logger(__name__)

Clock = Callable[[str], datetime]


def local_now(timezone_name: str) -> datetime:
    """Current wall-clock time of a business, without tzinfo."""
    try:
        tz = pytz.timezone(timezone_name or "UTC")
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown business timezone, using UTC", timezone=timezone_name)
        tz = pytz.utc
    return datetime.now(tz).replace(tzinfo=None)


def get_clock() -> Clock:
    """Dependency returning the clock used to read "now" at the HTTP boundary."""
    return local_now
