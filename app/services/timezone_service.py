import logging
from datetime import datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config import settings

logger = logging.getLogger(__name__)


def get_company_timezone() -> ZoneInfo:
    try:
        return ZoneInfo(settings.ABSENCE_TIMEZONE)
    except ZoneInfoNotFoundError:
        logger.warning("Invalid ABSENCE_TIMEZONE '%s'; falling back to UTC", settings.ABSENCE_TIMEZONE)
        return ZoneInfo("UTC")


def now_in_company_tz() -> datetime:
    return datetime.now(get_company_timezone())


def parse_hhmm(value: str) -> time:
    """Parse a 24-hour 'HH:MM' string; raises ValueError on anything else."""
    hours, sep, minutes = value.partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit() or len(minutes) != 2 or len(hours) > 2:
        raise ValueError(f"Time must be in HH:MM format (24-hour), got {value!r}")
    return time(hour=int(hours), minute=int(minutes))
