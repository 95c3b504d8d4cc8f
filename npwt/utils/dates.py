# npwt/utils/dates.py
from datetime import date, datetime
from zoneinfo import ZoneInfo

from npwt.core.config import settings


def now_local() -> datetime:
    """Heure courante dans le fuseau de l'établissement (DEFAULT_TIMEZONE)"""
    return datetime.now(ZoneInfo(settings.DEFAULT_TIMEZONE))


def today_local() -> date:
    return now_local().date()
