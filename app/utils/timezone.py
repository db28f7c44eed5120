from datetime import datetime
from typing import Optional
import pytz
from app.config import settings

# Campus timezone, configurable through TIMEZONE
LOCAL_TZ = pytz.timezone(settings.timezone)


def now_local() -> datetime:
    """Get current datetime in the campus timezone."""
    return datetime.now(LOCAL_TZ)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Attach the campus timezone to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return LOCAL_TZ.localize(value)
    return value


def to_local(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an incoming datetime to the campus timezone before storing it."""
    value = ensure_aware(value)
    return value.astimezone(LOCAL_TZ) if value is not None else None
