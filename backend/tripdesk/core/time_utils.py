from datetime import datetime
from typing import Optional
import pytz

UTC = pytz.utc

def get_utc_now() -> datetime:
    """Get current time in UTC."""
    return datetime.now(UTC)

def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalise a stored datetime to aware UTC.
    SQLite drops tzinfo on the way back, so naive values are taken as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)

def format_utc(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as ISO string in UTC."""
    if dt is None:
        return None
    return as_utc(dt).isoformat()
