from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

def start_of_day(tz_name: str = "UTC", now: datetime | None = None) -> datetime:
    """Local midnight of the current day in ``tz_name``, expressed in UTC."""
    tz = ZoneInfo(tz_name)
    local_now = (now or datetime.now(timezone.utc)).astimezone(tz)
    local_midnight = datetime.combine(local_now.date(), time.min, tzinfo=tz)
    return local_midnight.astimezone(timezone.utc)
