from datetime import datetime, timezone

UTC = timezone.utc

def now_utc() -> datetime:
    return datetime.now(tz=UTC)

def as_utc(dt: datetime) -> datetime:
    """Наивные datetime считаем UTC (так их отдаёт SQLite)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)