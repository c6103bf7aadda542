from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Normaliza un datetime a UTC aware.

    SQLite devuelve datetimes naive aunque la columna sea timezone=True,
    así que los tratamos como UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(value: datetime) -> datetime:
    value = as_utc(value)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def day_window(now: datetime, days_ahead: int) -> tuple[datetime, datetime]:
    # [inicio del día today+N, inicio del día today+N+1)
    start = start_of_day(now) + timedelta(days=days_ahead)
    return start, start + timedelta(days=1)
