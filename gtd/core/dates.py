from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple, Union


def start_of_day(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min)


def day_bounds(value: Union[date, datetime]) -> Tuple[datetime, datetime]:
    """Retourne (00:00:00, 23:59:59.999999) du jour local."""
    start = start_of_day(value)
    return start, start + timedelta(days=1) - timedelta(microseconds=1)


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    # les dates avec fuseau sont ramenées à l'heure locale du serveur
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def elapsed_seconds(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds()))


def format_duration(seconds: int) -> str:
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h{minutes}m"
    return f"{minutes}m"
