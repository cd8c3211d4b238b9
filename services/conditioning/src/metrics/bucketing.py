from datetime import datetime, timedelta, timezone

from src.domain.aggregation import SampleRate


def as_utc(timestamp: datetime) -> datetime:
    """Naive timestamps are taken to be UTC already."""
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def bucket_start(timestamp: datetime, rate: SampleRate) -> datetime:
    """Start of the calendar-aligned UTC bucket containing `timestamp`.

    Weeks start on Monday; quarters start in January, April, July and October.
    """
    ts = as_utc(timestamp)
    if rate is SampleRate.MILLISECOND:
        return ts.replace(microsecond=ts.microsecond // 1000 * 1000)
    if rate is SampleRate.SECOND:
        return ts.replace(microsecond=0)
    if rate is SampleRate.MINUTE:
        return ts.replace(second=0, microsecond=0)
    if rate is SampleRate.HOUR:
        return ts.replace(minute=0, second=0, microsecond=0)
    day = ts.replace(hour=0, minute=0, second=0, microsecond=0)
    if rate is SampleRate.DAY:
        return day
    if rate is SampleRate.WEEK:
        return day - timedelta(days=day.weekday())
    if rate is SampleRate.MONTH:
        return day.replace(day=1)
    if rate is SampleRate.QUARTER:
        return day.replace(month=(day.month - 1) // 3 * 3 + 1, day=1)
    if rate is SampleRate.YEAR:
        return day.replace(month=1, day=1)
    raise ValueError(f"Unsupported sample rate: {rate}")
