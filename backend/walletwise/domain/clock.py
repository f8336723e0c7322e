"""Time source for the domain. Services take a clock so tests can pin `now`."""

from datetime import datetime, timezone
from typing import Callable


Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment):
    """Attach UTC to naive datetimes coming back from drivers that drop tzinfo."""
    if moment is None or moment.tzinfo is not None:
        return moment
    return moment.replace(tzinfo=timezone.utc)
