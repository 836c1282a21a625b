"""Time helpers. All persisted timestamps are naive UTC."""

import math
from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def remaining_seconds(started_at: datetime, window_seconds: int, now: datetime) -> int:
    """Whole seconds left in a window, never less than one."""
    left = (started_at + timedelta(seconds=window_seconds) - now).total_seconds()
    return max(1, math.ceil(left))
