"""Rate-limited logging for error paths that can fail in a tight loop."""

import logging
import threading
import time
from typing import Callable, Optional


class LogThrottle:
    """Emit at most one record per ``interval_seconds`` for a given key.

    Suppressed records are counted and the count is reported with the next
    record that gets through.
    """

    def __init__(
        self,
        interval_seconds: float,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.interval_seconds = interval_seconds
        self._monotonic = monotonic
        self._last: dict[str, float] = {}
        self._suppressed: dict[str, int] = {}
        self._lock = threading.Lock()

    def should_log(self, key: str) -> Optional[int]:
        """Return the number of suppressed records if a record may be emitted now."""
        now = self._monotonic()
        with self._lock:
            last = self._last.get(key)
            if last is not None and now - last < self.interval_seconds:
                self._suppressed[key] = self._suppressed.get(key, 0) + 1
                return None
            self._last[key] = now
            return self._suppressed.pop(key, 0)

    def error(self, logger: logging.Logger, key: str, msg: str, *args, exc_info=None) -> bool:
        suppressed = self.should_log(key)
        if suppressed is None:
            return False
        if suppressed:
            msg = f"{msg} ({suppressed} similar messages suppressed)"
        logger.error(msg, *args, exc_info=exc_info)
        return True

    def reset(self) -> None:
        with self._lock:
            self._last.clear()
            self._suppressed.clear()
