"""Request rate limiting.

Two layers, both in-process and therefore per instance: the slowapi
``limiter`` guards HTTP routes by client address, and ``LoginThrottle``
counts credential attempts per ``ip:email`` inside the login service.
Neither is authoritative once the API is scaled out horizontally.
"""

from typing import Optional

from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from slowapi import Limiter
from slowapi.util import get_remote_address

from modconsole.core.config import settings

limiter = Limiter(key_func=get_remote_address)


class LoginThrottle:
    """Moving-window limiter for login attempts."""

    def __init__(self, rate: Optional[str] = None):
        self.rate = parse(rate or settings.LOGIN_RATE_LIMIT)
        self._storage = MemoryStorage()
        self._limiter = MovingWindowRateLimiter(self._storage)

    @staticmethod
    def key_for(ip: Optional[str], email: str) -> str:
        return f"{ip or 'unknown'}:{email.strip().lower()}"

    def hit(self, key: str) -> bool:
        """Record an attempt; False once the caller is over the limit."""
        return self._limiter.hit(self.rate, "login", key)

    def reset(self) -> None:
        self._storage.reset()


login_throttle = LoginThrottle()
