"""Rate limiting implementation"""

from redis import Redis
from talktofolder.config import settings
from typing import Callable, Optional
import threading
import time
import logging

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-window request limiter using Redis"""

    def __init__(self, redis_client: Optional[Redis] = None):
        self._redis = redis_client

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            self._redis = Redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5
            )
        return self._redis

    def allow_request(self, identifier: str, limit: int = 20, window: int = 60) -> bool:
        """
        Check if request is allowed under rate limit

        Args:
            identifier: Unique identifier (e.g., user id)
            limit: Maximum requests per window
            window: Time window in seconds

        Returns:
            True if request allowed, False otherwise
        """
        key = f"rate_limit:{identifier}"

        try:
            current = self.redis.get(key)

            if current is None:
                # First request in window
                self.redis.setex(key, window, 1)
                return True

            count = int(current)

            if count < limit:
                self.redis.incr(key)
                return True

            logger.warning(f"Rate limit exceeded for {identifier}: {count}/{limit}")
            return False

        except Exception as e:
            logger.error(f"Rate limiter error: {str(e)}")
            # Fail open - allow request if Redis unavailable
            return True

    def get_remaining(self, identifier: str, limit: int = 20) -> int:
        """Get remaining requests in current window"""
        key = f"rate_limit:{identifier}"

        try:
            current = self.redis.get(key)
            if current is None:
                return limit

            return max(0, limit - int(current))
        except Exception:
            return limit


class TokenBucket:
    """
    In-process token bucket pacing outbound work

    ``rate`` tokens are added per second up to ``burst``. A rate of 0 turns
    pacing off.
    """

    def __init__(
        self,
        rate: float,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        if rate < 0:
            raise ValueError("rate must not be negative")
        if burst < 1:
            raise ValueError("burst must be at least 1")

        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._updated = clock()
        self._lock = threading.Lock()

    def _refill(self):
        now = self._clock()
        self._tokens = min(self.burst, self._tokens + (now - self._updated) * self.rate)
        self._updated = now

    def acquire(self) -> float:
        """
        Take one token, sleeping until one is available

        Returns:
            Seconds spent waiting
        """
        if self.rate == 0:
            return 0.0

        waited = 0.0
        with self._lock:
            self._refill()
            if self._tokens < 1:
                wait = (1 - self._tokens) / self.rate
                self._sleep(wait)
                waited = wait
                self._refill()
                # The clock may be frozen in tests; the wait paid for the token
                self._tokens = max(self._tokens, 1.0)
            self._tokens -= 1

        return waited


def indexing_throttle() -> TokenBucket:
    """Bucket pacing per-file indexing work"""
    return TokenBucket(rate=settings.INDEXING_FILES_PER_SECOND, burst=settings.INDEXING_BURST)


# Global rate limiter instance
rate_limiter = RateLimiter()
