"""Token bucket rate limiter for outbound model and tool calls."""

import asyncio
import logging
import threading
import time
from typing import Callable

from langchain_core.rate_limiters import BaseRateLimiter

from ..errors import RateLimitExceeded

logger = logging.getLogger(__name__)

# Absorbs float drift when a refill lands exactly on a whole token
_EPSILON = 1e-9


class TokenBucketRateLimiter(BaseRateLimiter):
    """Token bucket shared by every outbound call of the process.

    The bucket starts full with ``capacity`` tokens and refills continuously
    at ``capacity / window_seconds`` tokens per second. Each call consumes one
    token. ``consume()`` blocks until a token is available but gives up with
    RateLimitExceeded once the accumulated wait would pass
    ``max_wait_seconds`` (0 means fail fast).

    Implements LangChain's BaseRateLimiter, so the same instance can also be
    handed to a chat model's ``rate_limiter`` parameter.

    Example:
        >>> limiter = TokenBucketRateLimiter(capacity=20, window_seconds=60)
        >>> limiter.consume()  # one model or tool call
    """

    def __init__(
        self,
        capacity: int = 20,
        window_seconds: float = 60.0,
        max_wait_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")

        self.capacity = capacity
        self.window_seconds = window_seconds
        self.max_wait_seconds = max_wait_seconds
        self.refill_rate = capacity / window_seconds

        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._last = clock()
        self._lock = threading.Lock()

    @property
    def available_tokens(self) -> float:
        """Tokens currently in the bucket."""
        with self._lock:
            self._refill()
            return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last)
        self._tokens = min(float(self.capacity), self._tokens + elapsed * self.refill_rate)
        self._last = now

    def _try_consume(self) -> float:
        """Take a token if one is available.

        Returns:
            0.0 when a token was taken, otherwise seconds until the next token
        """
        with self._lock:
            self._refill()
            if self._tokens >= 1.0 - _EPSILON:
                self._tokens = max(0.0, self._tokens - 1.0)
                return 0.0
            return (1.0 - self._tokens) / self.refill_rate

    def consume(self) -> None:
        """Take one token, waiting for a refill if needed.

        Raises:
            RateLimitExceeded: If no token arrives within max_wait_seconds
        """
        waited = 0.0
        while True:
            wait = self._try_consume()
            if wait == 0.0:
                return
            if waited + wait > self.max_wait_seconds:
                logger.warning(
                    f"Rate limit exceeded: next token in {wait:.2f}s, "
                    f"already waited {waited:.2f}s"
                )
                raise RateLimitExceeded(wait)
            logger.debug(f"Rate limited, waiting {wait:.2f}s for a token")
            self._sleep(wait)
            waited += wait

    def acquire(self, *, blocking: bool = True) -> bool:
        """Attempt to take a token.

        Args:
            blocking: Wait for a token (bounded by max_wait_seconds)

        Returns:
            True if a token was taken, False otherwise
        """
        if not blocking:
            return self._try_consume() == 0.0
        try:
            self.consume()
        except RateLimitExceeded:
            return False
        return True

    async def aacquire(self, *, blocking: bool = True) -> bool:
        """Async variant of acquire()."""
        waited = 0.0
        while True:
            wait = self._try_consume()
            if wait == 0.0:
                return True
            if not blocking or waited + wait > self.max_wait_seconds:
                return False
            await asyncio.sleep(wait)
            waited += wait
