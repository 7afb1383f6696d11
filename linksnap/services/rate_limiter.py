import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis
from fastapi import Request

from ..exceptions import RateLimited
from ..observability import RATE_LIMITED_TOTAL

logger = logging.getLogger(__name__)

ACCOUNT_CREATION = "account_creation"
SHORTEN = "shorten"


@dataclass(frozen=True)
class RateLimitRule:
    requests: int
    window: int  # seconds
    message: str = "Rate limit exceeded"


class WindowCounter(ABC):
    @abstractmethod
    async def hit(self, key: str, window: int) -> Optional[int]:
        """Increment ``key`` and return its new value, or None if the backend is unavailable."""


class RedisWindowCounter(WindowCounter):
    def __init__(self, client: redis.Redis):
        self.client = client

    async def hit(self, key: str, window: int) -> Optional[int]:
        try:
            count = await self.client.incr(key)
            if count == 1:
                await self.client.expire(key, window)
            return count
        except redis.RedisError as e:
            logger.error(f"Rate limiter error: {e}")
            return None


class MemoryWindowCounter(WindowCounter):
    def __init__(self, clock=time.time, max_keys: int = 100_000):
        self._counts: OrderedDict[str, tuple[int, float]] = OrderedDict()
        self._clock = clock
        self._max_keys = max_keys

    async def hit(self, key: str, window: int) -> Optional[int]:
        now = self._clock()
        count, expires = self._counts.pop(key, (0, now + window))
        if expires <= now:
            count, expires = 0, now + window
        count += 1
        self._counts[key] = (count, expires)
        # Least recently hit keys go first; an evicted key restarts at zero.
        while len(self._counts) > self._max_keys:
            self._counts.popitem(last=False)
        return count


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def check_rate_limit(counter: WindowCounter, scope: str, key: str, rule: RateLimitRule, now: Optional[float] = None):
    """Fixed-window admission check; raises RateLimited once ``key`` exceeds the rule."""
    now = time.time() if now is None else now
    current_window = int(now / rule.window)
    count = await counter.hit(f"rate:{scope}:{key}:{current_window}", rule.window)
    if count is None:
        # Graceful degradation -> Allow
        return
    if count > rule.requests:
        RATE_LIMITED_TOTAL.labels(scope=scope).inc()
        retry_after = (current_window + 1) * rule.window - int(now)
        raise RateLimited(rule.message, retry_after=max(retry_after, 1))


class RateLimiter:
    def __init__(self, scope: str):
        self.scope = scope

    async def __call__(self, request: Request):
        runtime = request.app.state.runtime
        rule = runtime.rate_limits[self.scope]
        await check_rate_limit(runtime.window_counter, self.scope, client_key(request), rule)


account_creation_limiter = RateLimiter(ACCOUNT_CREATION)
shorten_limiter = RateLimiter(SHORTEN)
