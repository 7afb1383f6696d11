import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis
from pydantic import ValidationError

from .observability import CACHE_ERRORS
from .schemas import UrlRecord

logger = logging.getLogger(__name__)

KEY_PREFIX = "url:"

def cache_key(short_code: str) -> str:
    return f"{KEY_PREFIX}{short_code}"

@dataclass(frozen=True)
class CacheResult:
    ok: bool
    record: Optional[UrlRecord] = None

    @property
    def hit(self) -> bool:
        return self.record is not None

MISS = CacheResult(ok=True)
UNAVAILABLE = CacheResult(ok=False)


class UrlCache(ABC):
    @abstractmethod
    async def get(self, short_code: str) -> CacheResult: ...

    @abstractmethod
    async def set(self, short_code: str, record: UrlRecord, ttl: int) -> bool: ...

    async def close(self) -> None:
        pass


class RedisUrlCache(UrlCache):
    def __init__(self, client: redis.Redis):
        self.client = client

    async def get(self, short_code: str) -> CacheResult:
        try:
            raw = await self.client.get(cache_key(short_code))
        except redis.RedisError as e:
            CACHE_ERRORS.labels(operation="get").inc()
            logger.warning(f"Cache get failed: {e}", extra={"short_code": short_code})
            return UNAVAILABLE
        if raw is None:
            return MISS
        try:
            return CacheResult(ok=True, record=UrlRecord.model_validate_json(raw))
        except ValidationError:
            # Entry written by an incompatible version; the next set overwrites it.
            logger.warning("Discarding unreadable cache entry", extra={"short_code": short_code})
            return MISS

    async def set(self, short_code: str, record: UrlRecord, ttl: int) -> bool:
        try:
            await self.client.set(cache_key(short_code), record.model_dump_json(), ex=ttl)
        except redis.RedisError as e:
            CACHE_ERRORS.labels(operation="set").inc()
            logger.warning(f"Cache set failed: {e}", extra={"short_code": short_code})
            return False
        return True


class MemoryUrlCache(UrlCache):
    # Values are stored serialised so readers never share a mutable record.

    def __init__(self, clock=time.monotonic):
        self._entries: dict[str, tuple[float, str]] = {}
        self._clock = clock

    async def get(self, short_code: str) -> CacheResult:
        entry = self._entries.get(short_code)
        if entry is None:
            return MISS
        expires, raw = entry
        if expires <= self._clock():
            self._entries.pop(short_code, None)
            return MISS
        return CacheResult(ok=True, record=UrlRecord.model_validate_json(raw))

    async def set(self, short_code: str, record: UrlRecord, ttl: int) -> bool:
        self._entries[short_code] = (self._clock() + ttl, record.model_dump_json())
        return True


class NullUrlCache(UrlCache):
    async def get(self, short_code: str) -> CacheResult:
        return MISS

    async def set(self, short_code: str, record: UrlRecord, ttl: int) -> bool:
        return False
