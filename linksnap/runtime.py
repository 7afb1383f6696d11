import logging
import time
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis

from .cache import MemoryUrlCache, NullUrlCache, RedisUrlCache, UrlCache
from .config import Settings
from .database import create_engine
from .services.allocator import ShortCodeAllocator
from .services.click_recorder import ClickRecorder
from .services.rate_limiter import (
    ACCOUNT_CREATION,
    SHORTEN,
    MemoryWindowCounter,
    RateLimitRule,
    RedisWindowCounter,
    WindowCounter,
)
from .services.resolver import RedirectResolver
from .stores.base import UrlStore
from .stores.memory import MemoryUrlStore
from .stores.sql import SqlUrlStore

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    store: UrlStore
    cache: UrlCache
    window_counter: WindowCounter
    click_recorder: ClickRecorder
    allocator: ShortCodeAllocator
    resolver: RedirectResolver
    rate_limits: dict[str, RateLimitRule]
    redis_client: Optional[redis.Redis] = None
    started_at: float = field(default_factory=time.time)

    @property
    def uptime(self) -> float:
        return time.time() - self.started_at

    async def close(self) -> None:
        # Queued analytics may be abandoned; connections must close cleanly.
        await self.click_recorder.stop()
        await self.cache.close()
        if self.redis_client is not None:
            await self.redis_client.aclose()
            logger.info("Redis connection closed")
        await self.store.close()


def build_store(settings: Settings) -> UrlStore:
    if settings.STORE_BACKEND == "memory":
        return MemoryUrlStore()
    if settings.STORE_BACKEND == "sql":
        return SqlUrlStore(create_engine(settings))
    raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND!r}")


async def connect_redis(settings: Settings) -> Optional[redis.Redis]:
    if not settings.REDIS_URL:
        return None
    client = redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
    try:
        await client.ping()
    except redis.RedisError as e:
        # Keep the client: the cache degrades to misses until Redis is back.
        logger.warning(f"Redis not reachable at startup: {e}")
    return client


def build_cache(settings: Settings, client: Optional[redis.Redis]) -> UrlCache:
    if settings.CACHE_BACKEND == "redis":
        if client is None:
            logger.warning("CACHE_BACKEND=redis but REDIS_URL is empty, caching disabled")
            return NullUrlCache()
        return RedisUrlCache(client)
    if settings.CACHE_BACKEND == "memory":
        return MemoryUrlCache()
    if settings.CACHE_BACKEND == "none":
        return NullUrlCache()
    raise ValueError(f"Unknown CACHE_BACKEND: {settings.CACHE_BACKEND!r}")


def build_rate_limits(settings: Settings) -> dict[str, RateLimitRule]:
    return {
        ACCOUNT_CREATION: RateLimitRule(
            requests=settings.ACCOUNT_RATE_LIMIT,
            window=settings.ACCOUNT_RATE_WINDOW_SECONDS,
            message="Too many accounts created from this IP",
        ),
        SHORTEN: RateLimitRule(
            requests=settings.SHORTEN_RATE_LIMIT,
            window=settings.SHORTEN_RATE_WINDOW_SECONDS,
            message="Too many URL shortening requests",
        ),
    }


async def build_runtime(settings: Settings) -> Runtime:
    store = build_store(settings)
    await store.initialize()

    needs_redis = settings.CACHE_BACKEND == "redis" or settings.STORE_BACKEND == "sql"
    redis_client = await connect_redis(settings) if needs_redis else None
    cache = build_cache(settings, redis_client)
    window_counter = RedisWindowCounter(redis_client) if redis_client else MemoryWindowCounter()

    click_recorder = ClickRecorder(
        store,
        queue_size=settings.CLICK_QUEUE_SIZE,
        workers=settings.CLICK_WORKERS,
        drain_timeout=settings.CLICK_DRAIN_TIMEOUT_SECONDS,
    )
    click_recorder.start()

    runtime = Runtime(
        settings=settings,
        store=store,
        cache=cache,
        window_counter=window_counter,
        click_recorder=click_recorder,
        allocator=ShortCodeAllocator(
            store,
            cache,
            cache_ttl=settings.CACHE_TTL_SECONDS,
            code_length=settings.SHORT_CODE_LENGTH,
            max_attempts=settings.MAX_ALLOCATION_ATTEMPTS,
        ),
        resolver=RedirectResolver(store, cache, click_recorder, cache_ttl=settings.CACHE_TTL_SECONDS),
        rate_limits=build_rate_limits(settings),
        redis_client=redis_client,
    )
    logger.info(
        f"Runtime ready (store={settings.STORE_BACKEND}, cache={settings.CACHE_BACKEND}, "
        f"rate limiter={'redis' if redis_client else 'memory'})"
    )
    return runtime
