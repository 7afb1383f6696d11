import uuid
from dataclasses import dataclass
from typing import Optional

from ..cache import UrlCache
from ..exceptions import Expired, NotFound
from ..observability import CACHE_HITS, CACHE_MISSES, REDIRECT_404_TOTAL, REDIRECT_410_TOTAL, REDIRECT_TOTAL
from ..schemas import UrlRecord
from ..stores.base import UrlStore
from ..utils import is_well_formed_code
from .click_recorder import ClickContext, ClickRecorder


@dataclass(frozen=True)
class ResolvedRedirect:
    target_url: str
    record_id: uuid.UUID


class RedirectResolver:
    """Cache-aside lookup; clicks are handed to the recorder without waiting."""

    def __init__(self, store: UrlStore, cache: UrlCache, click_recorder: ClickRecorder, cache_ttl: int = 3600):
        self.store = store
        self.cache = cache
        self.click_recorder = click_recorder
        self.cache_ttl = cache_ttl

    async def resolve(self, short_code: str, context: Optional[ClickContext] = None) -> ResolvedRedirect:
        record = await self.lookup(short_code)
        if record is None or not record.is_active:
            REDIRECT_404_TOTAL.inc()
            raise NotFound()
        if record.is_expired():
            REDIRECT_410_TOTAL.inc()
            raise Expired()

        self.click_recorder.submit(record.id, context)
        REDIRECT_TOTAL.inc()
        return ResolvedRedirect(target_url=record.original_url, record_id=record.id)

    async def lookup(self, short_code: str) -> Optional[UrlRecord]:
        if not is_well_formed_code(short_code):
            return None

        cached = await self.cache.get(short_code)
        if cached.hit:
            CACHE_HITS.inc()
            return cached.record
        CACHE_MISSES.inc()

        record = await self.store.find_active_by_code(short_code)
        if record is not None:
            await self.cache.set(short_code, record, self.cache_ttl)
        return record
