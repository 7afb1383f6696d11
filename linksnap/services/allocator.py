import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..cache import UrlCache
from ..exceptions import AliasTaken, AllocationExhausted, DuplicateShortCode
from ..observability import ALLOCATION_COLLISIONS_TOTAL
from ..schemas import UrlRecord
from ..stores.base import UrlStore
from ..utils import generate_random_code, validate_alias

logger = logging.getLogger(__name__)


class ShortCodeAllocator:
    def __init__(
        self,
        store: UrlStore,
        cache: UrlCache,
        cache_ttl: int = 3600,
        code_length: int = 7,
        max_attempts: int = 10,
        generate: Callable[[int], str] = generate_random_code,
    ):
        self.store = store
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.code_length = code_length
        self.max_attempts = max_attempts
        self.generate = generate

    async def allocate(
        self,
        owner_id: str,
        original_url: str,
        custom_alias: Optional[str] = None,
        expires_in_days: Optional[float] = None,
    ) -> UrlRecord:
        if custom_alias is not None:
            custom_alias = validate_alias(custom_alias)

        created_at = datetime.now(timezone.utc)
        expires_at = None
        if expires_in_days:
            expires_at = created_at + timedelta(days=expires_in_days)

        fields = dict(
            owner_id=owner_id,
            original_url=original_url,
            created_at=created_at,
            expires_at=expires_at,
        )
        if custom_alias is not None:
            try:
                record = await self.store.insert_if_absent(short_code=custom_alias, custom_alias=True, **fields)
            except DuplicateShortCode:
                raise AliasTaken()
        else:
            record = await self._insert_generated(fields)

        # Write-through; a cache failure only costs a store read later.
        await self.cache.set(record.short_code, record, self.cache_ttl)
        logger.info(
            "Short code allocated",
            extra={"short_code": record.short_code, "record_id": record.id, "owner_id": owner_id},
        )
        return record

    async def _insert_generated(self, fields: dict) -> UrlRecord:
        for attempt in range(1, self.max_attempts + 1):
            short_code = self.generate(self.code_length)
            try:
                return await self.store.insert_if_absent(short_code=short_code, custom_alias=False, **fields)
            except DuplicateShortCode:
                ALLOCATION_COLLISIONS_TOTAL.inc()
                logger.warning(
                    f"Generated short code collided (attempt {attempt}/{self.max_attempts})",
                    extra={"short_code": short_code},
                )
        logger.error(f"Short code allocation exhausted after {self.max_attempts} attempts")
        raise AllocationExhausted()
