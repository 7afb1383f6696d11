import uuid
from collections import Counter
from datetime import datetime
from typing import Optional

from ..exceptions import DuplicateShortCode
from ..schemas import ClickEventCreate, ClickSummary, DailyClicks, UrlRecord
from .base import UrlStore


class MemoryUrlStore(UrlStore):
    # No await between check and write, so each operation is atomic on the loop.
    def __init__(self):
        self._by_code: dict[str, UrlRecord] = {}
        self._code_by_id: dict[uuid.UUID, str] = {}
        self._events: dict[uuid.UUID, list[ClickEventCreate]] = {}

    async def insert_if_absent(
        self,
        *,
        owner_id: str,
        original_url: str,
        short_code: str,
        custom_alias: bool,
        created_at: datetime,
        expires_at: Optional[datetime],
    ) -> UrlRecord:
        if short_code in self._by_code:
            raise DuplicateShortCode(f"Short code '{short_code}' already exists")
        record = UrlRecord(
            id=uuid.uuid4(),
            owner_id=owner_id,
            original_url=original_url,
            short_code=short_code,
            custom_alias=custom_alias,
            created_at=created_at,
            expires_at=expires_at,
        )
        self._by_code[short_code] = record
        self._code_by_id[record.id] = short_code
        return record.model_copy()

    async def find_by_code(self, short_code: str) -> Optional[UrlRecord]:
        record = self._by_code.get(short_code)
        return record.model_copy() if record else None

    async def find_active_by_code(self, short_code: str) -> Optional[UrlRecord]:
        record = self._by_code.get(short_code)
        if record is None or not record.is_active:
            return None
        return record.model_copy()

    async def increment_click_count(self, record_id: uuid.UUID) -> None:
        short_code = self._code_by_id.get(record_id)
        if short_code is not None:
            self._by_code[short_code].click_count += 1

    async def append_click_event(self, event: ClickEventCreate) -> None:
        self._events.setdefault(event.url_id, []).append(event)

    async def list_by_owner(self, owner_id: str, page: int, limit: int) -> tuple[list[UrlRecord], int]:
        owned = sorted(
            (r for r in self._by_code.values() if r.owner_id == owner_id),
            key=lambda r: r.created_at,
            reverse=True,
        )
        offset = (page - 1) * limit
        return [r.model_copy() for r in owned[offset:offset + limit]], len(owned)

    async def click_summary(self, url_id: uuid.UUID, days: int = 30) -> ClickSummary:
        events = self._events.get(url_id, [])
        per_day = Counter(e.clicked_at.date() for e in events)
        daily = [
            DailyClicks(date=day, clicks=count)
            for day, count in sorted(per_day.items(), reverse=True)[:days]
        ]
        return ClickSummary(daily_clicks=daily, total_clicks=len(events), active_days=len(per_day))
