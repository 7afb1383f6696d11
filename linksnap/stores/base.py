import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from ..schemas import ClickEventCreate, ClickSummary, UrlRecord


class UrlStore(ABC):
    async def initialize(self) -> None:
        pass

    @abstractmethod
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
        """Atomically create the record owning ``short_code``.

        Raises DuplicateShortCode if another record already owns it; two
        concurrent callers can never both succeed for the same code.
        """

    @abstractmethod
    async def find_by_code(self, short_code: str) -> Optional[UrlRecord]: ...

    @abstractmethod
    async def find_active_by_code(self, short_code: str) -> Optional[UrlRecord]: ...

    @abstractmethod
    async def increment_click_count(self, record_id: uuid.UUID) -> None:
        """Add one relative to the stored value, never write back a read count."""

    @abstractmethod
    async def append_click_event(self, event: ClickEventCreate) -> None: ...

    @abstractmethod
    async def list_by_owner(self, owner_id: str, page: int, limit: int) -> tuple[list[UrlRecord], int]: ...

    @abstractmethod
    async def click_summary(self, url_id: uuid.UUID, days: int = 30) -> ClickSummary: ...

    async def close(self) -> None:
        pass
