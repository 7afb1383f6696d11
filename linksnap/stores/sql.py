import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, func, distinct
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..database import create_sessionmaker, create_tables
from ..exceptions import DuplicateShortCode, StoreError
from ..models import ClickEvent, Url
from ..schemas import ClickEventCreate, ClickSummary, DailyClicks, UrlRecord
from .base import UrlStore

logger = logging.getLogger(__name__)


class SqlUrlStore(UrlStore):
    def __init__(self, engine: AsyncEngine, sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None):
        self.engine = engine
        self.sessionmaker = sessionmaker or create_sessionmaker(engine)

    async def initialize(self) -> None:
        try:
            await create_tables(self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not create tables: {e}") from e

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
        url = Url(
            owner_id=owner_id,
            original_url=original_url,
            short_code=short_code,
            custom_alias=custom_alias,
            created_at=created_at,
            expires_at=expires_at,
            is_active=True,
            click_count=0,
        )
        async with self.sessionmaker() as db:
            db.add(url)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise DuplicateShortCode(f"Short code '{short_code}' already exists")
            except SQLAlchemyError as e:
                await db.rollback()
                raise StoreError(f"Insert failed for '{short_code}': {e}") from e
            await db.refresh(url)
            return UrlRecord.model_validate(url)

    async def find_by_code(self, short_code: str) -> Optional[UrlRecord]:
        return await self._find(select(Url).where(Url.short_code == short_code))

    async def find_active_by_code(self, short_code: str) -> Optional[UrlRecord]:
        return await self._find(
            select(Url).where(Url.short_code == short_code, Url.is_active.is_(True))
        )

    async def _find(self, stmt) -> Optional[UrlRecord]:
        try:
            async with self.sessionmaker() as db:
                result = await db.execute(stmt)
                url = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f"Lookup failed: {e}") from e
        return UrlRecord.model_validate(url) if url else None

    async def increment_click_count(self, record_id: uuid.UUID) -> None:
        try:
            async with self.sessionmaker() as db:
                await db.execute(
                    update(Url)
                    .where(Url.id == record_id)
                    .values(click_count=Url.click_count + 1)
                )
                await db.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Click count update failed for {record_id}: {e}") from e

    async def append_click_event(self, event: ClickEventCreate) -> None:
        try:
            async with self.sessionmaker() as db:
                db.add(ClickEvent(**event.model_dump()))
                await db.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Click event insert failed for {event.url_id}: {e}") from e

    async def list_by_owner(self, owner_id: str, page: int, limit: int) -> tuple[list[UrlRecord], int]:
        try:
            async with self.sessionmaker() as db:
                result = await db.execute(
                    select(Url)
                    .where(Url.owner_id == owner_id)
                    .order_by(Url.created_at.desc())
                    .limit(limit)
                    .offset((page - 1) * limit)
                )
                urls = result.scalars().all()
                total = await db.scalar(
                    select(func.count()).select_from(Url).where(Url.owner_id == owner_id)
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Listing failed for owner {owner_id}: {e}") from e
        return [UrlRecord.model_validate(u) for u in urls], total or 0

    async def click_summary(self, url_id: uuid.UUID, days: int = 30) -> ClickSummary:
        day = func.date(ClickEvent.clicked_at)
        try:
            async with self.sessionmaker() as db:
                daily = await db.execute(
                    select(day.label("date"), func.count().label("clicks"))
                    .where(ClickEvent.url_id == url_id)
                    .group_by(day)
                    .order_by(day.desc())
                    .limit(days)
                )
                rows = daily.all()
                totals = await db.execute(
                    select(func.count(), func.count(distinct(day)))
                    .where(ClickEvent.url_id == url_id)
                )
                total_clicks, active_days = totals.one()
        except SQLAlchemyError as e:
            raise StoreError(f"Analytics query failed for {url_id}: {e}") from e
        return ClickSummary(
            daily_clicks=[DailyClicks(date=row.date, clicks=row.clicks) for row in rows],
            total_clicks=total_clicks,
            active_days=active_days,
        )

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")
