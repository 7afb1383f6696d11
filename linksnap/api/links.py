import math

from fastapi import APIRouter, Depends, Query, status

from ..dependencies import get_allocator, get_owner_id, get_runtime, get_store
from ..exceptions import NotFound
from ..runtime import Runtime
from ..schemas import (
    AnalyticsResponse,
    ShortenRequest,
    ShortenResponse,
    UrlListItem,
    UrlListResponse,
)
from ..services.allocator import ShortCodeAllocator
from ..services.rate_limiter import shorten_limiter
from ..stores.base import UrlStore

router = APIRouter()

def short_url_for(runtime: Runtime, short_code: str) -> str:
    return f"{runtime.settings.BASE_URL.rstrip('/')}/{short_code}"

@router.post(
    "/shorten",
    response_model=ShortenResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(shorten_limiter)],
)
async def shorten_url(
    body: ShortenRequest,
    owner_id: str = Depends(get_owner_id),
    allocator: ShortCodeAllocator = Depends(get_allocator),
    runtime: Runtime = Depends(get_runtime),
):
    record = await allocator.allocate(
        owner_id=owner_id,
        original_url=body.original_url,
        custom_alias=body.custom_alias,
        expires_in_days=body.expires_in,
    )
    return ShortenResponse(
        short_url=short_url_for(runtime, record.short_code),
        short_code=record.short_code,
        original_url=record.original_url,
        expires_at=record.expires_at,
        created_at=record.created_at,
    )

@router.get("/urls", response_model=UrlListResponse)
async def list_urls(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    owner_id: str = Depends(get_owner_id),
    store: UrlStore = Depends(get_store),
    runtime: Runtime = Depends(get_runtime),
):
    records, total = await store.list_by_owner(owner_id, page, limit)
    return UrlListResponse(
        urls=[
            UrlListItem(
                short_url=short_url_for(runtime, r.short_code),
                **r.model_dump(include={
                    "id", "original_url", "short_code", "custom_alias",
                    "created_at", "expires_at", "is_active", "click_count",
                }),
            )
            for r in records
        ],
        total=total,
        page=page,
        total_pages=math.ceil(total / limit),
    )

@router.get("/analytics/{short_code}", response_model=AnalyticsResponse)
async def get_analytics(
    short_code: str,
    owner_id: str = Depends(get_owner_id),
    store: UrlStore = Depends(get_store),
):
    record = await store.find_by_code(short_code)
    # Someone else's URL is reported exactly like a missing one.
    if record is None or record.owner_id != owner_id:
        raise NotFound("URL not found or access denied")

    summary = await store.click_summary(record.id)
    return AnalyticsResponse(
        daily_clicks=summary.daily_clicks,
        total_clicks=summary.total_clicks,
        active_days=summary.active_days,
    )
