import uuid
from datetime import date, datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

_http_url = TypeAdapter(HttpUrl)

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

# Domain records

class UrlRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    owner_id: str
    original_url: str
    short_code: str
    custom_alias: bool = False
    created_at: datetime
    expires_at: Optional[datetime] = None
    is_active: bool = True
    click_count: int = 0

    @field_validator("created_at", "expires_at")
    @classmethod
    def ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < (now or datetime.now(timezone.utc))

class ClickEventCreate(BaseModel):
    url_id: uuid.UUID
    clicked_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None

class DailyClicks(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    day: date = Field(..., alias="date")
    clicks: int

class ClickSummary(BaseModel):
    daily_clicks: list[DailyClicks]
    total_clicks: int
    active_days: int

# HTTP payloads

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class ShortenRequest(CamelModel):
    original_url: str = Field(..., max_length=2048)
    custom_alias: Optional[str] = None
    expires_in: Optional[float] = Field(None, gt=0, le=36500)  # days

    @field_validator("original_url")
    @classmethod
    def check_original_url(cls, value: str) -> str:
        value = value.strip()
        try:
            _http_url.validate_python(value)
        except ValidationError:
            raise ValueError("Invalid URL format")
        # Stored verbatim; HttpUrl would normalise it.
        return value

    @field_validator("custom_alias")
    @classmethod
    def blank_alias_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

class ShortenResponse(CamelModel):
    short_url: str
    short_code: str
    original_url: str
    expires_at: Optional[datetime]
    created_at: datetime

class UrlListItem(CamelModel):
    id: uuid.UUID
    original_url: str
    short_code: str
    short_url: str
    custom_alias: bool
    created_at: datetime
    expires_at: Optional[datetime]
    is_active: bool
    click_count: int

class UrlListResponse(CamelModel):
    urls: list[UrlListItem]
    total: int
    page: int
    total_pages: int

class AnalyticsResponse(CamelModel):
    daily_clicks: list[DailyClicks]
    total_clicks: int
    active_days: int

class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    uptime: float
