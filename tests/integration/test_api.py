import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from linksnap.exceptions import StoreError
from linksnap.utils import ALPHABET

BASE_URL = "https://lnk.test"
OWNER = {"X-Owner-Id": "owner-1"}
OTHER_OWNER = {"X-Owner-Id": "owner-2"}


def parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


async def shorten(client, headers=OWNER, **payload):
    payload.setdefault("originalUrl", "https://www.example.com/articles/42?ref=home")
    return await client.post("/api/shorten", json=payload, headers=headers)


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["uptime"] >= 0
    assert parse_ts(data["timestamp"]).tzinfo is not None


@pytest.mark.asyncio
async def test_shorten_and_redirect(client: AsyncClient):
    original = "https://www.example.com/articles/42?ref=home"
    response = await shorten(client, originalUrl=original)
    assert response.status_code == 201
    data = response.json()

    code = data["shortCode"]
    assert len(code) == 7
    assert set(code) <= set(ALPHABET)
    assert data["shortUrl"] == f"{BASE_URL}/{code}"
    assert data["originalUrl"] == original
    assert data["expiresAt"] is None
    assert data["createdAt"]

    response = await client.get(f"/{code}")
    assert response.status_code == 301
    assert response.headers["location"] == original


@pytest.mark.asyncio
async def test_custom_alias(client: AsyncClient):
    response = await shorten(client, customAlias="spring-sale")
    assert response.status_code == 201
    assert response.json()["shortCode"] == "spring-sale"

    response = await shorten(client, headers=OTHER_OWNER, customAlias="spring-sale")
    assert response.status_code == 400
    assert response.json() == {"detail": "Custom alias already taken"}


@pytest.mark.asyncio
async def test_concurrent_same_alias_single_winner(client: AsyncClient):
    responses = await asyncio.gather(
        shorten(client, originalUrl="https://a.example", customAlias="race"),
        shorten(client, headers=OTHER_OWNER, originalUrl="https://b.example", customAlias="race"),
    )
    codes = sorted(r.status_code for r in responses)
    assert codes == [201, 400]
    loser = next(r for r in responses if r.status_code == 400)
    assert loser.json() == {"detail": "Custom alias already taken"}


@pytest.mark.asyncio
async def test_blank_alias_generates_code(client: AsyncClient):
    response = await shorten(client, customAlias="")
    assert response.status_code == 201
    assert len(response.json()["shortCode"]) == 7


@pytest.mark.asyncio
@pytest.mark.parametrize("alias", ["has space", "x" * 51, "health", "a/b"])
async def test_invalid_alias(client: AsyncClient, alias):
    response = await shorten(client, customAlias=alias)
    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["not-a-url", "ftp://files.example.com/x", "", "javascript:alert(1)"])
async def test_invalid_url(client: AsyncClient, url):
    response = await shorten(client, originalUrl=url)
    assert response.status_code == 400
    assert "originalUrl" in response.json()["detail"]


@pytest.mark.asyncio
async def test_invalid_expiry(client: AsyncClient):
    response = await shorten(client, expiresIn=0)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_expires_in_days(client: AsyncClient):
    response = await shorten(client, expiresIn=1)
    assert response.status_code == 201
    data = response.json()
    delta = parse_ts(data["expiresAt"]) - parse_ts(data["createdAt"])
    assert abs(delta - timedelta(hours=24)) < timedelta(seconds=1)


@pytest.mark.asyncio
async def test_identity_required(client: AsyncClient):
    response = await shorten(client, headers={})
    assert response.status_code == 401

    response = await shorten(client, headers={"X-Owner-Id": "   "})
    assert response.status_code == 403

    assert (await client.get("/api/urls")).status_code == 401
    assert (await client.get("/api/analytics/anything")).status_code == 401


@pytest.mark.asyncio
async def test_redirect_unknown_code(client: AsyncClient):
    response = await client.get("/doesNotExist")
    assert response.status_code == 404
    assert response.json() == {"detail": "Short URL not found"}


@pytest.mark.asyncio
async def test_redirect_expired_code(client: AsyncClient, runtime):
    now = datetime.now(timezone.utc)
    await runtime.store.insert_if_absent(
        owner_id="owner-1",
        original_url="https://expired.example",
        short_code="bygone",
        custom_alias=True,
        created_at=now - timedelta(days=2),
        expires_at=now - timedelta(days=1),
    )

    response = await client.get("/bygone")
    assert response.status_code == 410
    assert response.json() == {"detail": "Short URL has expired"}
    assert await runtime.store.find_by_code("bygone") is not None


@pytest.mark.asyncio
async def test_redirect_populates_cache(client: AsyncClient, runtime):
    await runtime.store.insert_if_absent(
        owner_id="owner-1",
        original_url="https://store-only.example/path",
        short_code="coldcode",
        custom_alias=True,
        created_at=datetime.now(timezone.utc),
        expires_at=None,
    )
    assert not (await runtime.cache.get("coldcode")).hit

    first = await client.get("/coldcode")
    assert (await runtime.cache.get("coldcode")).hit
    second = await client.get("/coldcode")

    assert first.status_code == second.status_code == 301
    assert first.headers["location"] == second.headers["location"] == "https://store-only.example/path"


@pytest.mark.asyncio
async def test_concurrent_redirects_count_every_click(client: AsyncClient, runtime):
    code = (await shorten(client, customAlias="popular")).json()["shortCode"]

    responses = await asyncio.gather(*[
        client.get(f"/{code}", headers={"User-Agent": "load-test", "Referer": "https://ref.example"})
        for _ in range(40)
    ])
    assert all(r.status_code == 301 for r in responses)

    await runtime.click_recorder.drain()
    record = await runtime.store.find_by_code(code)
    assert record.click_count == 40

    response = await client.get(f"/api/analytics/{code}", headers=OWNER)
    assert response.status_code == 200
    data = response.json()
    assert data["totalClicks"] == 40
    assert data["activeDays"] == 1
    assert data["dailyClicks"] == [{"date": datetime.now(timezone.utc).date().isoformat(), "clicks": 40}]


@pytest.mark.asyncio
async def test_analytics_is_owner_only(client: AsyncClient):
    await shorten(client, customAlias="private")

    response = await client.get("/api/analytics/private", headers=OTHER_OWNER)
    assert response.status_code == 404

    response = await client.get("/api/analytics/missing", headers=OWNER)
    assert response.status_code == 404

    response = await client.get("/api/analytics/private", headers=OWNER)
    assert response.status_code == 200
    assert response.json() == {"dailyClicks": [], "totalClicks": 0, "activeDays": 0}


@pytest.mark.asyncio
async def test_list_urls_paginates(client: AsyncClient):
    for i in range(5):
        await shorten(client, originalUrl=f"https://site{i}.example")
    await shorten(client, headers=OTHER_OWNER)

    response = await client.get("/api/urls", params={"page": 2, "limit": 2}, headers=OWNER)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 5
    assert data["page"] == 2
    assert data["totalPages"] == 3
    assert len(data["urls"]) == 2
    item = data["urls"][0]
    assert item["shortUrl"] == f"{BASE_URL}/{item['shortCode']}"
    assert item["clickCount"] == 0
    assert item["isActive"] is True


@pytest.mark.asyncio
async def test_list_urls_rejects_bad_paging(client: AsyncClient):
    response = await client.get("/api/urls", params={"limit": 1000}, headers=OWNER)
    assert response.status_code == 400
    response = await client.get("/api/urls", params={"page": 0}, headers=OWNER)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_rate_limit(client: AsyncClient):
    # Limit is 100 per 15 minutes per source address
    for _ in range(100):
        response = await shorten(client)
        assert response.status_code == 201

    response = await shorten(client)
    assert response.status_code == 429
    assert response.json() == {"detail": "Too many URL shortening requests"}
    assert "retry-after" in response.headers


@pytest.mark.asyncio
async def test_store_failure_returns_generic_500(client: AsyncClient, runtime, monkeypatch):
    async def broken(*args, **kwargs):
        raise StoreError("connection to 10.0.0.5:5432 refused")

    monkeypatch.setattr(runtime.store, "list_by_owner", broken)

    response = await client.get("/api/urls", headers=OWNER)
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}


@pytest.mark.asyncio
async def test_unhandled_error_does_not_leak(app, runtime, monkeypatch):
    async def boom(*args, **kwargs):
        raise RuntimeError("secret internals")

    monkeypatch.setattr(runtime.store, "list_by_owner", boom)

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/api/urls", headers=OWNER)

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}
    assert "secret" not in response.text


@pytest.mark.asyncio
async def test_metrics(client: AsyncClient):
    await client.get("/health")
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "cache_hits_total" in response.text


@pytest.mark.asyncio
async def test_security_headers(client: AsyncClient):
    for response in [await client.get("/health"), await client.get("/doesNotExist")]:
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "SAMEORIGIN"
        assert response.headers["referrer-policy"] == "no-referrer"
        assert "max-age=" in response.headers["strict-transport-security"]


@pytest.mark.asyncio
async def test_large_responses_are_compressed(client: AsyncClient):
    await client.get("/health")
    response = await client.get("/metrics", headers={"Accept-Encoding": "gzip"})
    assert response.status_code == 200
    assert response.headers["content-encoding"] == "gzip"
    assert "http_requests_total" in response.text

    response = await client.get("/health", headers={"Accept-Encoding": "gzip"})
    assert "content-encoding" not in response.headers
