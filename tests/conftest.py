import pytest
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from linksnap.config import Settings
from linksnap.main import create_app

BASE_URL = "https://lnk.test"

@pytest.fixture
def settings() -> Settings:
    # Memory backends so the suite runs without Postgres or Redis.
    return Settings(
        STORE_BACKEND="memory",
        CACHE_BACKEND="memory",
        REDIS_URL="",
        BASE_URL=BASE_URL,
        ENVIRONMENT="test",
        CLICK_DRAIN_TIMEOUT_SECONDS=0,
    )

@pytest.fixture
async def app(settings: Settings):
    app = create_app(settings)
    # ASGITransport does not run lifespan events, so enter it by hand.
    async with app.router.lifespan_context(app):
        yield app

@pytest.fixture
def runtime(app):
    return app.state.runtime

@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with ASGITransport(app=app) as transport:
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
