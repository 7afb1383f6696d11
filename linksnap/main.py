import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from .api import links
from .config import Settings, settings as default_settings
from .dependencies import get_click_context, get_resolver, get_runtime
from .exceptions import ShortenerError
from .logging_config import setup_logging
from .middleware import SecurityHeadersMiddleware
from .observability import PrometheusMiddleware, metrics_endpoint
from .runtime import Runtime, build_runtime
from .schemas import HealthResponse
from .services.click_recorder import ClickContext
from .services.resolver import RedirectResolver

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Internal server error"


async def shortener_error_handler(request: Request, exc: ShortenerError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
        detail = GENERIC_ERROR
    else:
        detail = exc.detail
    headers = None
    if getattr(exc, "retry_after", None):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content={"detail": detail}, headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"][1:]) or str(error["loc"][0])
        message = error["msg"].removeprefix("Value error, ")
        messages.append(f"{location}: {message}")
    return JSONResponse(status_code=400, content={"detail": "; ".join(messages)})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": GENERIC_ERROR})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup logic
        app.state.runtime = await build_runtime(settings)
        yield
        # Shutdown logic
        await app.state.runtime.close()

    app = FastAPI(
        title="LinkSnap",
        description="URL shortener with cache-aside redirects and asynchronous click analytics",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ShortenerError, shortener_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.add_route("/metrics", metrics_endpoint)

    app.include_router(links.router, prefix="/api")

    @app.get("/health", response_model=HealthResponse)
    async def health(runtime: Runtime = Depends(get_runtime)):
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc),
            uptime=runtime.uptime,
        )

    # Registered last so it never shadows the routes above.
    @app.get("/{short_code}")
    async def redirect_to_url(
        short_code: str,
        resolver: RedirectResolver = Depends(get_resolver),
        context: ClickContext = Depends(get_click_context),
    ):
        resolved = await resolver.resolve(short_code, context)
        return RedirectResponse(url=resolved.target_url, status_code=301)

    return app


app = create_app()
