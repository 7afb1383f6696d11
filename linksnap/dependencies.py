from typing import Optional

from fastapi import Depends, Header, Request

from .exceptions import Forbidden, Unauthorized
from .runtime import Runtime
from .services.allocator import ShortCodeAllocator
from .services.click_recorder import ClickContext
from .services.resolver import RedirectResolver
from .stores.base import UrlStore

MAX_OWNER_ID_LENGTH = 255

def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime

def get_store(runtime: Runtime = Depends(get_runtime)) -> UrlStore:
    return runtime.store

def get_allocator(runtime: Runtime = Depends(get_runtime)) -> ShortCodeAllocator:
    return runtime.allocator

def get_resolver(runtime: Runtime = Depends(get_runtime)) -> RedirectResolver:
    return runtime.resolver

async def get_owner_id(x_owner_id: Optional[str] = Header(None, alias="X-Owner-Id")) -> str:
    # The identity is validated by the gateway in front of the service;
    # here it is only required to be present and sane.
    if x_owner_id is None:
        raise Unauthorized()
    if not x_owner_id.strip() or len(x_owner_id) > MAX_OWNER_ID_LENGTH:
        raise Forbidden()
    return x_owner_id

def get_click_context(request: Request) -> ClickContext:
    return ClickContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer"),
    )
