"""FastAPI dependencies exposing the AppContext to route handlers.

Usage in any router:
    from src.fd_cache.api.dependencies import get_cache_service

    @router.get("/things")
    async def things(cache: CacheService = Depends(get_cache_service)):
        ...

Tests swap the engine through ``app.dependency_overrides[get_cache_service]``.
"""

from fastapi import Request

from src.fd_cache.application.context import AppContext
from src.fd_cache.application.service import CacheService
from src.fd_common.errors import InternalError
from src.fd_sync.domain.client import SyncClientProtocol


def get_app_context(request: Request) -> AppContext:
    context: AppContext | None = getattr(request.app.state, "context", None)
    if context is None:
        raise InternalError("Application context is not initialised")
    return context


def get_cache_service(request: Request) -> CacheService:
    return get_app_context(request).cache


def get_sync_client(request: Request) -> SyncClientProtocol:
    return get_app_context(request).sync_client
