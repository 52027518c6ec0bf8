"""AppContext — the process-wide objects request handlers share.

Built once in the FastAPI lifespan and stored on ``app.state.context``;
handlers reach it through the dependencies in ``fd_cache.api.dependencies``.
``reset_cache_service`` tears it down and rebuilds it (test isolation).
"""

import logging
from dataclasses import dataclass

from fastapi import FastAPI

from src.fd_cache.application.service import CacheOptions, CacheService, SessionFactory
from src.fd_common.database import async_session_factory
from src.fd_sync.domain.client import SyncClientProtocol
from src.fd_sync.infrastructure.http_client import HttpSyncClient

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    cache: CacheService
    sync_client: SyncClientProtocol

    def start(self) -> None:
        self.cache.start()

    async def close(self) -> None:
        await self.cache.close()
        await self.sync_client.aclose()


def build_app_context(
    session_factory: SessionFactory | None = None,
    sync_client: SyncClientProtocol | None = None,
    options: CacheOptions | None = None,
) -> AppContext:
    client = sync_client or HttpSyncClient()
    cache = CacheService(
        sync_client=client,
        session_factory=session_factory or async_session_factory,
        options=options,
    )
    return AppContext(cache=cache, sync_client=client)


async def reset_cache_service(app: FastAPI, context: AppContext | None = None) -> AppContext:
    """Close the current context (if any) and install a fresh one."""
    current: AppContext | None = getattr(app.state, "context", None)
    if current is not None:
        await current.close()
    app.state.context = context or build_app_context()
    logger.info("Application context reset")
    return app.state.context
