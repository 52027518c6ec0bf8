"""fd_cache REST API — transactions, accounts, manual sync and cache metrics.

All endpoints require a bearer JWT; the caller's id is the token ``sub``.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request

from src.fd_cache.api.dependencies import get_cache_service, get_sync_client
from src.fd_cache.application.schemas import SyncRequest
from src.fd_cache.application.service import CacheService
from src.fd_cache.domain.filters import TransactionFilters
from src.fd_common.datetime_utils import days_ago, utc_now
from src.fd_common.enums import CacheKind
from src.fd_common.errors import (
    InvalidDateRangeError,
    InvalidLimitError,
    InvalidPageError,
    SyncProviderError,
)
from src.fd_common.response import ApiResponse, success_response
from src.fd_gateway.auth.dependencies import get_current_user_id
from src.fd_sync.domain.client import SyncClientProtocol, SyncOptions

logger = logging.getLogger(__name__)

router = APIRouter(tags=["finance"])

MANUAL_SYNC_WINDOW_DAYS = 30


def _validated_filters(request: Request) -> TransactionFilters:
    filters = TransactionFilters.from_query_params(request.query_params)
    if filters.page is not None and filters.page < 1:
        raise InvalidPageError()
    # Oversized limits are capped when the query runs; only non-positive ones are rejected.
    if filters.limit is not None and filters.limit < 1:
        raise InvalidLimitError()
    if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
        raise InvalidDateRangeError()
    return filters


def _respond(request: Request, data: object) -> ApiResponse:
    resp = success_response(data)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/transactions")
async def list_transactions(
    user_id: Annotated[str, Depends(get_current_user_id)],
    cache: Annotated[CacheService, Depends(get_cache_service)],
    request: Request,
) -> ApiResponse:
    filters = _validated_filters(request)
    data = await cache.get_transactions(user_id, filters)
    return _respond(request, data.model_dump())


@router.get("/accounts")
async def list_accounts(
    user_id: Annotated[str, Depends(get_current_user_id)],
    cache: Annotated[CacheService, Depends(get_cache_service)],
    request: Request,
) -> ApiResponse:
    data = await cache.get_accounts(user_id)
    return _respond(request, data.model_dump())


@router.post("/sync")
async def sync_accounts(
    user_id: Annotated[str, Depends(get_current_user_id)],
    cache: Annotated[CacheService, Depends(get_cache_service)],
    sync_client: Annotated[SyncClientProtocol, Depends(get_sync_client)],
    request: Request,
    body: SyncRequest | None = None,
) -> ApiResponse:
    body = body or SyncRequest()
    options = SyncOptions(
        force_refresh=body.force_refresh,
        start_date=days_ago(MANUAL_SYNC_WINDOW_DAYS),
        end_date=utc_now(),
        account_ids=body.account_ids,
    )
    result = await sync_client.sync_transactions(user_id, options)

    # The provider may have written rows even when it reports errors.
    await cache.invalidate_cache(user_id, CacheKind.ALL)
    if result.errors:
        logger.warning("Manual sync for user %s reported errors: %s", user_id, result.errors)
        raise SyncProviderError(result.errors)
    return _respond(request, result.as_dict())


@router.get("/cache/metrics")
async def cache_metrics(
    _user_id: Annotated[str, Depends(get_current_user_id)],
    cache: Annotated[CacheService, Depends(get_cache_service)],
    request: Request,
) -> ApiResponse:
    return _respond(request, cache.get_metrics().as_dict())
