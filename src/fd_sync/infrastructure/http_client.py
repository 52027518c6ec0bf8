"""HttpSyncClient — talks to the aggregation sync worker over HTTP.

The worker owns the provider credentials and writes accounts/transactions
into the store; this adapter only asks it to run a sync and reports the
outcome. Transport failures raise SyncUnavailableError, never a raw httpx
exception; errors the provider itself reports stay inside SyncResult.errors.
"""

import logging
from datetime import datetime
from typing import Any

import httpx

from config.settings import settings
from src.fd_common.errors import SyncUnavailableError
from src.fd_sync.domain.client import SyncOptions, SyncResult

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_result(payload: dict[str, Any]) -> SyncResult:
    """Raises ValueError/TypeError on fields of the wrong shape."""
    errors = payload.get("errors") or []
    if not isinstance(errors, list):
        raise TypeError(f"errors must be a list, got {type(errors).__name__}")
    result = SyncResult(
        success=bool(payload.get("success", False)),
        accounts_updated=int(payload.get("accounts_updated") or 0),
        transactions_added=int(payload.get("transactions_added") or 0),
        transactions_updated=int(payload.get("transactions_updated") or 0),
        errors=[str(e) for e in errors],
    )
    if payload.get("last_sync_time"):
        result.last_sync_time = datetime.fromisoformat(payload["last_sync_time"])
    return result


class HttpSyncClient:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.SYNC_SERVICE_URL,
            timeout=timeout or settings.SYNC_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def sync_transactions(self, user_id: str, options: SyncOptions) -> SyncResult:
        body: dict[str, Any] = {
            "user_id": user_id,
            "force_refresh": options.force_refresh,
            "start_date": _iso(options.start_date),
            "end_date": _iso(options.end_date),
            "account_ids": options.account_ids,
        }
        try:
            resp = await self._client.post("/sync/transactions", json=body)
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Sync request failed for user %s: %s", user_id, exc)
            raise SyncUnavailableError(str(exc)) from exc
        if not isinstance(payload, dict):
            raise SyncUnavailableError("Malformed sync response")

        try:
            return _parse_result(payload)
        except (ValueError, TypeError) as exc:
            logger.warning("Unreadable sync reply for user %s: %s", user_id, exc)
            raise SyncUnavailableError("Malformed sync response") from exc

    async def aclose(self) -> None:
        await self._client.aclose()
