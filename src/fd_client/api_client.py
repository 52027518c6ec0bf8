"""FinanceApiClient — the HTTP boundary the client cache fetches through.

Every endpoint answers with the ``{success, data}`` / ``{success: false,
error: {code, message}}`` envelope. A non-2xx status, ``success: false``,
an unreadable body or a transport failure all raise ApiClientError.
"""

import logging
from typing import Any

import httpx

from src.fd_cache.domain.filters import TransactionFilters

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class ApiClientError(Exception):
    def __init__(self, code: str, message: str, status: int = 0) -> None:
        self.code = code
        self.message = message
        self.status = status
        super().__init__(f"{code}: {message}")


class FinanceApiClient:
    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "FinanceApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def get_transactions(self, filters: TransactionFilters | None = None) -> dict[str, Any]:
        params = (filters or TransactionFilters()).to_query_params()
        return await self._request("GET", "/transactions", params=params)

    async def get_accounts(self) -> dict[str, Any]:
        return await self._request("GET", "/accounts")

    async def sync(
        self, account_ids: list[str] | None = None, force_refresh: bool = False
    ) -> dict[str, Any]:
        body = {"account_ids": account_ids, "force_refresh": force_refresh}
        return await self._request("POST", "/sync", json=body)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = await self._client.request(method, f"{API_PREFIX}{path}", **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ApiClientError("NETWORK_ERROR", str(exc) or type(exc).__name__) from exc

        try:
            body = resp.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            raise ApiClientError(
                f"HTTP_{resp.status_code}", "Malformed response body", resp.status_code
            )
        if not resp.is_success or not body.get("success"):
            error = body.get("error") or {}
            raise ApiClientError(
                str(error.get("code") or f"HTTP_{resp.status_code}"),
                str(error.get("message") or f"Request failed with status {resp.status_code}"),
                resp.status_code,
            )

        data = body.get("data")
        if not isinstance(data, dict):
            raise ApiClientError("INVALID_RESPONSE", "Response data must be an object", resp.status_code)
        return data
