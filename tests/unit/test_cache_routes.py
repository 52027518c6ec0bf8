"""Route tests for the fd_cache API via httpx ASGITransport with dependency overrides."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from src.fd_cache.api.dependencies import get_cache_service, get_sync_client
from src.fd_cache.application.schemas import (
    AccountsResponse,
    Pagination,
    TransactionItem,
    TransactionsResponse,
)
from src.fd_cache.domain.models import CacheMetrics
from src.fd_common.enums import CacheKind
from src.fd_common.errors import SyncUnavailableError
from src.fd_gateway.auth.dependencies import get_current_user_id
from src.fd_gateway.auth.jwt_handler import create_access_token
from src.fd_sync.domain.client import SyncResult
from src.main import app


def _transactions() -> TransactionsResponse:
    return TransactionsResponse(
        transactions=[
            TransactionItem(
                id="tx-1", account_id="acc-1", amount=12.5, date="2024-03-01", name="Coffee"
            )
        ],
        pagination=Pagination.build(1, 50, 1),
    )


@pytest.fixture
def cache() -> MagicMock:
    svc = MagicMock()
    svc.get_transactions = AsyncMock(return_value=_transactions())
    svc.get_accounts = AsyncMock(return_value=AccountsResponse(accounts=[]))
    svc.invalidate_cache = AsyncMock(return_value=3)
    svc.get_metrics.return_value = CacheMetrics(total_requests=4, hit_count=3, miss_count=1)
    return svc


@pytest.fixture
def sync_client() -> AsyncMock:
    client = AsyncMock()
    client.sync_transactions.return_value = SyncResult(success=True, transactions_added=5)
    return client


@pytest.fixture
def overrides(cache, sync_client):
    app.dependency_overrides[get_cache_service] = lambda: cache
    app.dependency_overrides[get_sync_client] = lambda: sync_client
    yield
    app.dependency_overrides.clear()


@pytest.fixture
async def api(overrides) -> AsyncClient:
    app.dependency_overrides[get_current_user_id] = lambda: "user-1"
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


class TestTransactions:
    async def test_returns_envelope(self, api, cache) -> None:
        resp = await api.get("/api/v1/transactions", params={"page": "2", "search": "coffee"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["transactions"][0]["id"] == "tx-1"
        assert body["request_id"] == resp.headers["X-Request-ID"]
        user_id, filters = cache.get_transactions.await_args.args
        assert user_id == "user-1"
        assert filters.page == 2
        assert filters.search == "coffee"

    @pytest.mark.parametrize(
        ("params", "code"),
        [
            ({"page": "0"}, "INVALID_PAGE"),
            ({"page": "-3"}, "INVALID_PAGE"),
            ({"limit": "0"}, "INVALID_LIMIT"),
            ({"limit": "-5"}, "INVALID_LIMIT"),
            ({"start_date": "2024-02-01", "end_date": "2024-01-01"}, "INVALID_DATE_RANGE"),
            ({"limit": "ten"}, "VALIDATION_ERROR"),
            ({"start_date": "yesterday"}, "VALIDATION_ERROR"),
        ],
    )
    async def test_rejects_invalid_params(self, api, cache, params, code) -> None:
        resp = await api.get("/api/v1/transactions", params=params)

        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["error"]["code"] == code
        cache.get_transactions.assert_not_awaited()

    async def test_oversized_limit_is_capped(self, api, cache) -> None:
        resp = await api.get("/api/v1/transactions", params={"limit": "500"})

        assert resp.status_code == 200
        _, filters = cache.get_transactions.await_args.args
        assert filters.resolved_limit() == 100

    async def test_store_error_maps_to_503(self, api, cache) -> None:
        cache.get_transactions.side_effect = OperationalError(
            "SELECT 1", {}, ConnectionRefusedError("connection refused")
        )

        resp = await api.get("/api/v1/transactions")

        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "DATABASE_ERROR"


class TestAuth:
    async def test_missing_token_is_401(self, overrides) -> None:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            resp = await ac.get("/api/v1/accounts")
        assert resp.status_code == 401

    async def test_bearer_token_identifies_user(self, overrides, cache) -> None:
        headers = {"Authorization": f"Bearer {create_access_token('user-42')}"}
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            resp = await ac.get("/api/v1/accounts", headers=headers)

        assert resp.status_code == 200
        cache.get_accounts.assert_awaited_once_with("user-42")


class TestAccounts:
    async def test_returns_accounts(self, api) -> None:
        resp = await api.get("/api/v1/accounts")

        assert resp.status_code == 200
        assert resp.json()["data"] == {"accounts": []}

    async def test_timeout_maps_to_503(self, api, cache) -> None:
        cache.get_accounts.side_effect = TimeoutError()

        resp = await api.get("/api/v1/accounts")

        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "DATABASE_ERROR"

    async def test_unexpected_error_maps_to_500(self, overrides, cache) -> None:
        app.dependency_overrides[get_current_user_id] = lambda: "user-1"
        cache.get_accounts.side_effect = RuntimeError("boom")
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.get("/api/v1/accounts")

        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "INTERNAL_ERROR"


class TestSync:
    async def test_sync_invalidates_user_cache(self, api, cache, sync_client) -> None:
        resp = await api.post(
            "/api/v1/sync", json={"account_ids": ["acc-1"], "force_refresh": True}
        )

        assert resp.status_code == 200
        assert resp.json()["data"]["transactions_added"] == 5
        user_id, options = sync_client.sync_transactions.await_args.args
        assert user_id == "user-1"
        assert options.force_refresh is True
        assert options.account_ids == ["acc-1"]
        assert (options.end_date - options.start_date).days == 30
        cache.invalidate_cache.assert_awaited_once_with("user-1", CacheKind.ALL)

    async def test_sync_without_body(self, api, sync_client) -> None:
        resp = await api.post("/api/v1/sync")

        assert resp.status_code == 200
        _, options = sync_client.sync_transactions.await_args.args
        assert options.force_refresh is False
        assert options.account_ids is None

    async def test_provider_errors_map_to_502(self, api, cache, sync_client) -> None:
        sync_client.sync_transactions.return_value = SyncResult(
            success=False, errors=["ITEM_LOGIN_REQUIRED"]
        )

        resp = await api.post("/api/v1/sync", json={})

        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "SYNC_ERROR"
        cache.invalidate_cache.assert_awaited_once()

    async def test_unreachable_worker_maps_to_503(self, api, cache, sync_client) -> None:
        sync_client.sync_transactions.side_effect = SyncUnavailableError("connect timeout")

        resp = await api.post("/api/v1/sync", json={})

        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "SYNC_UNAVAILABLE"
        cache.invalidate_cache.assert_not_awaited()

    async def test_blank_account_id_is_validation_error(self, api, sync_client) -> None:
        resp = await api.post("/api/v1/sync", json={"account_ids": [" "]})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
        sync_client.sync_transactions.assert_not_awaited()


class TestMetrics:
    async def test_returns_metrics(self, api) -> None:
        resp = await api.get("/api/v1/cache/metrics")

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["hit_rate"] == 0.75
        assert data["total_requests"] == 4


async def test_health(client) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
