"""Tests for HttpSyncClient over httpx.MockTransport."""

import json
from datetime import UTC, datetime

import httpx
import pytest

from src.fd_common.errors import SyncUnavailableError
from src.fd_sync.domain.client import SyncOptions
from src.fd_sync.infrastructure.http_client import HttpSyncClient


def _client(handler) -> HttpSyncClient:
    return HttpSyncClient(base_url="http://sync.test", timeout=5.0, transport=httpx.MockTransport(handler))


async def test_posts_options_and_parses_result() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "success": True,
            "accounts_updated": 2,
            "transactions_added": 14,
            "transactions_updated": 3,
            "errors": [],
            "last_sync_time": "2024-06-01T10:00:00+00:00",
        })

    client = _client(handler)
    start = datetime(2024, 5, 1, tzinfo=UTC)
    result = await client.sync_transactions(
        "user-1", SyncOptions(force_refresh=True, start_date=start, account_ids=["acc-1"])
    )
    await client.aclose()

    assert seen["path"] == "/sync/transactions"
    assert seen["body"]["user_id"] == "user-1"
    assert seen["body"]["force_refresh"] is True
    assert seen["body"]["start_date"] == "2024-05-01T00:00:00+00:00"
    assert seen["body"]["end_date"] is None
    assert seen["body"]["account_ids"] == ["acc-1"]
    assert result.success is True
    assert result.transactions_added == 14
    assert result.last_sync_time == datetime(2024, 6, 1, 10, tzinfo=UTC)


async def test_provider_errors_stay_in_result() -> None:
    client = _client(lambda request: httpx.Response(
        200, json={"success": False, "errors": ["ITEM_LOGIN_REQUIRED"]}
    ))

    result = await client.sync_transactions("user-1", SyncOptions())

    assert result.success is False
    assert result.errors == ["ITEM_LOGIN_REQUIRED"]


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"detail": "boom"}),
        httpx.Response(200, content=b"<html>"),
        httpx.Response(200, json=["not", "an", "object"]),
    ],
)
async def test_bad_responses_raise_unavailable(response: httpx.Response) -> None:
    client = _client(lambda request: response)

    with pytest.raises(SyncUnavailableError):
        await client.sync_transactions("user-1", SyncOptions())


async def test_transport_error_raises_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(SyncUnavailableError):
        await _client(handler).sync_transactions("user-1", SyncOptions())


@pytest.mark.parametrize(
    "payload",
    [
        {"success": True, "transactions_added": "lots"},
        {"success": True, "accounts_updated": [1]},
        {"success": True, "errors": "ITEM_LOGIN_REQUIRED"},
        {"success": True, "last_sync_time": "not-a-date"},
        {"success": True, "last_sync_time": 1717236000},
    ],
)
async def test_malformed_fields_raise_unavailable(payload: dict) -> None:
    client = _client(lambda request: httpx.Response(200, json=payload))

    with pytest.raises(SyncUnavailableError):
        await client.sync_transactions("user-1", SyncOptions())


async def test_null_fields_read_as_empty() -> None:
    client = _client(lambda request: httpx.Response(
        200, json={"success": True, "errors": None, "transactions_added": None}
    ))

    result = await client.sync_transactions("user-1", SyncOptions())

    assert result.errors == []
    assert result.transactions_added == 0
