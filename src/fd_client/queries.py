"""Query bindings: what a UI component calls to read, refresh and mutate cached data.

Each query owns one cache key. Fetch failures never raise out of a query;
they land in the key's ``error`` state for the UI to render.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from src.fd_cache.domain.filters import TransactionFilters
from src.fd_cache.domain.keys import filters_fingerprint
from src.fd_client.api_client import ApiClientError, FinanceApiClient
from src.fd_client.manager import ClientCacheManager, Subscriber
from src.fd_client.state import (
    CachePayload,
    CacheState,
    OptimisticUpdate,
    PayloadKind,
    UpdateType,
)

logger = logging.getLogger(__name__)

ACCOUNTS_KEY = "accounts"
TRANSACTIONS_KEY_PREFIX = "transactions:"


class _Query(ABC):
    kind: PayloadKind

    def __init__(self, manager: ClientCacheManager, api: FinanceApiClient, key: str) -> None:
        self._manager = manager
        self._api = api
        self.key = key
        self._refetch_task: asyncio.Task[CacheState] | None = None

    @property
    def state(self) -> CacheState:
        return self._manager.get(self.key) or CacheState()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self._manager.subscribe(self.key, callback)

    async def fetch(self, refetch: bool = False) -> CacheState:
        if refetch:
            self._manager.set_refetching(self.key, True)
        else:
            self._manager.set_loading(self.key, True)
        try:
            body = await self._load()
            self._manager.set(self.key, CachePayload.from_response(self.kind, body))
        except ApiClientError as exc:
            logger.info("Fetch for %s failed: %s", self.key, exc)
            self._manager.set_error(self.key, exc.message)
        finally:
            if self.state.is_loading:
                self._manager.set_loading(self.key, False)
            if self.state.is_refetching:
                self._manager.set_refetching(self.key, False)
        return self.state

    async def refetch(self) -> CacheState:
        return await self.fetch(refetch=True)

    async def ensure(self) -> CacheState:
        """Load when empty; when stale, start a background refetch and return the cached state."""
        state = self.state
        if state.data is None:
            if not state.is_loading:
                return await self.fetch()
            return state
        if self._manager.is_stale(self.key) and not state.is_refetching:
            if self._refetch_task is None or self._refetch_task.done():
                self._refetch_task = asyncio.create_task(self.refetch())
        return self.state

    async def settle(self) -> None:
        """Wait for a background refetch started by ``ensure``."""
        if self._refetch_task is not None:
            await self._refetch_task

    def confirm(self, update_id: str) -> bool:
        return self._manager.remove_optimistic_update(self.key, update_id)

    def rollback(self, update_id: str) -> bool:
        return self._manager.rollback_optimistic_update(self.key, update_id)

    @abstractmethod
    async def _load(self) -> dict[str, Any]:
        """Fetch the raw response body for this query's key."""


class TransactionsQuery(_Query):
    kind = PayloadKind.TRANSACTIONS

    def __init__(
        self,
        manager: ClientCacheManager,
        api: FinanceApiClient,
        filters: TransactionFilters | None = None,
    ) -> None:
        self.filters = filters or TransactionFilters()
        super().__init__(
            manager, api, f"{TRANSACTIONS_KEY_PREFIX}{filters_fingerprint(self.filters)}"
        )

    async def _load(self) -> dict[str, Any]:
        return await self._api.get_transactions(self.filters)

    def add_optimistic_transaction(
        self, transaction: dict[str, Any], rollback: Callable[[], None] | None = None
    ) -> str:
        update = OptimisticUpdate(
            id=f"temp-{uuid.uuid4().hex[:12]}",
            type=UpdateType.ADD,
            data=dict(transaction),
            timestamp=self._manager.now(),
            rollback=rollback,
        )
        self._manager.add_optimistic_update(self.key, update)
        return update.id


class AccountsQuery(_Query):
    kind = PayloadKind.ACCOUNTS

    def __init__(self, manager: ClientCacheManager, api: FinanceApiClient) -> None:
        super().__init__(manager, api, ACCOUNTS_KEY)

    async def _load(self) -> dict[str, Any]:
        return await self._api.get_accounts()

    def update_optimistic_account(
        self,
        account_id: str,
        changes: dict[str, Any],
        rollback: Callable[[], None] | None = None,
    ) -> str:
        update = OptimisticUpdate(
            id=f"update-{account_id}-{uuid.uuid4().hex[:8]}",
            type=UpdateType.UPDATE,
            data={**changes, "id": account_id},
            timestamp=self._manager.now(),
            rollback=rollback,
        )
        self._manager.add_optimistic_update(self.key, update)
        return update.id


class SyncMutation:
    def __init__(self, manager: ClientCacheManager, api: FinanceApiClient) -> None:
        self._manager = manager
        self._api = api
        self.is_loading = False
        self.error: str | None = None

    async def run(
        self, account_ids: list[str] | None = None, force_refresh: bool = False
    ) -> dict[str, Any] | None:
        """Trigger a server-side sync; on success every account/transaction view goes stale."""
        self.is_loading = True
        self.error = None
        try:
            result = await self._api.sync(account_ids=account_ids, force_refresh=force_refresh)
        except ApiClientError as exc:
            logger.info("Sync failed: %s", exc)
            self.error = exc.message
            return None
        finally:
            self.is_loading = False

        self._manager.invalidate(ACCOUNTS_KEY)
        self._manager.invalidate_prefix(TRANSACTIONS_KEY_PREFIX)
        return result
