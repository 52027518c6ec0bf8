"""CacheService — in-process read-through cache for the transactions and accounts read models.

Entry lifecycle (ages measured with the injected clock, in seconds):
  fresh    age <= ttl              → served from memory, counted as a hit
  stale    age >  ttl              → served from memory + detached refresh (SWR), a hit
  missing  / SWR disabled          → read from the store, counted as a miss
  expired  age >  2 × ttl          → dropped by the periodic sweep

Auto-sync: when a store read comes back empty for a "basic" query, the engine
asks the aggregation provider to sync once per user per cooldown window and
re-reads the store. The cooldown slot is claimed before the first await, so
two interleaved empty reads for one user trigger at most one upstream call.

Store access: every read opens its own session from ``session_factory``; a
background refresh outlives the request that triggered it and must not share
its session.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime, time as dt_time, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.fd_cache.application.schemas import (
    AccountItem,
    AccountsResponse,
    Pagination,
    TransactionItem,
    TransactionsResponse,
)
from src.fd_cache.domain.filters import TransactionFilters
from src.fd_cache.domain.keys import (
    accounts_key,
    connections_key,
    key_belongs_to_user,
    transactions_key,
    transactions_prefix,
)
from src.fd_cache.domain.models import CacheEntry, CacheMetrics
from src.fd_common.datetime_utils import days_ago, utc_now
from src.fd_common.enums import CacheKind
from src.fd_common.errors import SyncProviderError
from src.fd_ledger.domain.models import Account, Transaction
from src.fd_ledger.domain.repository import LedgerRepositoryProtocol
from src.fd_ledger.infrastructure.persistence import LedgerRepository
from src.fd_sync.domain.client import SyncClientProtocol, SyncOptions

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class CacheEntryError(Exception):
    """An entry failed bookkeeping checks; callers fall back to the store."""


@dataclass
class CacheOptions:
    ttl: float = 300.0
    max_size: int = 1000
    enable_metrics: bool = True
    stale_while_revalidate: bool = True
    enable_auto_sync: bool = True
    auto_sync_cooldown: float = 300.0
    cleanup_interval: float = 60.0
    transactions_sync_window_days: int = 30
    accounts_sync_window_days: int = 7

    @classmethod
    def from_settings(cls) -> "CacheOptions":
        return cls(
            ttl=settings.CACHE_TTL_SECONDS,
            max_size=settings.CACHE_MAX_SIZE,
            enable_metrics=settings.CACHE_ENABLE_METRICS,
            stale_while_revalidate=settings.CACHE_STALE_WHILE_REVALIDATE,
            enable_auto_sync=settings.CACHE_ENABLE_AUTO_SYNC,
            auto_sync_cooldown=settings.CACHE_AUTO_SYNC_COOLDOWN_SECONDS,
            cleanup_interval=settings.CACHE_CLEANUP_INTERVAL_SECONDS,
        )


class CacheService:
    def __init__(
        self,
        sync_client: SyncClientProtocol,
        session_factory: SessionFactory,
        repo: LedgerRepositoryProtocol | None = None,
        options: CacheOptions | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sync_client = sync_client
        self._session_factory = session_factory
        self._repo: LedgerRepositoryProtocol = repo or LedgerRepository()
        self._options = options or CacheOptions.from_settings()
        self._clock = clock

        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._metrics = CacheMetrics()
        self._last_sync_attempts: dict[str, float] = {}

        # Bumped on every invalidation for a user; in-flight reads that started
        # under an older epoch do not write back into the cache.
        self._epochs: dict[str, int] = {}
        self._clear_generation = 0

        self._refreshing: set[str] = set()
        self._background_tasks: set[asyncio.Task[None]] = set()
        self._sweeper: asyncio.Task[None] | None = None

    @property
    def options(self) -> CacheOptions:
        return self._options

    # ------------------------------------------------------------------
    # Read paths
    # ------------------------------------------------------------------

    async def get_transactions(
        self, user_id: str, filters: TransactionFilters | None = None
    ) -> TransactionsResponse:
        filters = filters or TransactionFilters()
        started = time.perf_counter()
        try:
            key = transactions_key(user_id, filters)
            cached = self._lookup(key, TransactionsResponse)
        except Exception:
            logger.exception("Cache lookup failed for user %s, reading store directly", user_id)
            data = await self._fetch_transactions(user_id, filters)
            self._record(False, started)
            return data

        if cached is not None:
            if not cached.is_stale(self._clock()):
                self._record(True, started)
                return cached.data
            if self._options.stale_while_revalidate:
                logger.debug("Cache STALE for %s, serving stale data", key)
                self._schedule_refresh(
                    key, user_id, lambda: self._fetch_transactions(user_id, filters)
                )
                self._record(True, started)
                return cached.data

        token = self._write_token(user_id)
        data = await self._fetch_transactions(user_id, filters)

        if not data.transactions and filters.is_basic() and self._claim_sync_slot(user_id):
            window_start = (
                datetime.combine(filters.start_date, dt_time.min, tzinfo=timezone.utc)
                if filters.start_date
                else days_ago(self._options.transactions_sync_window_days)
            )
            logger.info("No transactions for user %s, attempting upstream sync", user_id)
            options = SyncOptions(force_refresh=True, start_date=window_start, end_date=utc_now())
            if await self._auto_sync_for_read(user_id, options, started):
                data = await self._fetch_transactions(user_id, filters)

        self._store_if_current(key, user_id, token, data)
        self._record(False, started)
        return data

    async def get_accounts(self, user_id: str) -> AccountsResponse:
        started = time.perf_counter()
        try:
            key = accounts_key(user_id)
            cached = self._lookup(key, AccountsResponse)
        except Exception:
            logger.exception("Cache lookup failed for user %s, reading store directly", user_id)
            data = await self._fetch_accounts(user_id)
            self._record(False, started)
            return data

        if cached is not None:
            if not cached.is_stale(self._clock()):
                self._record(True, started)
                return cached.data
            if self._options.stale_while_revalidate:
                self._schedule_refresh(key, user_id, lambda: self._fetch_accounts(user_id))
                self._record(True, started)
                return cached.data

        token = self._write_token(user_id)
        data = await self._fetch_accounts(user_id)

        if not data.accounts and self._claim_sync_slot(user_id):
            logger.info("No accounts for user %s, attempting upstream sync", user_id)
            options = SyncOptions(
                force_refresh=True,
                start_date=days_ago(self._options.accounts_sync_window_days),
                end_date=utc_now(),
            )
            if await self._auto_sync_for_read(user_id, options, started):
                data = await self._fetch_accounts(user_id)

        self._store_if_current(key, user_id, token, data)
        self._record(False, started)
        return data

    # ------------------------------------------------------------------
    # Write-through merge paths
    # ------------------------------------------------------------------

    async def cache_transactions(self, user_id: str, transactions: list[Transaction]) -> None:
        """Merge freshly written transactions into the default view.

        Every other filtered view of the user is invalidated: any write can
        change any page.
        """
        try:
            key = transactions_key(user_id, TransactionFilters())
            existing = self._entries.get(key)
            self._invalidate_transactions(user_id, keep=key)
            if existing is not None and isinstance(existing.data, TransactionsResponse):
                self._put(key, _merge_transactions(existing.data, transactions))
        except Exception:
            logger.exception("Error caching transactions for user %s", user_id)
            raise

    async def cache_accounts(self, user_id: str, accounts: list[Account]) -> None:
        try:
            missing = sorted({a.connection_id for a in accounts if not a.institution_name})
            names: dict[str, str] = {}
            if missing:
                async with self._session_factory() as db:
                    names = await self._repo.get_institution_names(db, missing)

            response = AccountsResponse(
                accounts=[
                    AccountItem.from_domain(a, a.institution_name or names.get(a.connection_id))
                    for a in accounts
                ]
            )
            self._bump_epoch(user_id)
            self._put(accounts_key(user_id), response)
            self._entries.pop(connections_key(user_id), None)
        except Exception:
            logger.exception("Error caching accounts for user %s", user_id)
            raise

    # ------------------------------------------------------------------
    # Invalidation / maintenance
    # ------------------------------------------------------------------

    async def invalidate_cache(self, user_id: str, kind: CacheKind | str) -> int:
        """Remove cached views for a user. Returns the number of entries removed."""
        kind = CacheKind(kind)
        if kind is CacheKind.TRANSACTIONS:
            removed = self._invalidate_transactions(user_id)
        elif kind is CacheKind.ACCOUNTS:
            self._bump_epoch(user_id)
            removed = int(self._entries.pop(accounts_key(user_id), None) is not None)
        elif kind is CacheKind.CONNECTIONS:
            self._bump_epoch(user_id)
            removed = int(self._entries.pop(connections_key(user_id), None) is not None)
        else:
            self._bump_epoch(user_id)
            doomed = [k for k in self._entries if key_belongs_to_user(k, user_id)]
            for k in doomed:
                del self._entries[k]
            removed = len(doomed)
        logger.info("Invalidated %d %s cache entries for user %s", removed, kind.value, user_id)
        return removed

    def sweep_expired(self) -> int:
        now = self._clock()
        doomed = [k for k, entry in self._entries.items() if entry.is_expired(now)]
        for k in doomed:
            del self._entries[k]
        if doomed:
            logger.debug("Swept %d expired cache entries", len(doomed))
        return len(doomed)

    def get_metrics(self) -> CacheMetrics:
        return self._metrics.snapshot(cache_size=len(self._entries))

    async def clear_all(self) -> None:
        self._entries.clear()
        self._clear_generation += 1
        self._metrics = CacheMetrics()

    def cached_keys(self) -> list[str]:
        """Keys in LRU order, least recently used first."""
        return list(self._entries)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="cache-sweeper")

    async def wait_for_refreshes(self) -> None:
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def close(self) -> None:
        tasks = list(self._background_tasks)
        if self._sweeper is not None:
            tasks.append(self._sweeper)
            self._sweeper = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    async def _fetch_transactions(
        self, user_id: str, filters: TransactionFilters
    ) -> TransactionsResponse:
        page = filters.resolved_page()
        limit = filters.resolved_limit()
        async with self._session_factory() as db:
            rows = await self._repo.list_transactions(db, user_id, filters, filters.offset(), limit)
            total = await self._repo.count_transactions(db, user_id, filters)
        logger.debug(
            "Store returned %d of %d transactions for user %s (page %d, limit %d)",
            len(rows), total, user_id, page, limit,
        )
        return TransactionsResponse(
            transactions=[TransactionItem.from_domain(tx) for tx in rows],
            pagination=Pagination.build(page, limit, total),
        )

    async def _fetch_accounts(self, user_id: str) -> AccountsResponse:
        async with self._session_factory() as db:
            accounts = await self._repo.list_accounts(db, user_id)
        return AccountsResponse(accounts=[AccountItem.from_domain(a) for a in accounts])

    # ------------------------------------------------------------------
    # Auto-sync
    # ------------------------------------------------------------------

    def _claim_sync_slot(self, user_id: str) -> bool:
        """Check the cooldown and record the attempt in one step (no await in between)."""
        if not self._options.enable_auto_sync:
            return False
        now = self._clock()
        last = self._last_sync_attempts.get(user_id)
        if last is not None and now - last < self._options.auto_sync_cooldown:
            return False
        self._last_sync_attempts[user_id] = now
        return True

    async def _run_auto_sync(self, user_id: str, options: SyncOptions) -> bool:
        """Returns True when the store should be re-read.

        Provider-reported errors raise SyncProviderError; any other failure is
        logged and treated as "no data yet".
        """
        try:
            async with self._session_factory() as db:
                has_connections = await self._repo.has_active_connections(db, user_id)
            if not has_connections:
                logger.info("User %s has no active connections, skipping sync", user_id)
                return False
            result = await self._sync_client.sync_transactions(user_id, options)
        except Exception:
            logger.exception("Upstream sync failed for user %s", user_id)
            return False

        if result.errors:
            logger.warning("Sync completed with errors for user %s: %s", user_id, result.errors)
            raise SyncProviderError(result.errors)
        logger.info(
            "Synced user %s: %d added, %d updated",
            user_id, result.transactions_added, result.transactions_updated,
        )
        return True

    async def _auto_sync_for_read(self, user_id: str, options: SyncOptions, started: float) -> bool:
        # A read that ends in SyncProviderError still counts as a miss.
        try:
            return await self._run_auto_sync(user_id, options)
        except SyncProviderError:
            self._record(False, started)
            raise

    # ------------------------------------------------------------------
    # Background refresh
    # ------------------------------------------------------------------

    def _schedule_refresh(
        self, key: str, user_id: str, loader: Callable[[], Awaitable[Any]]
    ) -> None:
        if key in self._refreshing:
            return
        self._refreshing.add(key)
        task = asyncio.create_task(
            self._refresh(key, user_id, loader), name=f"cache-refresh:{key}"
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _refresh(
        self, key: str, user_id: str, loader: Callable[[], Awaitable[Any]]
    ) -> None:
        token = self._write_token(user_id)
        try:
            data = await loader()
            self._store_if_current(key, user_id, token, data)
        except Exception:
            logger.exception("Background refresh failed for %s", key)
        finally:
            self._refreshing.discard(key)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._options.cleanup_interval)
            try:
                self.sweep_expired()
            except Exception:
                logger.exception("Cache sweep failed")

    # ------------------------------------------------------------------
    # Entry bookkeeping
    # ------------------------------------------------------------------

    def _lookup(self, key: str, expected: type) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not isinstance(entry, CacheEntry) or not isinstance(entry.data, expected):
            self._entries.pop(key, None)
            raise CacheEntryError(f"corrupt cache entry for {key}")
        entry.touch(self._clock())
        self._entries.move_to_end(key)
        return entry

    def _put(self, key: str, data: Any) -> None:
        now = self._clock()
        self._entries.pop(key, None)
        while self._entries and len(self._entries) >= self._options.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted LRU cache entry %s", evicted)
        self._entries[key] = CacheEntry(
            data=data, timestamp=now, ttl=self._options.ttl, last_accessed=now
        )

    def _store_if_current(self, key: str, user_id: str, token: tuple[int, int], data: Any) -> None:
        if token != self._write_token(user_id):
            logger.debug("Skipping cache write for %s: invalidated while loading", key)
            return
        try:
            self._put(key, data)
        except Exception:
            logger.exception("Failed to store cache entry %s", key)

    def _write_token(self, user_id: str) -> tuple[int, int]:
        return self._clear_generation, self._epochs.get(user_id, 0)

    def _bump_epoch(self, user_id: str) -> None:
        self._epochs[user_id] = self._epochs.get(user_id, 0) + 1

    def _invalidate_transactions(self, user_id: str, keep: str | None = None) -> int:
        self._bump_epoch(user_id)
        prefix = transactions_prefix(user_id)
        doomed = [k for k in self._entries if k.startswith(prefix) and k != keep]
        for k in doomed:
            del self._entries[k]
        return len(doomed)

    def _record(self, hit: bool, started: float) -> None:
        if self._options.enable_metrics:
            self._metrics.record(hit, (time.perf_counter() - started) * 1000)


def _merge_transactions(
    existing: TransactionsResponse, incoming: list[Transaction]
) -> TransactionsResponse:
    """Union by id (incoming wins), newest first, truncated to the page limit."""
    by_id = {tx.id: tx for tx in existing.transactions}
    account_names = {tx.account_id: tx.account_name for tx in existing.transactions if tx.account_name}
    added = 0
    for tx in incoming:
        item = TransactionItem.from_domain(tx)
        if not item.account_name:
            previous = by_id.get(item.id)
            item.account_name = (
                previous.account_name if previous else account_names.get(item.account_id, "")
            )
        if item.id not in by_id:
            added += 1
        by_id[item.id] = item

    ordered = sorted(by_id.values(), key=lambda tx: (tx.date, tx.id), reverse=True)
    pagination = existing.pagination
    return TransactionsResponse(
        transactions=ordered[: pagination.limit],
        pagination=Pagination.build(pagination.page, pagination.limit, pagination.total + added),
    )
