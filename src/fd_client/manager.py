"""ClientCacheManager — per-key state, subscriptions and optimistic updates for UI code.

State machine per key:
  empty → loading → {populated, error}
  populated → refetching → populated   (data stays visible throughout)
  any → stale                          (focus / reconnect / invalidate; data kept)

The manager keeps the last committed payload apart from the visible one. The
visible ``CacheState.data`` is always ``fold(committed, pending updates)``, so
removing or rolling back an update is a re-fold, never an undo.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import replace

from src.fd_client.state import (
    CachePayload,
    CacheState,
    ClientCacheOptions,
    OptimisticUpdate,
    fold,
)

logger = logging.getLogger(__name__)

Subscriber = Callable[[CacheState], None]


class ClientCacheManager:
    def __init__(
        self,
        options: ClientCacheOptions | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._options = options or ClientCacheOptions()
        self._clock = clock
        self._states: dict[str, CacheState] = {}
        self._committed: dict[str, CachePayload] = {}
        self._updates: dict[str, list[OptimisticUpdate]] = {}
        # Each registration gets its own token so an unsubscriber only ever removes itself.
        self._subscribers: dict[str, dict[object, Subscriber]] = {}

    @property
    def options(self) -> ClientCacheOptions:
        return self._options

    def now(self) -> float:
        return self._clock()

    def keys(self) -> list[str]:
        return list(self._states)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def get(self, key: str) -> CacheState | None:
        return self._states.get(key)

    def set(self, key: str, data: CachePayload) -> None:
        """Commit fetched data; pending optimistic updates are re-applied on top."""
        self._committed[key] = data
        self._transition(
            key,
            CacheState(
                data=fold(data, self._updates.get(key, [])),
                last_fetched=self._clock(),
            ),
        )

    def set_loading(self, key: str, is_loading: bool) -> None:
        self._transition(key, replace(self._current(key), is_loading=is_loading))

    def set_refetching(self, key: str, is_refetching: bool) -> None:
        self._transition(key, replace(self._current(key), is_refetching=is_refetching))

    def set_error(self, key: str, error: str) -> None:
        self._transition(key, replace(self._current(key), error=error, is_loading=False))

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, key: str, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for every transition of ``key``; returns the unsubscriber."""
        token = object()
        self._subscribers.setdefault(key, {})[token] = callback

        def unsubscribe() -> None:
            subs = self._subscribers.get(key)
            if subs is None or subs.pop(token, None) is None:
                return
            if not subs:
                del self._subscribers[key]

        return unsubscribe

    def subscriber_count(self, key: str) -> int:
        return len(self._subscribers.get(key, {}))

    # ------------------------------------------------------------------
    # Optimistic updates
    # ------------------------------------------------------------------

    def add_optimistic_update(self, key: str, update: OptimisticUpdate) -> bool:
        if not self._options.optimistic_updates:
            return False
        self._updates.setdefault(key, []).append(update)
        self._refold(key)
        return True

    def remove_optimistic_update(self, key: str, update_id: str) -> bool:
        """Drop a pending update (confirmed by the server or abandoned)."""
        return self._pop_update(key, update_id) is not None

    def rollback_optimistic_update(self, key: str, update_id: str) -> bool:
        update = self._pop_update(key, update_id)
        if update is None:
            return False
        if update.rollback is not None:
            update.rollback()
        return True

    def pending_updates(self, key: str) -> list[OptimisticUpdate]:
        return list(self._updates.get(key, []))

    # ------------------------------------------------------------------
    # Staleness / eviction
    # ------------------------------------------------------------------

    def invalidate(self, key: str) -> None:
        state = self._states.get(key)
        if state is not None:
            self._transition(key, replace(state, is_stale=True))

    def invalidate_prefix(self, prefix: str) -> int:
        matched = [k for k in self._states if k.startswith(prefix)]
        for key in matched:
            self.invalidate(key)
        return len(matched)

    def clear(self, key: str | None = None) -> None:
        if key is None:
            self._states.clear()
            self._committed.clear()
            self._updates.clear()
            self._subscribers.clear()
            return
        self._states.pop(key, None)
        self._committed.pop(key, None)
        self._updates.pop(key, None)
        self._subscribers.pop(key, None)

    def handle_window_focus(self) -> None:
        if self._options.refetch_on_window_focus:
            self._mark_all_stale()

    def handle_reconnect(self) -> None:
        if self._options.refetch_on_reconnect:
            self._mark_all_stale()

    def is_stale(self, key: str) -> bool:
        state = self._states.get(key)
        if state is None or state.last_fetched is None:
            return True
        return state.is_stale or self._clock() - state.last_fetched > self._options.stale_time

    def collect_garbage(self) -> int:
        """Drop unobserved keys whose last fetch is older than ``cache_time``."""
        now = self._clock()
        doomed = [
            key
            for key, state in self._states.items()
            if key not in self._subscribers
            and state.last_fetched is not None
            and now - state.last_fetched > self._options.cache_time
        ]
        for key in doomed:
            self.clear(key)
        if doomed:
            logger.debug("Collected %d unused client cache keys", len(doomed))
        return len(doomed)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _current(self, key: str) -> CacheState:
        return self._states.get(key) or CacheState()

    def _transition(self, key: str, state: CacheState) -> None:
        self._states[key] = state
        # Copy: a callback may unsubscribe itself.
        for callback in list(self._subscribers.get(key, {}).values()):
            callback(state)

    def _refold(self, key: str) -> None:
        committed = self._committed.get(key)
        if committed is None:
            return
        view = fold(committed, self._updates.get(key, []))
        self._transition(key, replace(self._current(key), data=view))

    def _pop_update(self, key: str, update_id: str) -> OptimisticUpdate | None:
        updates = self._updates.get(key, [])
        for index, update in enumerate(updates):
            if update.id == update_id:
                del updates[index]
                if not updates:
                    self._updates.pop(key, None)
                self._refold(key)
                return update
        return None

    def _mark_all_stale(self) -> None:
        for key in list(self._states):
            self.invalidate(key)
