"""Tests for ClientCacheManager state transitions, subscriptions and optimistic updates."""

from unittest.mock import MagicMock

import pytest

from src.fd_client.manager import ClientCacheManager
from src.fd_client.state import (
    CachePayload,
    CacheState,
    ClientCacheOptions,
    OptimisticUpdate,
    PayloadKind,
    UpdateType,
)

KEY = "transactions:abc"


def _payload(*ids: str) -> CachePayload:
    return CachePayload(
        kind=PayloadKind.TRANSACTIONS,
        items=tuple({"id": i, "amount": 10.0} for i in ids),
        pagination={"page": 1, "limit": 50, "total": len(ids)},
    )


def _update(
    update_id: str, type_: UpdateType, data: dict, ts: float, rollback=None
) -> OptimisticUpdate:
    return OptimisticUpdate(id=update_id, type=type_, data=data, timestamp=ts, rollback=rollback)


@pytest.fixture
def manager(clock) -> ClientCacheManager:
    return ClientCacheManager(ClientCacheOptions(stale_time=30.0, cache_time=60.0), clock=clock)


class TestTransitions:
    def test_unknown_key(self, manager) -> None:
        assert manager.get(KEY) is None
        assert manager.is_stale(KEY) is True

    def test_loading_then_populated(self, manager, clock) -> None:
        manager.set_loading(KEY, True)
        assert manager.get(KEY) == CacheState(is_loading=True)

        manager.set(KEY, _payload("a"))

        state = manager.get(KEY)
        assert state.data == _payload("a")
        assert state.is_loading is False
        assert state.error is None
        assert state.last_fetched == clock.now

    def test_refetch_keeps_data_visible(self, manager) -> None:
        manager.set(KEY, _payload("a"))
        manager.set_refetching(KEY, True)

        state = manager.get(KEY)
        assert state.is_refetching is True
        assert state.data == _payload("a")

    def test_error_keeps_data(self, manager) -> None:
        manager.set(KEY, _payload("a"))
        manager.set_loading(KEY, True)
        manager.set_error(KEY, "Failed to fetch")

        state = manager.get(KEY)
        assert state.error == "Failed to fetch"
        assert state.is_loading is False
        assert state.data == _payload("a")

    def test_set_clears_error(self, manager) -> None:
        manager.set_error(KEY, "boom")
        manager.set(KEY, _payload("a"))
        assert manager.get(KEY).error is None


class TestSubscriptions:
    def test_callbacks_receive_each_transition(self, manager) -> None:
        seen: list[CacheState] = []
        manager.subscribe(KEY, seen.append)

        manager.set_loading(KEY, True)
        manager.set(KEY, _payload("a"))

        assert [s.is_loading for s in seen] == [True, False]
        assert seen[-1].data == _payload("a")

    def test_unsubscribe_removes_only_that_callback(self, manager) -> None:
        first, second = MagicMock(), MagicMock()
        unsubscribe_first = manager.subscribe(KEY, first)
        manager.subscribe(KEY, second)

        unsubscribe_first()
        manager.set(KEY, _payload("a"))

        first.assert_not_called()
        second.assert_called_once()
        assert manager.subscriber_count(KEY) == 1

    def test_empty_subscriber_set_is_dropped(self, manager) -> None:
        unsubscribe = manager.subscribe(KEY, MagicMock())
        unsubscribe()
        unsubscribe()

        assert manager.subscriber_count(KEY) == 0
        assert KEY not in manager._subscribers

    def test_stale_unsubscriber_after_clear_is_harmless(self, manager) -> None:
        first, second = MagicMock(), MagicMock()
        unsubscribe_first = manager.subscribe(KEY, first)
        manager.clear(KEY)
        manager.subscribe(KEY, second)

        unsubscribe_first()
        manager.set(KEY, _payload("a"))

        first.assert_not_called()
        second.assert_called_once()
        assert manager.subscriber_count(KEY) == 1

    def test_same_callback_subscribed_twice(self, manager) -> None:
        callback = MagicMock()
        unsubscribe_first = manager.subscribe(KEY, callback)
        manager.subscribe(KEY, callback)

        unsubscribe_first()
        manager.set(KEY, _payload("a"))

        callback.assert_called_once()

    def test_other_keys_are_not_notified(self, manager) -> None:
        callback = MagicMock()
        manager.subscribe("accounts", callback)

        manager.set(KEY, _payload("a"))

        callback.assert_not_called()


class TestOptimisticUpdates:
    def test_add_then_rollback_restores_view(self, manager) -> None:
        committed = _payload("a", "b")
        manager.set(KEY, committed)
        rollback = MagicMock()

        manager.add_optimistic_update(
            KEY, _update("temp-1", UpdateType.ADD, {"id": "x", "amount": 5.0}, 1.0, rollback)
        )
        assert [i["id"] for i in manager.get(KEY).data.items] == ["x", "a", "b"]

        assert manager.rollback_optimistic_update(KEY, "temp-1") is True
        assert manager.get(KEY).data == committed
        rollback.assert_called_once_with()

        assert manager.rollback_optimistic_update(KEY, "temp-1") is False
        rollback.assert_called_once_with()

    def test_update_patches_by_id_without_touching_committed(self, manager) -> None:
        committed = _payload("a", "b")
        manager.set(KEY, committed)

        manager.add_optimistic_update(
            KEY, _update("u-1", UpdateType.UPDATE, {"id": "b", "amount": 99.0}, 1.0)
        )

        items = manager.get(KEY).data.items
        assert items[1] == {"id": "b", "amount": 99.0}
        assert committed.items[1] == {"id": "b", "amount": 10.0}

    def test_delete_filters_by_id(self, manager) -> None:
        manager.set(KEY, _payload("a", "b"))

        manager.add_optimistic_update(KEY, _update("d-1", UpdateType.DELETE, {"id": "a"}, 1.0))

        assert [i["id"] for i in manager.get(KEY).data.items] == ["b"]

    def test_updates_fold_in_timestamp_order(self, manager) -> None:
        manager.set(KEY, _payload("a"))

        manager.add_optimistic_update(KEY, _update("late", UpdateType.ADD, {"id": "late"}, 5.0))
        manager.add_optimistic_update(KEY, _update("early", UpdateType.ADD, {"id": "early"}, 1.0))

        assert [i["id"] for i in manager.get(KEY).data.items] == ["late", "early", "a"]

    def test_equal_timestamps_keep_insertion_order(self, manager) -> None:
        manager.set(KEY, _payload("a"))

        manager.add_optimistic_update(KEY, _update("1", UpdateType.ADD, {"id": "x"}, 1.0))
        manager.add_optimistic_update(KEY, _update("2", UpdateType.ADD, {"id": "y"}, 1.0))

        assert [i["id"] for i in manager.get(KEY).data.items] == ["y", "x", "a"]

    def test_confirm_keeps_remaining_updates(self, manager) -> None:
        manager.set(KEY, _payload("a"))
        manager.add_optimistic_update(KEY, _update("1", UpdateType.ADD, {"id": "x"}, 1.0))
        manager.add_optimistic_update(KEY, _update("2", UpdateType.DELETE, {"id": "a"}, 2.0))

        assert manager.remove_optimistic_update(KEY, "1") is True

        assert manager.get(KEY).data.items == ()
        assert [u.id for u in manager.pending_updates(KEY)] == ["2"]

    def test_new_data_is_folded_with_pending_updates(self, manager) -> None:
        manager.set(KEY, _payload("a"))
        manager.add_optimistic_update(KEY, _update("1", UpdateType.ADD, {"id": "x"}, 1.0))

        manager.set(KEY, _payload("b", "c"))

        assert [i["id"] for i in manager.get(KEY).data.items] == ["x", "b", "c"]

    def test_disabled_optimistic_updates(self, clock) -> None:
        manager = ClientCacheManager(ClientCacheOptions(optimistic_updates=False), clock=clock)
        manager.set(KEY, _payload("a"))

        added = manager.add_optimistic_update(KEY, _update("1", UpdateType.ADD, {"id": "x"}, 1.0))

        assert added is False
        assert manager.get(KEY).data == _payload("a")


class TestStaleness:
    def test_age_based(self, manager, clock) -> None:
        manager.set(KEY, _payload("a"))
        assert manager.is_stale(KEY) is False
        clock.advance(31)
        assert manager.is_stale(KEY) is True

    def test_window_focus_marks_every_key_stale(self, manager) -> None:
        manager.set(KEY, _payload("a"))
        manager.set("accounts", CachePayload(kind=PayloadKind.ACCOUNTS, items=()))
        seen = MagicMock()
        manager.subscribe(KEY, seen)

        manager.handle_window_focus()

        assert manager.get(KEY).is_stale is True
        assert manager.get(KEY).data == _payload("a")
        assert manager.get("accounts").is_stale is True
        seen.assert_called_once()

    def test_reconnect_marks_stale(self, manager) -> None:
        manager.set(KEY, _payload("a"))
        manager.handle_reconnect()
        assert manager.is_stale(KEY) is True

    def test_signals_can_be_disabled(self, clock) -> None:
        manager = ClientCacheManager(
            ClientCacheOptions(refetch_on_window_focus=False, refetch_on_reconnect=False),
            clock=clock,
        )
        manager.set(KEY, _payload("a"))

        manager.handle_window_focus()
        manager.handle_reconnect()

        assert manager.get(KEY).is_stale is False

    def test_invalidate_prefix(self, manager) -> None:
        manager.set("transactions:1", _payload("a"))
        manager.set("transactions:2", _payload("b"))
        manager.set("accounts", CachePayload(kind=PayloadKind.ACCOUNTS, items=()))

        assert manager.invalidate_prefix("transactions:") == 2
        assert manager.get("accounts").is_stale is False


class TestEviction:
    def test_clear_single_key(self, manager) -> None:
        manager.set(KEY, _payload("a"))
        manager.set("accounts", CachePayload(kind=PayloadKind.ACCOUNTS, items=()))

        manager.clear(KEY)

        assert manager.keys() == ["accounts"]

    def test_clear_everything(self, manager) -> None:
        manager.set(KEY, _payload("a"))
        manager.subscribe(KEY, MagicMock())

        manager.clear()

        assert manager.keys() == []
        assert manager.subscriber_count(KEY) == 0

    def test_collect_garbage_skips_observed_keys(self, manager, clock) -> None:
        manager.set("transactions:old", _payload("a"))
        manager.set("transactions:watched", _payload("b"))
        manager.subscribe("transactions:watched", MagicMock())
        clock.advance(61)
        manager.set("transactions:new", _payload("c"))

        assert manager.collect_garbage() == 1
        assert sorted(manager.keys()) == ["transactions:new", "transactions:watched"]


class TestPayload:
    def test_response_round_trip(self) -> None:
        body = {"transactions": [{"id": "a"}], "pagination": {"page": 1}}
        payload = CachePayload.from_response(PayloadKind.TRANSACTIONS, body)
        assert payload.to_response() == body

    def test_accounts_payload_has_no_pagination(self) -> None:
        payload = CachePayload.from_response(PayloadKind.ACCOUNTS, {"accounts": [{"id": "x"}]})
        assert payload.to_response() == {"accounts": [{"id": "x"}]}
