"""Client cache value objects and the optimistic-update fold.

A cached payload is tagged with its kind so the fold dispatches on
``payload.kind`` instead of probing the shape of the data.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


class PayloadKind(str, Enum):
    TRANSACTIONS = "transactions"
    ACCOUNTS = "accounts"


class UpdateType(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class CachePayload:
    kind: PayloadKind
    items: tuple[dict[str, Any], ...]
    pagination: dict[str, Any] | None = None

    @classmethod
    def from_response(cls, kind: PayloadKind, body: dict[str, Any]) -> "CachePayload":
        """Build from the ``data`` object of a list endpoint."""
        return cls(
            kind=kind,
            items=tuple(dict(item) for item in body.get(kind.value, [])),
            pagination=dict(body["pagination"]) if body.get("pagination") else None,
        )

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {self.kind.value: [dict(item) for item in self.items]}
        if self.pagination is not None:
            body["pagination"] = dict(self.pagination)
        return body

    def with_items(self, items: Iterable[dict[str, Any]]) -> "CachePayload":
        return replace(self, items=tuple(items))


@dataclass(frozen=True)
class CacheState:
    """One per key; replaced (never mutated) on every transition."""

    data: CachePayload | None = None
    is_loading: bool = False
    is_stale: bool = False
    error: str | None = None
    last_fetched: float | None = None   # clock seconds
    is_refetching: bool = False


@dataclass
class OptimisticUpdate:
    id: str
    type: UpdateType
    data: dict[str, Any]
    timestamp: float
    rollback: Callable[[], None] | None = None


@dataclass
class ClientCacheOptions:
    stale_time: float = 300.0   # seconds before data counts as stale
    cache_time: float = 600.0   # seconds an unobserved key is kept
    refetch_on_window_focus: bool = True
    refetch_on_reconnect: bool = True
    optimistic_updates: bool = True


# ---------------------------------------------------------------------------
# Fold
# ---------------------------------------------------------------------------


def apply_update(payload: CachePayload, update: OptimisticUpdate) -> CachePayload:
    target_id = update.data.get("id")
    if update.type is UpdateType.ADD:
        return payload.with_items((dict(update.data), *payload.items))
    if update.type is UpdateType.UPDATE:
        return payload.with_items(
            {**item, **update.data} if item.get("id") == target_id else item
            for item in payload.items
        )
    return payload.with_items(item for item in payload.items if item.get("id") != target_id)


def fold(committed: CachePayload, updates: Iterable[OptimisticUpdate]) -> CachePayload:
    """Derive the visible payload; sorted() is stable, so equal timestamps keep insertion order."""
    view = committed
    for update in sorted(updates, key=lambda u: u.timestamp):
        view = apply_update(view, update)
    return view
