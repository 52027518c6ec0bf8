"""Aggregation-provider sync client — Protocol and value objects.

The cache engine depends on this Protocol only; the concrete adapter is
injected at application start-up.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from src.fd_common.datetime_utils import utc_now


@dataclass
class SyncOptions:
    force_refresh: bool = False
    start_date: datetime | None = None
    end_date: datetime | None = None
    account_ids: list[str] | None = None


@dataclass
class SyncResult:
    success: bool
    accounts_updated: int = 0
    transactions_added: int = 0
    transactions_updated: int = 0
    errors: list[str] = field(default_factory=list)
    last_sync_time: datetime = field(default_factory=utc_now)

    def as_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "accounts_updated": self.accounts_updated,
            "transactions_added": self.transactions_added,
            "transactions_updated": self.transactions_updated,
            "errors": list(self.errors),
            "last_sync_time": self.last_sync_time.isoformat(),
        }


class SyncClientProtocol(Protocol):
    async def sync_transactions(
        self, user_id: str, options: SyncOptions
    ) -> SyncResult: ...

    async def aclose(self) -> None: ...
