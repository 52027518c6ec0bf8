"""Repository Protocol — dependency inversion for testability.

Unit tests inject a mock that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.fd_cache.domain.filters import TransactionFilters
from src.fd_ledger.domain.models import Account, Transaction


class LedgerRepositoryProtocol(Protocol):
    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        filters: TransactionFilters,
        offset: int,
        limit: int,
    ) -> list[Transaction]: ...

    async def count_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        filters: TransactionFilters,
    ) -> int: ...

    async def list_accounts(
        self, db: AsyncSession, user_id: str
    ) -> list[Account]: ...

    async def get_institution_names(
        self, db: AsyncSession, connection_ids: list[str]
    ) -> dict[str, str]: ...

    async def has_active_connections(
        self, db: AsyncSession, user_id: str
    ) -> bool: ...
