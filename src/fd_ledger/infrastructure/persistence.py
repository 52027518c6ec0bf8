"""LedgerRepository — concrete implementation of LedgerRepositoryProtocol.

All queries use raw text() SQL (no ORM) and are read-only: connections,
accounts and transactions are written by the aggregation sync worker, the
cache only mirrors them.

asyncpg NULL parameter pattern: CAST(:param AS TYPE) IS NULL required for None values.
"""

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.fd_cache.domain.filters import TransactionFilters
from src.fd_common.enums import ConnectionStatus
from src.fd_ledger.domain.models import Account, Transaction

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_TRANSACTION_PREDICATES = """
    t.user_id = :user_id
    AND (CAST(:account_ids AS TEXT[]) IS NULL
         OR t.account_id = ANY(CAST(:account_ids AS TEXT[])))
    AND (CAST(:start_date AS DATE) IS NULL OR t.date >= CAST(:start_date AS DATE))
    AND (CAST(:end_date AS DATE) IS NULL OR t.date <= CAST(:end_date AS DATE))
    AND (CAST(:categories AS TEXT[]) IS NULL
         OR t.category && CAST(:categories AS TEXT[]))
    AND (CAST(:min_amount AS NUMERIC) IS NULL OR t.amount >= CAST(:min_amount AS NUMERIC))
    AND (CAST(:max_amount AS NUMERIC) IS NULL OR t.amount <= CAST(:max_amount AS NUMERIC))
    AND (CAST(:pending AS BOOLEAN) IS NULL OR t.pending = CAST(:pending AS BOOLEAN))
    AND (
        CAST(:search AS TEXT) IS NULL
        OR t.name ILIKE CAST(:search AS TEXT) ESCAPE '\\'
        OR t.merchant_name ILIKE CAST(:search AS TEXT) ESCAPE '\\'
    )
"""

_LIST_TRANSACTIONS_SQL = text(f"""
    SELECT t.id, t.user_id, t.account_id, t.amount, t.date, t.name,
           t.merchant_name, t.category, t.subcategory, t.pending,
           a.name AS account_name
    FROM transactions t
    JOIN accounts a ON a.id = t.account_id
    WHERE {_TRANSACTION_PREDICATES}
    ORDER BY t.date DESC, t.id DESC
    OFFSET :offset
    LIMIT :limit
""")

_COUNT_TRANSACTIONS_SQL = text(f"""
    SELECT COUNT(*) AS total
    FROM transactions t
    WHERE {_TRANSACTION_PREDICATES}
""")

_LIST_ACCOUNTS_SQL = text("""
    SELECT a.id, a.user_id, a.connection_id, a.name, a.official_name,
           a.type, a.subtype, a.balance_available, a.balance_current,
           a.balance_limit, a.last_updated, a.created_at,
           c.institution_name
    FROM accounts a
    JOIN connections c ON c.id = a.connection_id
    WHERE a.user_id = :user_id
    ORDER BY a.created_at ASC
""")

_INSTITUTION_NAMES_SQL = text("""
    SELECT id, institution_name
    FROM connections
    WHERE id = ANY(CAST(:connection_ids AS TEXT[]))
""")

_ACTIVE_CONNECTIONS_SQL = text("""
    SELECT 1
    FROM connections
    WHERE user_id = :user_id AND status = :status
    LIMIT 1
""")

# ---------------------------------------------------------------------------
# Parameter builders / row mappers
# ---------------------------------------------------------------------------


def _like_pattern(search: str) -> str:
    """Case-insensitive substring pattern with LIKE wildcards escaped."""
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def build_transaction_params(user_id: str, filters: TransactionFilters) -> dict[str, Any]:
    """Translate a filter set into the bind parameters of the predicate block."""
    return {
        "user_id": user_id,
        "account_ids": list(filters.account_ids) if filters.account_ids else None,
        "start_date": filters.start_date,
        "end_date": filters.end_date,
        "categories": list(filters.categories) if filters.categories else None,
        "min_amount": filters.min_amount,
        "max_amount": filters.max_amount,
        "pending": filters.pending,
        "search": _like_pattern(filters.search) if filters.search else None,
    }


def _row_to_transaction(row: Any) -> Transaction:
    return Transaction(
        id=str(row.id),
        user_id=str(row.user_id),
        account_id=str(row.account_id),
        amount=row.amount,
        date=row.date,
        name=row.name,
        merchant_name=row.merchant_name,
        category=list(row.category or []),
        subcategory=row.subcategory,
        pending=bool(row.pending),
        account_name=row.account_name,
    )


def _row_to_account(row: Any) -> Account:
    return Account(
        id=str(row.id),
        user_id=str(row.user_id),
        connection_id=str(row.connection_id),
        name=row.name,
        official_name=row.official_name,
        type=row.type,
        subtype=row.subtype,
        balance_available=row.balance_available,
        balance_current=row.balance_current,
        balance_limit=row.balance_limit,
        institution_name=row.institution_name,
        last_updated=row.last_updated,
        created_at=row.created_at,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class LedgerRepository:
    """Concrete repository — all operations are read-only SQL queries."""

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        filters: TransactionFilters,
        offset: int,
        limit: int,
    ) -> list[Transaction]:
        params = build_transaction_params(user_id, filters)
        params.update({"offset": offset, "limit": limit})
        result = await db.execute(_LIST_TRANSACTIONS_SQL, params)
        return [_row_to_transaction(row) for row in result.fetchall()]

    async def count_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        filters: TransactionFilters,
    ) -> int:
        result = await db.execute(
            _COUNT_TRANSACTIONS_SQL, build_transaction_params(user_id, filters)
        )
        return int(result.scalar_one())

    async def list_accounts(self, db: AsyncSession, user_id: str) -> list[Account]:
        result = await db.execute(_LIST_ACCOUNTS_SQL, {"user_id": user_id})
        return [_row_to_account(row) for row in result.fetchall()]

    async def get_institution_names(
        self, db: AsyncSession, connection_ids: list[str]
    ) -> dict[str, str]:
        if not connection_ids:
            return {}
        result = await db.execute(
            _INSTITUTION_NAMES_SQL, {"connection_ids": list(connection_ids)}
        )
        return {str(row.id): row.institution_name for row in result.fetchall()}

    async def has_active_connections(self, db: AsyncSession, user_id: str) -> bool:
        try:
            result = await db.execute(
                _ACTIVE_CONNECTIONS_SQL,
                {"user_id": user_id, "status": ConnectionStatus.ACTIVE.value},
            )
            return result.fetchone() is not None
        except Exception:
            # Only gates an opportunistic sync; a failed check means "don't sync".
            logger.exception("Error checking active connections for user %s", user_id)
            return False
