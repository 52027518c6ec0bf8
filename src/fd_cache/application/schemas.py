"""Pydantic read models served by the cache engine and the fd_cache API."""

import math

from pydantic import BaseModel, field_validator

from src.fd_ledger.domain.models import Account, Transaction

# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TransactionItem(BaseModel):
    id: str
    account_id: str
    amount: float
    date: str  # YYYY-MM-DD
    name: str
    merchant_name: str | None = None
    category: list[str] = []
    subcategory: str | None = None
    pending: bool = False
    account_name: str = ""

    @classmethod
    def from_domain(cls, tx: Transaction) -> "TransactionItem":
        return cls(
            id=tx.id,
            account_id=tx.account_id,
            amount=float(tx.amount),
            date=tx.date.isoformat(),
            name=tx.name,
            merchant_name=tx.merchant_name or None,
            category=list(tx.category),
            subcategory=tx.subcategory or None,
            pending=tx.pending,
            account_name=tx.account_name or "",
        )


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class TransactionsResponse(BaseModel):
    transactions: list[TransactionItem]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class AccountBalance(BaseModel):
    available: float | None = None
    current: float
    limit: float | None = None


class AccountItem(BaseModel):
    id: str
    name: str
    official_name: str | None = None
    type: str
    subtype: str
    balance: AccountBalance
    institution_name: str
    last_updated: str | None = None

    @classmethod
    def from_domain(cls, account: Account, institution_name: str | None = None) -> "AccountItem":
        return cls(
            id=account.id,
            name=account.name,
            official_name=account.official_name or None,
            type=account.type.lower(),
            subtype=account.subtype,
            balance=AccountBalance(
                available=float(account.balance_available)
                if account.balance_available is not None else None,
                current=float(account.balance_current),
                limit=float(account.balance_limit)
                if account.balance_limit is not None else None,
            ),
            institution_name=institution_name or account.institution_name or "Unknown",
            last_updated=account.last_updated.isoformat() if account.last_updated else None,
        )


class AccountsResponse(BaseModel):
    accounts: list[AccountItem]


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


class SyncRequest(BaseModel):
    account_ids: list[str] | None = None
    force_refresh: bool = False

    @field_validator("account_ids")
    @classmethod
    def _non_blank_ids(cls, v: list[str] | None) -> list[str] | None:
        if v is not None and any(not item.strip() for item in v):
            raise ValueError("account_ids must contain valid string values")
        return v
