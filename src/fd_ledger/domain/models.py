"""Domain models for fd_ledger — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal


@dataclass
class Account:
    id: str
    user_id: str
    connection_id: str
    name: str
    type: str                        # provider account type, e.g. "depository"
    subtype: str
    balance_current: Decimal
    balance_available: Decimal | None = None
    balance_limit: Decimal | None = None
    official_name: str | None = None
    institution_name: str | None = None   # denormalized from the owning connection
    last_updated: datetime | None = None
    created_at: datetime | None = None


@dataclass
class Transaction:
    id: str
    user_id: str
    account_id: str
    amount: Decimal                  # positive = outflow, provider convention
    date: date
    name: str
    merchant_name: str | None = None
    category: list[str] = field(default_factory=list)
    subcategory: str | None = None
    pending: bool = False
    account_name: str | None = None  # joined from accounts at read time
