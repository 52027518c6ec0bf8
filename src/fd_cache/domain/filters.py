"""Transaction filter set shared by the server cache, the store and the client cache.

Account ids and categories are sets: they are normalized to sorted, de-duplicated
tuples on construction so that two filter sets compare equal exactly when they
select the same rows, and key derivation can stay a pure function of the fields.
"""

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any

from src.fd_common.datetime_utils import parse_date_param
from src.fd_common.errors import ValidationFailedError

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 50
MAX_LIMIT = 100


def _normalize_set(values: Iterable[str] | None) -> tuple[str, ...] | None:
    if values is None:
        return None
    cleaned = sorted({v.strip() for v in values if v and v.strip()})
    return tuple(cleaned) or None


def _split_csv(raw: str | None) -> list[str] | None:
    if raw is None:
        return None
    return [part for part in raw.split(",") if part.strip()]


@dataclass(frozen=True)
class TransactionFilters:
    account_ids: tuple[str, ...] | None = None
    start_date: date | None = None
    end_date: date | None = None
    categories: tuple[str, ...] | None = None
    min_amount: float | None = None
    max_amount: float | None = None
    pending: bool | None = None
    search: str | None = None
    page: int | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "account_ids", _normalize_set(self.account_ids))
        object.__setattr__(self, "categories", _normalize_set(self.categories))
        if self.search is not None:
            object.__setattr__(self, "search", self.search.strip() or None)
        for name in ("min_amount", "max_amount"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, float(value))

    # ------------------------------------------------------------------
    # Pagination bounds
    # ------------------------------------------------------------------

    def resolved_page(self) -> int:
        return max(self.page or DEFAULT_PAGE, 1)

    def resolved_limit(self) -> int:
        return min(max(self.limit or DEFAULT_LIMIT, 1), MAX_LIMIT)

    def offset(self) -> int:
        return (self.resolved_page() - 1) * self.resolved_limit()

    # ------------------------------------------------------------------
    # Auto-sync eligibility
    # ------------------------------------------------------------------

    def is_basic(self) -> bool:
        """True when the query may trigger an upstream sync on an empty result.

        Excludes search, categories, amount bounds, account ids and a full
        start+end date range. A pending-only filter still counts as basic.
        """
        return (
            self.search is None
            and self.categories is None
            and self.min_amount is None
            and self.max_amount is None
            and self.account_ids is None
            and not (self.start_date is not None and self.end_date is not None)
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def canonical(self) -> dict[str, Any]:
        """Stable JSON-ready form with page/limit resolved."""
        return {
            "account_ids": list(self.account_ids) if self.account_ids else None,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "categories": list(self.categories) if self.categories else None,
            "min_amount": self.min_amount,
            "max_amount": self.max_amount,
            "pending": self.pending,
            "search": self.search,
            "page": self.resolved_page(),
            "limit": self.resolved_limit(),
        }

    def to_query_params(self) -> dict[str, str]:
        params: dict[str, str] = {
            "page": str(self.resolved_page()),
            "limit": str(self.resolved_limit()),
        }
        if self.account_ids:
            params["account_ids"] = ",".join(self.account_ids)
        if self.start_date:
            params["start_date"] = self.start_date.isoformat()
        if self.end_date:
            params["end_date"] = self.end_date.isoformat()
        if self.categories:
            params["categories"] = ",".join(self.categories)
        if self.min_amount is not None:
            params["min_amount"] = repr(self.min_amount)
        if self.max_amount is not None:
            params["max_amount"] = repr(self.max_amount)
        if self.pending is not None:
            params["pending"] = "true" if self.pending else "false"
        if self.search:
            params["search"] = self.search
        return params

    @classmethod
    def from_query_params(cls, params: Mapping[str, str]) -> "TransactionFilters":
        """Parse raw query parameters. Page/limit are kept as given (not clamped).

        Raises ValidationFailedError on unparseable values.
        """
        try:
            page = int(params.get("page", str(DEFAULT_PAGE)))
            limit = int(params.get("limit", str(DEFAULT_LIMIT)))
        except ValueError:
            raise ValidationFailedError("page and limit must be integers") from None

        start_date = end_date = None
        try:
            if params.get("start_date"):
                start_date = parse_date_param(params["start_date"])
            if params.get("end_date"):
                end_date = parse_date_param(params["end_date"])
        except ValueError:
            raise ValidationFailedError("Dates must be ISO-8601") from None

        min_amount = max_amount = None
        try:
            if params.get("min_amount"):
                min_amount = float(params["min_amount"])
            if params.get("max_amount"):
                max_amount = float(params["max_amount"])
        except ValueError:
            raise ValidationFailedError("Amounts must be numeric") from None
        for amount in (min_amount, max_amount):
            if amount is not None and not math.isfinite(amount):
                raise ValidationFailedError("Amounts must be finite")

        pending_raw = params.get("pending")
        pending = None if pending_raw is None else pending_raw.strip().lower() == "true"

        return cls(
            account_ids=_split_csv(params.get("account_ids")),  # type: ignore[arg-type]
            start_date=start_date,
            end_date=end_date,
            categories=_split_csv(params.get("categories")),  # type: ignore[arg-type]
            min_amount=min_amount,
            max_amount=max_amount,
            pending=pending,
            search=params.get("search"),
            page=page,
            limit=limit,
        )
