"""Centralized cache key definitions.

Pattern: {kind}:{user_id}[:{filters fingerprint}]
Examples:
    transactions:user-1:eyJhY2NvdW50X2lkcyI6IG51bGwsIC4uLn0=
    accounts:user-1
    connections:user-1

Key derivation is a pure function of (kind, user_id, filters).

The fingerprint hashes the filter set with page and limit already resolved
(defaults applied, limit capped at 100). Filter sets that are unequal as
dataclasses but select the same page of rows therefore share one key:
``TransactionFilters()`` and ``TransactionFilters(page=1, limit=50)``, or
``limit=500`` and ``limit=100``. Any difference that changes the rows
selected yields a different key.
"""

import base64
import json

from src.fd_cache.domain.filters import TransactionFilters
from src.fd_common.enums import CacheKind


def filters_fingerprint(filters: TransactionFilters) -> str:
    """URL-safe Base64 of the canonical JSON form of a filter set."""
    payload = json.dumps(filters.canonical(), sort_keys=True, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode()).decode()


def transactions_prefix(user_id: str) -> str:
    # Trailing colon: "user-1" must not match "user-10".
    return f"{CacheKind.TRANSACTIONS.value}:{user_id}:"


def transactions_key(user_id: str, filters: TransactionFilters) -> str:
    return f"{transactions_prefix(user_id)}{filters_fingerprint(filters)}"


def accounts_key(user_id: str) -> str:
    return f"{CacheKind.ACCOUNTS.value}:{user_id}"


def connections_key(user_id: str) -> str:
    return f"{CacheKind.CONNECTIONS.value}:{user_id}"


def key_belongs_to_user(key: str, user_id: str) -> bool:
    """True if user_id is the second ':'-delimited segment of key."""
    parts = key.split(":", 2)
    return len(parts) >= 2 and parts[1] == user_id
