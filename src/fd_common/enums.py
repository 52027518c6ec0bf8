"""Global enums — string values match DB CHECK constraints and cache key prefixes."""

from enum import Enum


class CacheKind(str, Enum):
    TRANSACTIONS = "transactions"
    ACCOUNTS = "accounts"
    CONNECTIONS = "connections"
    ALL = "all"


class ConnectionStatus(str, Enum):
    ACTIVE = "active"
    ERROR = "error"
    DISCONNECTED = "disconnected"
