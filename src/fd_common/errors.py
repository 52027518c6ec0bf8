"""Unified error codes and custom exceptions.

Error codes are short upper-case strings; they travel to the client inside
the error envelope ``{"success": false, "error": {"code", "message"}}``.

Groups:
  Request validation  → 400
  Auth                → 401
  Upstream sync       → 502
  Store / system      → 503 / 500
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- Request validation ---

class InvalidPageError(AppError):
    def __init__(self) -> None:
        super().__init__("INVALID_PAGE", "Page number must be greater than 0", 400)


class InvalidLimitError(AppError):
    def __init__(self) -> None:
        super().__init__("INVALID_LIMIT", "Limit must be at least 1", 400)


class InvalidDateRangeError(AppError):
    def __init__(self) -> None:
        super().__init__("INVALID_DATE_RANGE", "Start date must be before end date", 400)


class ValidationFailedError(AppError):
    def __init__(self, detail: str = "Invalid request parameters") -> None:
        super().__init__("VALIDATION_ERROR", detail, 400)


# --- Auth ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__("UNAUTHORIZED", "Invalid or expired token", 401)


# --- Upstream sync ---

class SyncProviderError(AppError):
    """The aggregation provider completed a sync but reported errors."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("SYNC_ERROR", f"Sync errors: {', '.join(self.errors)}", 502)


class SyncUnavailableError(AppError):
    """The sync worker could not be reached or answered garbage."""

    def __init__(self, detail: str = "Sync service unavailable") -> None:
        super().__init__("SYNC_UNAVAILABLE", detail, 503)


# --- Store / system ---

class StoreUnavailableError(AppError):
    def __init__(self) -> None:
        super().__init__("DATABASE_ERROR", "Database connection error", 503)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__("INTERNAL_ERROR", detail, 500)
