# backend/saripos/errors.py
"""
Error taxonomy for the inventory ledger core.

Every failed mutation surfaces as one of these so callers can tell apart
"fix your input", "restock", "not there" and "storage is unhappy, retry".
Services raise them; routes turn them into JSON via the handler that
create_app() registers.
"""
from __future__ import annotations


class PosError(Exception):
    """Base class for typed ledger failures."""

    status_code = 500
    kind = "error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "kind": self.kind}
        if self.details:
            payload["details"] = self.details
        return payload


class ConnectionUnavailableError(PosError):
    """No live database handle; recoverable via reconnect."""

    status_code = 503
    kind = "connection"


class NotFoundError(PosError):
    """Referenced batch/product/setting/sale does not exist."""

    status_code = 404
    kind = "not_found"


class ValidationError(PosError, ValueError):
    """400-level input problem, always raised before any mutation."""

    status_code = 400
    kind = "invalid_input"


class ConflictError(PosError, ValueError):
    """409-level business rule conflict detected at mutation time."""

    status_code = 409
    kind = "conflict"


class InsufficientStockError(ConflictError):
    """A stock check failed inside the transaction."""

    kind = "insufficient_stock"


class StorageError(PosError):
    """The database call itself failed (disk, lock timeout, constraint)."""

    status_code = 500
    kind = "storage"


class SettingsLockTimeoutError(StorageError):
    """The settings write lock could not be acquired in time."""

    status_code = 503
