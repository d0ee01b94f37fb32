# Overview: Closed set of typed failures raised by the engine services.

"""
Engine error taxonomy.

Every service operation either returns a value or raises one of the classes
below. Callers branch on the class (or on ``kind``), never on the message.

Retry policy:
- ConflictError / PersistenceError: safe to retry the whole operation.
- Everything else needs caller-side correction first.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all engine failures."""
    kind = "ENGINE"
    http_status = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "kind": self.kind,
            "retryable": self.retryable,
            "details": self.details,
        }


class NotFoundError(EngineError):
    """Product, order, cart line, event or booking does not exist."""
    kind = "NOT_FOUND"
    http_status = 404


class InactiveProductError(NotFoundError):
    """Product exists but has been retired from the catalog."""
    kind = "INACTIVE"


class ValidationError(EngineError):
    """Non-positive quantity or otherwise malformed input."""
    kind = "VALIDATION"
    http_status = 400


class EmptyCartError(ValidationError):
    kind = "EMPTY_CART"


class InsufficientStockError(EngineError):
    kind = "INSUFFICIENT_STOCK"
    http_status = 409


class CapacityExceededError(EngineError):
    kind = "CAPACITY_EXCEEDED"
    http_status = 409


class InvalidStateError(EngineError):
    """Requested lifecycle transition is not allowed from the current state."""
    kind = "INVALID_STATE"
    http_status = 409


class NotAvailableError(InvalidStateError):
    """Event is not open for booking."""
    kind = "NOT_AVAILABLE"


class ConflictError(EngineError):
    """Concurrent update detected by the persistence layer."""
    kind = "CONFLICT"
    http_status = 409
    retryable = True


class PersistenceError(EngineError):
    """Underlying storage failure."""
    kind = "PERSISTENCE"
    http_status = 503
    retryable = True
