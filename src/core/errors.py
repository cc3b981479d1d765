# error taxonomy shared by the transaction engine and its callers
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    INVALID_QUANTITY = "invalid_quantity"
    INVALID_DISCOUNT = "invalid_discount"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    ARITHMETIC = "arithmetic"
    STORAGE = "storage"
    AUTHORIZATION = "authorization"
    AUTHENTICATION = "authentication"


class PosError(Exception):
    """
    Base class of every error the engine raises on purpose.

    Each subclass carries a `kind` so callers (the views) can dispatch on it
    without an isinstance ladder.
    """

    kind: ErrorKind

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class InvalidQuantityError(PosError, ValueError):
    kind = ErrorKind.INVALID_QUANTITY


class InvalidDiscountError(PosError, ValueError):
    kind = ErrorKind.INVALID_DISCOUNT


class NotFoundError(PosError, LookupError):
    kind = ErrorKind.NOT_FOUND


class InvalidStateError(PosError):
    kind = ErrorKind.INVALID_STATE


class InvoiceNotFoundError(NotFoundError, InvalidStateError):
    """Voiding an unknown invoice is both a lookup failure and an invalid transition."""

    kind = ErrorKind.NOT_FOUND


class MoneyOverflowError(PosError, OverflowError):
    kind = ErrorKind.ARITHMETIC


class StorageError(PosError):
    kind = ErrorKind.STORAGE


class AuthenticationError(PosError):
    kind = ErrorKind.AUTHENTICATION


class AuthorizationError(PosError):
    kind = ErrorKind.AUTHORIZATION

    def __init__(self, message: str = "", capability: Optional[object] = None):
        super().__init__(message)
        self.capability = capability
