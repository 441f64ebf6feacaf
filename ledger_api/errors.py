"""
Domain errors raised by the guard, the lifecycle engine and the CRUD layer.

The HTTP layer never builds status codes by hand: it looks the error class up
in ``STATUS_CODES`` through :func:`status_for`.
"""

from decimal import Decimal
from typing import Any, Optional


class LedgerError(Exception):
    message = "Ledger error"

    def __init__(self, message: Optional[str] = None, details: Optional[Any] = None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


class Unauthorized(LedgerError):
    message = "Not authenticated"


class Forbidden(LedgerError):
    message = "Not allowed"


class NotFound(LedgerError):
    message = "Not found"


class Conflict(LedgerError):
    message = "Conflict"


class InsufficientFunds(Conflict):
    message = "Insufficient funds in bank account"

    def __init__(self, account_name: str, current_balance: Decimal, required_amount: Decimal):
        super().__init__(
            details={
                "account_name": account_name,
                "current_balance": str(current_balance),
                "required_amount": str(required_amount),
            }
        )
        self.account_name = account_name
        self.current_balance = current_balance
        self.required_amount = required_amount


class ValidationFailed(LedgerError):
    message = "Invalid data"


STATUS_CODES = {
    Unauthorized: 401,
    Forbidden: 403,
    NotFound: 404,
    InsufficientFunds: 400,
    Conflict: 409,
    ValidationFailed: 400,
}


def status_for(exc: Exception) -> int:
    for klass in type(exc).__mro__:
        if klass in STATUS_CODES:
            return STATUS_CODES[klass]
    return 500
