"""
Error taxonomy for the ledger.

Every error carries a machine readable ``code`` and the HTTP status the API
renders it with. Validation errors never leave partial mutations behind.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    code = "ledger_error"
    http_status = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        result = {"error": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(LedgerError):
    """Raised when a request is rejected before any mutation."""

    code = "validation_error"


class NotFoundError(LedgerError):
    """Raised when a referenced entity does not exist."""

    code = "not_found"
    http_status = 404


class InvalidAmount(ValidationError):
    code = "invalid_amount"


class InvalidDescription(ValidationError):
    code = "invalid_description"


class InvalidStatus(ValidationError):
    code = "invalid_status"


class InvalidTransactionType(ValidationError):
    code = "invalid_transaction_type"


class InvalidAccountData(ValidationError):
    code = "invalid_account_data"


class ImmutableFieldError(ValidationError):
    """Raised when an update touches a field outside the allow-list."""

    code = "immutable_field"


class AccountNotActive(ValidationError):
    code = "account_not_active"


class InsufficientFunds(ValidationError):
    code = "insufficient_funds"


class DestinationRequired(ValidationError):
    code = "destination_required"


class DestinationNotActive(ValidationError):
    code = "destination_not_active"


class SelfTransferNotAllowed(ValidationError):
    code = "self_transfer_not_allowed"


class AccountNotFound(NotFoundError):
    code = "account_not_found"


class DestinationNotFound(NotFoundError):
    code = "destination_not_found"


class TransactionNotFound(NotFoundError):
    code = "transaction_not_found"


class PersistenceFailure(LedgerError):
    """Raised when the storage layer fails while applying a mutation."""

    code = "persistence_failure"
    http_status = 500
