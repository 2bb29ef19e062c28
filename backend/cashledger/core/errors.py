"""
Error taxonomy of the cash ledger.

Every error carries a stable `kind` (the taxonomy bucket), a specific `code`
(used to look up the localized message) and the HTTP status the API answers
with. Services raise these; the API turns them into the failure envelope.
"""
from typing import Any, Dict, Optional

from cashledger.core.messages import translate


class LedgerError(Exception):
    kind = "internal"
    code = "internal"
    status_code = 500

    def __init__(self, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None, **params):
        if code:
            self.code = code
        self.details = details or {}
        self.params = params
        self.message = translate(self.code, **params)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "success": False,
            "message": self.message,
            "error": self.kind,
            "code": self.code,
        }
        if self.details:
            payload["details"] = self.details
        return payload


# Validation

class ValidationError(LedgerError):
    kind = "validation_error"
    code = "validation_error"
    status_code = 400


class InvalidAmount(ValidationError):
    code = "invalid_amount"


class UnknownTransactionType(ValidationError):
    code = "unknown_transaction_type"


class UnknownReferenceType(ValidationError):
    code = "unknown_reference_type"


class SameAccount(ValidationError):
    code = "same_account"


class ReasonRequired(ValidationError):
    code = "reason_required"


class DuplicateName(ValidationError):
    code = "duplicate_name"


# Not found

class NotFound(LedgerError):
    kind = "not_found"
    code = "not_found"
    status_code = 404


class AccountNotFound(NotFound):
    code = "account_not_found"


class DestinationNotFound(NotFound):
    code = "destination_not_found"


class DestinationAccountNotFound(DestinationNotFound):
    pass


class NoOpenCashBox(NotFound):
    code = "no_open_cash_box"


# Invalid state

class InvalidState(LedgerError):
    kind = "invalid_state"
    code = "invalid_state"
    status_code = 409


class AccountClosed(InvalidState):
    code = "account_closed"


class AlreadyOpen(InvalidState):
    code = "already_open"


class AlreadyClosed(InvalidState):
    code = "already_closed"


# Policy

class InsufficientBalance(LedgerError):
    kind = "insufficient_balance"
    code = "insufficient_balance"
    status_code = 422


# Concurrency / persistence

class ConflictRetryable(LedgerError):
    kind = "conflict_retryable"
    code = "transaction_conflict"
    status_code = 409


class TransactionConflict(ConflictRetryable):
    pass


class Internal(LedgerError):
    kind = "internal"
    code = "internal"
    status_code = 500
