"""
Generic serialization helpers for API responses.
No business logic here, only formatting.
"""
from datetime import date, datetime
from decimal import Decimal

from cashledger.core.messages import translate
from cashledger.models.account import Account, CashBox
from cashledger.models.ledger_transaction import LedgerTransaction


def serialize_decimal(value):
    """Decimal -> float for JSON"""
    if value is None:
        return None
    return float(value)


def serialize_datetime(value):
    """datetime -> ISO string for JSON"""
    if value is None:
        return None
    return value.isoformat()


def serialize_account(account: Account) -> dict:
    data = {
        "id": account.id,
        "kind": account.kind,
        "name": account.name,
        "current_amount": serialize_decimal(account.current_amount),
        "notes": account.notes,
        "created_by": account.created_by,
        "created_at": serialize_datetime(account.created_at),
        "updated_at": serialize_datetime(account.updated_at),
    }
    if isinstance(account, CashBox):
        data.update({
            "user_id": account.owner_user_id,
            "status": account.status,
            "initial_amount": serialize_decimal(account.initial_amount),
            "opened_at": serialize_datetime(account.opened_at),
            "opened_by": account.opened_by,
            "closed_at": serialize_datetime(account.closed_at),
            "closed_by": account.closed_by,
            "close_reason": account.close_reason,
            "closing_amount": serialize_decimal(account.closing_amount),
            "closing_variance": serialize_decimal(account.closing_variance),
        })
    return data


def serialize_transaction(entry: LedgerTransaction) -> dict:
    return {
        "id": entry.id,
        "account_id": entry.account_id,
        "transaction_type": entry.transaction_type,
        "direction": entry.direction,
        "amount": serialize_decimal(entry.amount),
        "signed_amount": serialize_decimal(entry.signed_amount),
        "balance_before": serialize_decimal(entry.balance_before),
        "balance_after": serialize_decimal(entry.balance_after),
        "reference_type": entry.reference_type,
        "reference_id": entry.reference_id,
        "counterparty_account_id": entry.counterparty_account_id,
        "description": entry.description,
        "notes": entry.notes,
        "created_by": entry.created_by,
        "created_at": serialize_datetime(entry.created_at),
    }


def serialize_transfer(result) -> dict:
    return {
        "correlation_id": result.correlation_id,
        "amount": serialize_decimal(result.amount),
        "source": serialize_transaction(result.source),
        "destination": serialize_transaction(result.destination),
    }


def serialize_settings(policy) -> dict:
    return {
        "user_id": policy.user_id,
        "default_opening_amount": serialize_decimal(policy.default_opening_amount),
        "allow_negative_balance": policy.allow_negative_balance,
        "max_withdrawal_amount": serialize_decimal(policy.max_withdrawal_amount),
        "require_closing_count": policy.require_closing_count,
        "updated_at": serialize_datetime(policy.updated_at),
    }


def serialize_value(value):
    """Recursively make report structures JSON friendly."""
    if isinstance(value, Decimal):
        return serialize_decimal(value)
    if isinstance(value, (datetime, date)):
        return serialize_datetime(value)
    if isinstance(value, Account):
        return serialize_account(value)
    if isinstance(value, LedgerTransaction):
        return serialize_transaction(value)
    if isinstance(value, dict):
        return {key: serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return value


def success_response(data=None, message_code=None, **params) -> dict:
    """Success envelope shared by every ledger route."""
    return {
        "success": True,
        "data": serialize_value(data),
        "message": translate(message_code, **params) if message_code else None,
    }
