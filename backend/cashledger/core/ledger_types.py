"""
Closed vocabularies of the cash ledger.

Every transaction and reference kind accepted by the ledger is listed here;
free-form strings are rejected at the ledger boundary.
"""
from enum import Enum


class AccountKind(str, Enum):
    cash_box = "cash_box"
    money_box = "money_box"


class CashBoxStatus(str, Enum):
    open = "open"
    closed = "closed"


class TransactionType(str, Enum):
    opening = "opening"
    closing = "closing"
    deposit = "deposit"
    withdrawal = "withdrawal"
    sale = "sale"
    purchase = "purchase"
    expense = "expense"
    customer_receipt = "customer_receipt"
    supplier_payment = "supplier_payment"
    sale_return = "sale_return"
    purchase_return = "purchase_return"
    transfer_in = "transfer_in"
    transfer_out = "transfer_out"
    adjustment = "adjustment"


class ReferenceType(str, Enum):
    sale = "sale"
    purchase = "purchase"
    expense = "expense"
    customer_receipt = "customer_receipt"
    supplier_payment = "supplier_payment"
    sale_return = "sale_return"
    purchase_return = "purchase_return"
    debt = "debt"
    installment = "installment"
    manual = "manual"
    opening = "opening"
    closing = "closing"
    transfer = "transfer"


CREDIT = 1
DEBIT = -1

CREDIT_TYPES = frozenset({
    TransactionType.deposit,
    TransactionType.sale,
    TransactionType.customer_receipt,
    TransactionType.purchase_return,
    TransactionType.transfer_in,
    TransactionType.opening,
})

DEBIT_TYPES = frozenset({
    TransactionType.withdrawal,
    TransactionType.purchase,
    TransactionType.expense,
    TransactionType.supplier_payment,
    TransactionType.sale_return,
    TransactionType.transfer_out,
    TransactionType.closing,
})

# Manual operator actions allowed on a cash box / money box
CASH_BOX_MANUAL_TYPES = frozenset({
    TransactionType.deposit,
    TransactionType.withdrawal,
    TransactionType.adjustment,
})
MONEY_BOX_MANUAL_TYPES = frozenset({
    TransactionType.deposit,
    TransactionType.withdrawal,
})


def fixed_direction(transaction_type: TransactionType):
    """
    Direction implied by the transaction type.

    Returns:
        CREDIT or DEBIT, or None for `adjustment`, whose sign is explicit.
    """
    if transaction_type in CREDIT_TYPES:
        return CREDIT
    if transaction_type in DEBIT_TYPES:
        return DEBIT
    return None
