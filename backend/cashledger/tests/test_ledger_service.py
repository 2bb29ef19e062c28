from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from cashledger.core.errors import (
    AccountClosed,
    AccountNotFound,
    ConflictRetryable,
    InsufficientBalance,
    Internal,
    InvalidAmount,
    TransactionConflict,
    UnknownReferenceType,
    UnknownTransactionType,
    ValidationError,
)
from cashledger.core.ledger_types import DEBIT
from cashledger.services import cash_box_service, ledger_service


def assert_consistent(db, account_id):
    report = ledger_service.reconcile_account(db, account_id)
    assert report["consistent"], report
    return report


def test_open_cash_box_posts_opening_row(db, cashier):
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=100)

    assert ledger_service.get_balance(db, cash_box.id) == Decimal("100.00")
    rows = ledger_service.list_transactions(db, cash_box.id)
    assert len(rows) == 1
    assert rows[0].transaction_type == "opening"
    assert rows[0].balance_before == Decimal("0")
    assert rows[0].balance_after == Decimal("100")
    assert_consistent(db, cash_box.id)


def test_sale_then_purchase_chains_balances(db, cashier):
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=100)

    sale = ledger_service.apply_transaction(db, cash_box.id, "sale", 50, "sale", reference_id=11)
    assert sale.balance_after == Decimal("150")
    purchase = ledger_service.apply_transaction(db, cash_box.id, "purchase", 30, "purchase", reference_id=7)
    assert purchase.balance_after == Decimal("120")

    rows = ledger_service.list_transactions(db, cash_box.id, newest_first=False)
    assert [row.transaction_type for row in rows] == ["opening", "sale", "purchase"]
    for previous, current in zip(rows, rows[1:]):
        assert previous.balance_after == current.balance_before
    assert ledger_service.get_balance(db, cash_box.id) == Decimal("120")
    assert sale.reference_id == "11"
    assert_consistent(db, cash_box.id)


def test_withdrawal_beyond_balance_is_rejected(db, cashier):
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=50)

    with pytest.raises(InsufficientBalance) as exc_info:
        ledger_service.apply_transaction(db, cash_box.id, "withdrawal", 200, "manual")

    assert exc_info.value.details["available_balance"] == 50.0
    assert exc_info.value.details["required_amount"] == 200.0
    assert ledger_service.get_balance(db, cash_box.id) == Decimal("50")
    assert ledger_service.count_transactions(db, cash_box.id) == 1


def test_negative_balance_allowed_by_operator_policy(db, cashier):
    cash_box_service.update_user_settings(db, cashier.id, allow_negative_balance=True)
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=10)

    entry = ledger_service.apply_transaction(db, cash_box.id, "expense", 25, "expense")

    assert entry.balance_after == Decimal("-15")
    assert_consistent(db, cash_box.id)


def test_money_box_debit_cannot_go_negative(db, money_boxes):
    daily = money_boxes["daily"]
    with pytest.raises(InsufficientBalance):
        ledger_service.apply_transaction(db, daily.id, "withdrawal", 1, "manual")
    assert ledger_service.count_transactions(db, daily.id) == 0


@pytest.mark.parametrize("amount", [
    0, -5, "abc", None, float("nan"), float("inf"), True,
    Decimal("1e30"), "1e30", Decimal("1e10"), "9999999999.995",
])
def test_invalid_amounts_rejected(db, money_boxes, amount):
    with pytest.raises(InvalidAmount):
        ledger_service.apply_transaction(db, money_boxes["main"].id, "deposit", amount, "manual")


def test_largest_amount_accepted(db, money_boxes):
    entry = ledger_service.apply_transaction(db, money_boxes["main"].id, "deposit", "9999999999.99", "manual")
    assert entry.balance_after == Decimal("9999999999.99")


def test_amounts_are_rounded_to_cents(db, money_boxes):
    entry = ledger_service.apply_transaction(db, money_boxes["main"].id, "deposit", "10.005", "manual")
    assert entry.amount == Decimal("10.01")


def test_unknown_types_rejected(db, money_boxes):
    box_id = money_boxes["main"].id
    with pytest.raises(UnknownTransactionType):
        ledger_service.apply_transaction(db, box_id, "gift", 5, "manual")
    with pytest.raises(UnknownReferenceType):
        ledger_service.apply_transaction(db, box_id, "deposit", 5, "lottery")
    assert isinstance(UnknownReferenceType(), ValidationError)


def test_adjustment_takes_explicit_sign(db, money_boxes):
    box_id = money_boxes["main"].id
    ledger_service.apply_transaction(db, box_id, "adjustment", 40, "manual")
    entry = ledger_service.apply_transaction(db, box_id, "adjustment", 15, "manual", sign=DEBIT)

    assert entry.direction == -1
    assert entry.balance_after == Decimal("25")
    assert_consistent(db, box_id)


def test_sign_only_allowed_for_adjustments(db, money_boxes):
    with pytest.raises(ValidationError):
        ledger_service.apply_transaction(db, money_boxes["main"].id, "deposit", 5, "manual", sign=DEBIT)
    with pytest.raises(ValidationError):
        ledger_service.apply_transaction(db, money_boxes["main"].id, "adjustment", 5, "manual", sign=3)


def test_closed_cash_box_rejects_transactions(db, cashier):
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=30)
    cash_box_service.close_cash_box(db, cashier.id, closing_amount=30)
    rows_before = ledger_service.count_transactions(db, cash_box.id)

    with pytest.raises(AccountClosed):
        ledger_service.apply_transaction(db, cash_box.id, "sale", 5, "sale")

    assert ledger_service.count_transactions(db, cash_box.id) == rows_before
    assert ledger_service.get_balance(db, cash_box.id) == Decimal("0")


def test_unknown_account(db):
    with pytest.raises(AccountNotFound):
        ledger_service.apply_transaction(db, 999, "deposit", 5, "manual")
    with pytest.raises(AccountNotFound):
        ledger_service.list_transactions(db, 999)
    with pytest.raises(AccountNotFound):
        ledger_service.get_balance(db, 999)


def test_paging_limits_validated(db, money_boxes):
    with pytest.raises(ValidationError):
        ledger_service.list_transactions(db, money_boxes["main"].id, limit=0)
    with pytest.raises(ValidationError):
        ledger_service.list_transactions(db, money_boxes["main"].id, offset=-1)


def test_reconcile_is_stable_across_reads(db, money_boxes):
    box_id = money_boxes["main"].id
    ledger_service.apply_transaction(db, box_id, "deposit", 12.5, "manual")
    ledger_service.apply_transaction(db, box_id, "withdrawal", 2.5, "manual")

    first = assert_consistent(db, box_id)
    second = assert_consistent(db, box_id)
    assert first == second
    assert first["ledger_balance"] == Decimal("10.00")
    assert first["transaction_count"] == 2
    assert ledger_service.compute_ledger_balance(db, box_id) == Decimal("10.00")


def test_atomic_retries_stale_write(db):
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise StaleDataError("row version changed")
        return "done"

    assert ledger_service.atomic(db, [], flaky, attempts=3) == "done"
    assert len(calls) == 2


def test_atomic_gives_up_after_last_attempt(db):
    calls = []

    def always_stale():
        calls.append(1)
        raise StaleDataError("row version changed")

    with pytest.raises(TransactionConflict) as exc_info:
        ledger_service.atomic(db, [], always_stale, attempts=3)

    assert len(calls) == 3
    assert isinstance(exc_info.value, ConflictRetryable)
    assert exc_info.value.details == {"attempts": 3}


def test_atomic_maps_constraint_violations(db):
    def violate():
        raise IntegrityError("INSERT INTO ledger_transactions", {}, Exception("foreign key"))

    with pytest.raises(Internal):
        ledger_service.atomic(db, [], violate)
    with pytest.raises(IntegrityError):
        ledger_service.atomic(db, [], violate, raise_integrity=True)
