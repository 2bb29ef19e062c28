from decimal import Decimal

import pytest

from cashledger.core.errors import (
    AccountClosed,
    AccountNotFound,
    AlreadyClosed,
    AlreadyOpen,
    DestinationAccountNotFound,
    DestinationNotFound,
    InvalidState,
    NoOpenCashBox,
    ReasonRequired,
    ValidationError,
)
from cashledger.core.ledger_types import DEBIT
from cashledger.services import cash_box_service, ledger_service


def test_only_one_open_cash_box_per_user(db, cashier, other_cashier):
    cash_box_service.open_cash_box(db, cashier.id, opening_amount=10)
    with pytest.raises(AlreadyOpen):
        cash_box_service.open_cash_box(db, cashier.id, opening_amount=10)
    # Other operators are unaffected
    cash_box_service.open_cash_box(db, other_cashier.id, opening_amount=10)


def test_opening_amount_defaults_to_settings(db, cashier):
    cash_box_service.update_user_settings(db, cashier.id, default_opening_amount=75)
    cash_box = cash_box_service.open_cash_box(db, cashier.id)

    assert cash_box.initial_amount == Decimal("75")
    assert ledger_service.get_balance(db, cash_box.id) == Decimal("75")


def test_zero_opening_posts_no_row(db, cashier):
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=0)
    assert ledger_service.count_transactions(db, cash_box.id) == 0


def test_negative_opening_amount_rejected(db, cashier):
    with pytest.raises(ValidationError):
        cash_box_service.open_cash_box(db, cashier.id, opening_amount=-1)
    assert cash_box_service.get_user_cash_box(db, cashier.id) is None


def test_close_zeroes_balance_and_records_variance(db, cashier):
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=100)
    ledger_service.apply_transaction(db, cash_box.id, "sale", 20, "sale")

    closed = cash_box_service.close_cash_box(db, cashier.id, closing_amount=115, notes="short by 5")

    assert closed.status == "closed"
    assert closed.closed_by == cashier.id
    assert closed.closed_at is not None
    assert closed.closing_amount == Decimal("115")
    assert closed.closing_variance == Decimal("-5")
    assert ledger_service.get_balance(db, cash_box.id) == Decimal("0")
    last = ledger_service.list_transactions(db, cash_box.id, limit=1)[0]
    assert last.transaction_type == "closing"
    assert last.amount == Decimal("120")
    assert ledger_service.reconcile_account(db, cash_box.id)["consistent"]


def test_close_negative_balance_uses_adjustment(db, cashier):
    cash_box_service.update_user_settings(db, cashier.id, allow_negative_balance=True)
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=5)
    ledger_service.apply_transaction(db, cash_box.id, "expense", 8, "expense")

    cash_box_service.close_cash_box(db, cashier.id, closing_amount=0)

    last = ledger_service.list_transactions(db, cash_box.id, limit=1)[0]
    assert last.transaction_type == "adjustment"
    assert last.direction == 1
    assert ledger_service.get_balance(db, cash_box.id) == Decimal("0")


def test_close_requires_count_by_default(db, cashier):
    cash_box_service.open_cash_box(db, cashier.id, opening_amount=5)
    with pytest.raises(ValidationError):
        cash_box_service.close_cash_box(db, cashier.id)

    cash_box_service.update_user_settings(db, cashier.id, require_closing_count=False)
    closed = cash_box_service.close_cash_box(db, cashier.id)
    assert closed.closing_amount is None


def test_close_without_open_box(db, cashier):
    with pytest.raises(NoOpenCashBox):
        cash_box_service.close_cash_box(db, cashier.id, closing_amount=0)


def test_reopen_creates_new_session(db, cashier):
    first = cash_box_service.open_cash_box(db, cashier.id, opening_amount=10)
    cash_box_service.close_cash_box(db, cashier.id, closing_amount=10)
    second = cash_box_service.open_cash_box(db, cashier.id, opening_amount=20)

    assert second.id != first.id
    history = cash_box_service.list_user_cash_box_history(db, cashier.id)
    assert {box.id for box in history} == {first.id, second.id}


def test_force_close_redirects_balance(db, cashier, admin, money_boxes):
    main = money_boxes["main"]
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=50)

    result = cash_box_service.force_close_cash_box(db, cash_box.id, admin.id, "end of shift", destination_account_id=main.id)

    assert result.cash_box.status == "closed"
    assert result.cash_box.close_reason == "end of shift"
    assert result.cash_box.closed_by == admin.id
    assert result.transfer.amount == Decimal("50")
    assert ledger_service.get_balance(db, cash_box.id) == Decimal("0")
    assert ledger_service.get_balance(db, main.id) == Decimal("50")
    assert cash_box_service.get_user_cash_box(db, cashier.id) is None


def test_force_close_in_place(db, cashier, admin):
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=50)

    result = cash_box_service.force_close_cash_box(db, cash_box.id, admin.id, "operator left")

    assert result.transfer is None
    assert result.cash_box.status == "closed"
    last = ledger_service.list_transactions(db, cash_box.id, limit=1)[0]
    assert last.transaction_type == "closing"
    assert ledger_service.get_balance(db, cash_box.id) == Decimal("0")


def test_force_close_missing_destination_leaves_box_open(db, cashier, admin):
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=50)

    with pytest.raises(DestinationAccountNotFound) as exc_info:
        cash_box_service.force_close_cash_box(db, cash_box.id, admin.id, "end of shift", destination_account_id=4242)

    assert isinstance(exc_info.value, DestinationNotFound)
    refreshed = cash_box_service.get_cash_box(db, cash_box.id)
    assert refreshed.status == "open"
    assert ledger_service.get_balance(db, cash_box.id) == Decimal("50")
    assert ledger_service.count_transactions(db, cash_box.id) == 1


def test_force_close_rolls_back_when_destination_refuses_credit(db, cashier, other_cashier, admin):
    closed_till = cash_box_service.open_cash_box(db, other_cashier.id, opening_amount=0)
    cash_box_service.close_cash_box(db, other_cashier.id, closing_amount=0)
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=50)

    with pytest.raises(AccountClosed):
        cash_box_service.force_close_cash_box(
            db, cash_box.id, admin.id, "end of shift", destination_account_id=closed_till.id
        )

    refreshed = cash_box_service.get_cash_box(db, cash_box.id)
    assert refreshed.status == "open"
    assert ledger_service.get_balance(db, cash_box.id) == Decimal("50")
    assert ledger_service.count_transactions(db, cash_box.id) == 1
    assert ledger_service.count_transactions(db, closed_till.id) == 0


def test_force_close_validation(db, cashier, admin):
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=5)

    with pytest.raises(ReasonRequired):
        cash_box_service.force_close_cash_box(db, cash_box.id, admin.id, "   ")
    with pytest.raises(AccountNotFound):
        cash_box_service.force_close_cash_box(db, 777, admin.id, "gone")

    cash_box_service.force_close_cash_box(db, cash_box.id, admin.id, "done")
    with pytest.raises(AlreadyClosed):
        cash_box_service.force_close_cash_box(db, cash_box.id, admin.id, "again")


def test_manual_transactions_respect_ownership_and_limits(db, cashier, other_cashier):
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=100)
    cash_box_service.update_user_settings(db, cashier.id, max_withdrawal_amount=30)

    cash_box_service.manual_transaction(db, cashier.id, cash_box.id, "deposit", 10)
    cash_box_service.manual_transaction(db, cashier.id, None, "adjustment", 5, sign=DEBIT)
    with pytest.raises(ValidationError):
        cash_box_service.manual_transaction(db, cashier.id, cash_box.id, "withdrawal", 31)
    with pytest.raises(ValidationError):
        cash_box_service.manual_transaction(db, cashier.id, cash_box.id, "sale", 5)
    with pytest.raises(InvalidState):
        cash_box_service.manual_transaction(db, other_cashier.id, cash_box.id, "deposit", 5)

    assert ledger_service.get_balance(db, cash_box.id) == Decimal("105")


def test_business_posting_requires_open_box(db, cashier):
    with pytest.raises(NoOpenCashBox):
        cash_box_service.post_to_open_cash_box(db, cashier.id, "sale", 10, "sale", reference_id=1)

    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=0)
    entry = cash_box_service.post_to_open_cash_box(db, cashier.id, "sale", 10, "sale", reference_id=1)
    assert entry.account_id == cash_box.id


def test_admin_listings(db, cashier, other_cashier):
    first = cash_box_service.open_cash_box(db, cashier.id, opening_amount=0)
    cash_box_service.open_cash_box(db, other_cashier.id, opening_amount=0)
    cash_box_service.close_cash_box(db, cashier.id, closing_amount=0)

    assert len(cash_box_service.list_open_cash_boxes(db)) == 1
    assert len(cash_box_service.list_all_cash_box_history(db)) == 2
    closed = cash_box_service.list_all_cash_box_history(db, status="closed")
    assert [box.id for box in closed] == [first.id]
