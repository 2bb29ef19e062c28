from decimal import Decimal

import pytest

from cashledger.core.errors import (
    AccountClosed,
    AccountNotFound,
    DestinationNotFound,
    InsufficientBalance,
    InvalidAmount,
    NotFound,
    SameAccount,
)
from cashledger.models.ledger_transaction import LedgerTransaction
from cashledger.services import (
    cash_box_service,
    ledger_service,
    money_box_service,
    transfer_service,
)


@pytest.fixture
def till(db, cashier):
    cash_box = cash_box_service.open_cash_box(db, cashier.id, opening_amount=100)
    ledger_service.apply_transaction(db, cash_box.id, "sale", 50, "sale")
    ledger_service.apply_transaction(db, cash_box.id, "purchase", 30, "purchase")
    return cash_box


def _row_count(db):
    return db.query(LedgerTransaction).count()


def test_transfer_moves_funds_with_correlated_legs(db, till, money_boxes):
    main = money_boxes["main"]
    before = _row_count(db)

    result = transfer_service.transfer(db, till.id, main.id, 70, notes="bank run", acting_user_id=till.owner_user_id)

    assert ledger_service.get_balance(db, till.id) == Decimal("50")
    assert ledger_service.get_balance(db, main.id) == Decimal("70")
    assert _row_count(db) == before + 2
    assert result.source.reference_id == result.destination.reference_id == result.correlation_id
    assert result.source.transaction_type == "transfer_out"
    assert result.destination.transaction_type == "transfer_in"
    assert result.source.counterparty_account_id == main.id
    assert result.destination.counterparty_account_id == till.id
    assert result.amount == Decimal("70")

    fetched = transfer_service.get_transfer(db, result.correlation_id)
    assert fetched.source.id == result.source.id
    assert fetched.destination.id == result.destination.id


def test_transfer_to_same_account_rejected(db, money_boxes):
    with pytest.raises(SameAccount):
        transfer_service.transfer(db, money_boxes["main"].id, money_boxes["main"].id, 5)


def test_transfer_with_missing_endpoints(db, money_boxes):
    main_id = money_boxes["main"].id
    with pytest.raises(DestinationNotFound):
        transfer_service.transfer(db, main_id, 9999, 5)
    with pytest.raises(AccountNotFound):
        transfer_service.transfer(db, 9999, main_id, 5)


def test_transfer_rejects_invalid_amount(db, till, money_boxes):
    with pytest.raises(InvalidAmount):
        transfer_service.transfer(db, till.id, money_boxes["main"].id, 0)


def test_insufficient_source_leaves_both_sides_untouched(db, till, money_boxes):
    main = money_boxes["main"]
    before = _row_count(db)

    with pytest.raises(InsufficientBalance):
        transfer_service.transfer(db, till.id, main.id, 500)

    assert ledger_service.get_balance(db, till.id) == Decimal("120")
    assert ledger_service.get_balance(db, main.id) == Decimal("0")
    assert _row_count(db) == before


def test_failing_second_leg_rolls_back_first_leg(db, till, other_cashier):
    # Destination is a closed cash box: transfer_out succeeds, transfer_in fails
    closed = cash_box_service.open_cash_box(db, other_cashier.id, opening_amount=0)
    cash_box_service.close_cash_box(db, other_cashier.id, closing_amount=0)
    before = _row_count(db)

    with pytest.raises(AccountClosed):
        transfer_service.transfer(db, till.id, closed.id, 20)

    assert ledger_service.get_balance(db, till.id) == Decimal("120")
    assert _row_count(db) == before
    assert ledger_service.reconcile_account(db, till.id)["consistent"]


def test_daily_pool_round_trip(db, till, money_boxes):
    daily = money_boxes["daily"]

    transfer_service.transfer_to_daily_pool(db, till.id, 40, acting_user_id=till.owner_user_id)
    assert ledger_service.get_balance(db, daily.id) == Decimal("40")
    assert ledger_service.get_balance(db, till.id) == Decimal("80")

    transfer_service.transfer_from_daily_pool(db, till.id, 15)
    assert ledger_service.get_balance(db, daily.id) == Decimal("25")
    assert ledger_service.get_balance(db, till.id) == Decimal("95")


def test_daily_pool_missing(db, till):
    with pytest.raises(DestinationNotFound):
        transfer_service.transfer_to_daily_pool(db, till.id, 10)


def test_custom_pool_resolved_by_name_or_id(db, till, admin):
    safe = money_box_service.create_money_box(db, "Safe", created_by=admin.id)

    transfer_service.transfer_to_custom_pool(db, till.id, "Safe", 20)
    transfer_service.transfer_to_custom_pool(db, till.id, safe.id, 5)

    assert ledger_service.get_balance(db, safe.id) == Decimal("25")
    with pytest.raises(DestinationNotFound):
        transfer_service.transfer_to_custom_pool(db, till.id, "Nowhere", 5)


def test_between_money_boxes(db, money_boxes, till):
    daily, main = money_boxes["daily"], money_boxes["main"]
    money_box_service.money_box_transaction(db, daily.id, "deposit", 60)

    transfer_service.transfer_between_money_boxes(db, daily.id, main.id, 45)

    assert ledger_service.get_balance(db, daily.id) == Decimal("15")
    assert ledger_service.get_balance(db, main.id) == Decimal("45")
    with pytest.raises(DestinationNotFound):
        transfer_service.transfer_between_money_boxes(db, main.id, till.id, 5)


def test_unknown_correlation_id(db):
    with pytest.raises(NotFound):
        transfer_service.get_transfer(db, "does-not-exist")
