import threading
from decimal import Decimal

import pytest

from cashledger.core.database import SessionLocal
from cashledger.core.errors import AlreadyOpen
from cashledger.models.account import CashBox
from cashledger.services import cash_box_service, ledger_service, transfer_service


def _run_in_threads(worker, count):
    errors = []
    barrier = threading.Barrier(count)

    def _target(index):
        barrier.wait()
        try:
            worker(index)
        except Exception as exc:  # collected and asserted by the caller
            errors.append(exc)

    threads = [threading.Thread(target=_target, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return errors


def test_concurrent_deposits_are_not_lost(db, money_boxes):
    box_id = money_boxes["main"].id

    def deposit(_):
        with SessionLocal() as session:
            ledger_service.apply_transaction(session, box_id, "deposit", 10, "manual")

    errors = _run_in_threads(deposit, 2)

    assert errors == []
    assert ledger_service.get_balance(db, box_id) == Decimal("20")
    assert ledger_service.count_transactions(db, box_id) == 2
    assert ledger_service.reconcile_account(db, box_id)["consistent"]


@pytest.mark.parametrize("workers", [8])
def test_opposite_transfers_do_not_deadlock(db, money_boxes, workers):
    daily, main = money_boxes["daily"], money_boxes["main"]
    ledger_service.apply_transaction(db, daily.id, "deposit", 100, "manual")
    ledger_service.apply_transaction(db, main.id, "deposit", 100, "manual")

    def move(index):
        source, destination = (daily.id, main.id) if index % 2 else (main.id, daily.id)
        with SessionLocal() as session:
            transfer_service.transfer(session, source, destination, 5)

    errors = _run_in_threads(move, workers)

    assert errors == []
    total = ledger_service.get_balance(db, daily.id) + ledger_service.get_balance(db, main.id)
    assert total == Decimal("200")
    assert ledger_service.reconcile_account(db, daily.id)["consistent"]
    assert ledger_service.reconcile_account(db, main.id)["consistent"]


def test_concurrent_opens_yield_one_cash_box(db, cashier):
    def open_box(_):
        with SessionLocal() as session:
            cash_box_service.open_cash_box(session, cashier.id, opening_amount=10)

    errors = _run_in_threads(open_box, 4)

    assert len(errors) == 3
    assert all(isinstance(exc, AlreadyOpen) for exc in errors)
    assert db.query(CashBox).filter(CashBox.owner_user_id == cashier.id).count() == 1
