"""
Transfer coordinator: moves funds between two accounts as one unit.

A transfer is a `transfer_out` row on the source and a `transfer_in` row on
the destination, both with reference_type `transfer` and the same
correlation id in reference_id. Both legs are written in one database
transaction under both accounts' locks (ascending id order), so either both
rows exist or neither does.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Union

from sqlalchemy.orm import Session

from cashledger.core.errors import (
    AccountNotFound,
    DestinationNotFound,
    InvalidState,
    NotFound,
    SameAccount,
)
from cashledger.core.ledger_types import ReferenceType, TransactionType
from cashledger.core.locks import account_key
from cashledger.models.account import Account, CashBox, MoneyBox
from cashledger.models.ledger_transaction import LedgerTransaction
from cashledger.services import ledger_service, money_box_service


logger = logging.getLogger(__name__)


@dataclass
class TransferResult:
    correlation_id: str
    source: LedgerTransaction
    destination: LedgerTransaction

    @property
    def amount(self) -> Decimal:
        return self.source.amount


def new_correlation_id() -> str:
    return str(uuid.uuid4())


def _coerce_destination_id(account_id: Any) -> int:
    try:
        return int(account_id)
    except (TypeError, ValueError):
        raise DestinationNotFound(account_id=account_id)


def post_transfer_legs(
    db: Session,
    source: Account,
    destination: Account,
    amount: Any,
    correlation_id: str,
    notes: Optional[str] = "",
    acting_user_id: Optional[int] = None,
    out_description: Optional[str] = None,
    in_description: Optional[str] = None,
) -> TransferResult:
    """
    Write both legs on already-locked accounts. No commit: callers run this
    inside ledger_service.atomic with both account keys held.
    """
    if source.id == destination.id:
        raise SameAccount()

    out_entry = ledger_service.post_entry(
        db,
        source,
        TransactionType.transfer_out,
        amount,
        ReferenceType.transfer,
        reference_id=correlation_id,
        description=out_description or f"Transfer to {destination.name}",
        notes=notes,
        acting_user_id=acting_user_id,
        counterparty_account_id=destination.id,
    )
    in_entry = ledger_service.post_entry(
        db,
        destination,
        TransactionType.transfer_in,
        amount,
        ReferenceType.transfer,
        reference_id=correlation_id,
        description=in_description or f"Transfer from {source.name}",
        notes=notes,
        acting_user_id=acting_user_id,
        counterparty_account_id=source.id,
    )
    return TransferResult(correlation_id=correlation_id, source=out_entry, destination=in_entry)


def transfer(
    db: Session,
    source_account_id: Any,
    destination_account_id: Any,
    amount: Any,
    notes: Optional[str] = "",
    acting_user_id: Optional[int] = None,
    out_description: Optional[str] = None,
    in_description: Optional[str] = None,
) -> TransferResult:
    """
    Move `amount` from one account to another atomically.

    Args:
        db: Database session
        source_account_id: Account debited (transfer_out)
        destination_account_id: Account credited (transfer_in)
        amount: Positive amount
        notes: Free text copied to both legs
        acting_user_id: User performing the transfer

    Returns:
        TransferResult with both ledger rows and their correlation id

    Raises:
        SameAccount, InvalidAmount, AccountNotFound (source),
        DestinationNotFound, AccountClosed, InsufficientBalance,
        TransactionConflict
    """
    magnitude = ledger_service.parse_amount(amount)
    source_id = ledger_service._coerce_account_id(source_account_id)
    destination_id = _coerce_destination_id(destination_account_id)
    if source_id == destination_id:
        raise SameAccount()

    correlation_id = new_correlation_id()

    def _transfer() -> TransferResult:
        try:
            locked = ledger_service.lock_accounts(db, (source_id, destination_id))
        except AccountNotFound as exc:
            if exc.params.get("account_id") == destination_id:
                raise DestinationNotFound(account_id=destination_id)
            raise
        return post_transfer_legs(
            db,
            locked[source_id],
            locked[destination_id],
            magnitude,
            correlation_id,
            notes=notes,
            acting_user_id=acting_user_id,
            out_description=out_description,
            in_description=in_description,
        )

    result = ledger_service.atomic(db, [account_key(source_id), account_key(destination_id)], _transfer)
    logger.info(
        "Transfer %s: %s from account %s to account %s",
        correlation_id, magnitude, source_id, destination_id,
    )
    return result


def _require_cash_box(db: Session, cash_box_id: Any) -> CashBox:
    account = ledger_service.get_account(db, cash_box_id)
    if not isinstance(account, CashBox):
        raise InvalidState("not_a_cash_box", account_id=account.id)
    return account


def _daily_money_box(db: Session) -> MoneyBox:
    daily = money_box_service.get_daily_money_box(db)
    if not daily:
        raise DestinationNotFound("daily_money_box_not_found")
    return daily


def transfer_to_daily_pool(
    db: Session,
    cash_box_id: Any,
    amount: Any,
    notes: Optional[str] = "",
    acting_user_id: Optional[int] = None,
) -> TransferResult:
    """Cash box -> daily money box."""
    cash_box = _require_cash_box(db, cash_box_id)
    daily = _daily_money_box(db)
    return transfer(
        db,
        cash_box.id,
        daily.id,
        amount,
        notes=notes,
        acting_user_id=acting_user_id,
        out_description="Transfer to daily money box",
        in_description=f"Transfer from cash box: {cash_box.name}",
    )


def transfer_from_daily_pool(
    db: Session,
    cash_box_id: Any,
    amount: Any,
    notes: Optional[str] = "",
    acting_user_id: Optional[int] = None,
) -> TransferResult:
    """Daily money box -> cash box."""
    cash_box = _require_cash_box(db, cash_box_id)
    daily = _daily_money_box(db)
    return transfer(
        db,
        daily.id,
        cash_box.id,
        amount,
        notes=notes,
        acting_user_id=acting_user_id,
        out_description=f"Transfer to cash box: {cash_box.name}",
        in_description="Transfer from daily money box",
    )


def transfer_to_custom_pool(
    db: Session,
    cash_box_id: Any,
    money_box: Union[int, str],
    amount: Any,
    notes: Optional[str] = "",
    acting_user_id: Optional[int] = None,
) -> TransferResult:
    """Cash box -> money box resolved by id or name."""
    cash_box = _require_cash_box(db, cash_box_id)
    try:
        target = money_box_service.resolve_money_box(db, money_box)
    except (NotFound, InvalidState):
        raise DestinationNotFound("money_box_not_found", name=money_box)
    return transfer(
        db,
        cash_box.id,
        target.id,
        amount,
        notes=notes,
        acting_user_id=acting_user_id,
        out_description=f"Transfer to {target.name}",
        in_description=f"Transfer from cash box: {cash_box.name}",
    )


def transfer_between_money_boxes(
    db: Session,
    from_box_id: Any,
    to_box_id: Any,
    amount: Any,
    notes: Optional[str] = "",
    acting_user_id: Optional[int] = None,
) -> TransferResult:
    """Money box -> money box."""
    source = money_box_service.get_money_box(db, from_box_id)
    try:
        destination = money_box_service.get_money_box(db, to_box_id)
    except (NotFound, InvalidState):
        raise DestinationNotFound(account_id=to_box_id)
    return transfer(db, source.id, destination.id, amount, notes=notes, acting_user_id=acting_user_id)


def get_transfer(db: Session, correlation_id: str) -> TransferResult:
    """Reassemble both legs of a transfer from its correlation id."""
    legs = (
        db.query(LedgerTransaction)
        .filter(
            LedgerTransaction.reference_type == ReferenceType.transfer.value,
            LedgerTransaction.reference_id == correlation_id,
        )
        .all()
    )
    out_leg = next((leg for leg in legs if leg.transaction_type == TransactionType.transfer_out.value), None)
    in_leg = next((leg for leg in legs if leg.transaction_type == TransactionType.transfer_in.value), None)
    if not out_leg or not in_leg:
        raise NotFound()
    return TransferResult(correlation_id=correlation_id, source=out_leg, destination=in_leg)
