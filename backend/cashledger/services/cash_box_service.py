"""
Cash box lifecycle: open, close, force-close, operator transactions and
per-operator policy.

A cash box goes open -> closed exactly once; the next session is a new row.
Opening brings the float in through an `opening` row and closing drives the
balance back to zero through a `closing` row, so the ledger always explains
the balance.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cashledger.core.errors import (
    AccountNotFound,
    AlreadyClosed,
    AlreadyOpen,
    DestinationAccountNotFound,
    InvalidAmount,
    InvalidState,
    NoOpenCashBox,
    NotFound,
    ReasonRequired,
    SameAccount,
    ValidationError,
)
from cashledger.core.ledger_types import (
    CASH_BOX_MANUAL_TYPES,
    CREDIT,
    CashBoxStatus,
    ReferenceType,
    TransactionType,
)
from cashledger.core.locks import account_key, owner_key
from cashledger.models.account import CashBox
from cashledger.models.base import utcnow
from cashledger.models.cash_box_settings import UserCashBoxSettings
from cashledger.models.ledger_transaction import LedgerTransaction
from cashledger.models.user import User
from cashledger.services import ledger_service, transfer_service
from cashledger.services.transfer_service import TransferResult


logger = logging.getLogger(__name__)


@dataclass
class ForceCloseResult:
    cash_box: CashBox
    transfer: Optional[TransferResult] = None


# Settings

def get_user_settings(db: Session, user_id: int) -> UserCashBoxSettings:
    """Return the operator's cash box policy, creating the default row on first use."""
    policy = db.query(UserCashBoxSettings).filter(UserCashBoxSettings.user_id == user_id).first()
    if policy:
        return policy

    policy = UserCashBoxSettings(user_id=user_id)
    db.add(policy)
    try:
        db.commit()
    except IntegrityError:
        # Created by a concurrent request
        db.rollback()
        return db.query(UserCashBoxSettings).filter(UserCashBoxSettings.user_id == user_id).one()
    db.refresh(policy)
    return policy


def update_user_settings(
    db: Session,
    user_id: int,
    default_opening_amount: Any = None,
    allow_negative_balance: Optional[bool] = None,
    max_withdrawal_amount: Any = None,
    require_closing_count: Optional[bool] = None,
) -> UserCashBoxSettings:
    policy = get_user_settings(db, user_id)

    if default_opening_amount is not None:
        policy.default_opening_amount = ledger_service.parse_amount(default_opening_amount, allow_zero=True)
    if max_withdrawal_amount is not None:
        policy.max_withdrawal_amount = ledger_service.parse_amount(max_withdrawal_amount, allow_zero=True)
    if allow_negative_balance is not None:
        policy.allow_negative_balance = bool(allow_negative_balance)
    if require_closing_count is not None:
        policy.require_closing_count = bool(require_closing_count)

    db.commit()
    db.refresh(policy)
    logger.info("Cash box settings updated for user %s", user_id)
    return policy


# Reads

def get_user_cash_box(db: Session, user_id: int) -> Optional[CashBox]:
    """The operator's open cash box, if any."""
    return (
        db.query(CashBox)
        .filter(CashBox.owner_user_id == user_id, CashBox.status == CashBoxStatus.open.value)
        .populate_existing()
        .first()
    )


def require_open_cash_box(db: Session, user_id: int) -> CashBox:
    """Guard for flows that must not run without an open till."""
    cash_box = get_user_cash_box(db, user_id)
    if not cash_box:
        raise NoOpenCashBox()
    return cash_box


def get_cash_box(db: Session, cash_box_id: Any) -> CashBox:
    account = ledger_service.get_account(db, cash_box_id)
    if not isinstance(account, CashBox):
        raise InvalidState("not_a_cash_box", account_id=account.id)
    return account


def list_user_cash_box_history(db: Session, user_id: int, limit: int = 50, offset: int = 0) -> List[CashBox]:
    ledger_service._check_page(limit, offset)
    return (
        db.query(CashBox)
        .filter(CashBox.owner_user_id == user_id)
        .order_by(CashBox.opened_at.desc(), CashBox.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def list_open_cash_boxes(db: Session) -> List[CashBox]:
    return (
        db.query(CashBox)
        .filter(CashBox.status == CashBoxStatus.open.value)
        .order_by(CashBox.opened_at.asc(), CashBox.id.asc())
        .all()
    )


def list_all_cash_box_history(
    db: Session,
    limit: int = 50,
    offset: int = 0,
    status: Optional[str] = None,
) -> List[CashBox]:
    ledger_service._check_page(limit, offset)
    query = db.query(CashBox)
    if status:
        try:
            query = query.filter(CashBox.status == CashBoxStatus(status).value)
        except ValueError:
            raise ValidationError(detail=f"unknown status {status}")
    return query.order_by(CashBox.opened_at.desc(), CashBox.id.desc()).offset(offset).limit(limit).all()


# Lifecycle

def open_cash_box(
    db: Session,
    user_id: int,
    opening_amount: Any = None,
    notes: Optional[str] = "",
) -> CashBox:
    """
    Open a new cash box for an operator.

    The box is created at balance 0 and the opening amount is posted as an
    `opening` row. Without an explicit amount the operator's
    default_opening_amount is used.

    Raises:
        AlreadyOpen: the operator already has an open cash box
        ValidationError: negative or non-numeric opening amount
    """
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound()

    policy = get_user_settings(db, user_id)
    if opening_amount is None:
        opening_amount = policy.default_opening_amount
    try:
        amount = ledger_service.parse_amount(opening_amount, allow_zero=True)
    except InvalidAmount:
        raise ValidationError("invalid_opening_amount")

    def _open() -> CashBox:
        if get_user_cash_box(db, user_id):
            raise AlreadyOpen()
        now = utcnow()
        cash_box = CashBox(
            name=f"Cash box - {user.name}",
            owner_user_id=user_id,
            status=CashBoxStatus.open.value,
            initial_amount=amount,
            current_amount=ledger_service.ZERO,
            opened_at=now,
            opened_by=user_id,
            created_by=user_id,
            notes=(notes or "").strip() or None,
        )
        db.add(cash_box)
        db.flush()
        if amount > 0:
            ledger_service.post_entry(
                db,
                cash_box,
                TransactionType.opening,
                amount,
                ReferenceType.opening,
                reference_id=cash_box.id,
                description="Cash box opening",
                notes=notes,
                acting_user_id=user_id,
            )
        return cash_box

    try:
        cash_box = ledger_service.atomic(db, [owner_key(user_id)], _open, raise_integrity=True)
    except IntegrityError:
        # Another worker opened one first; the partial unique index caught it
        raise AlreadyOpen()

    logger.info("Cash box %s opened for user %s with %s", cash_box.id, user_id, amount)
    return cash_box


def _close_locked(
    db: Session,
    cash_box: CashBox,
    closed_by: int,
    notes: Optional[str] = "",
    reason: Optional[str] = None,
    counted: Optional[Decimal] = None,
) -> CashBox:
    """
    Zero the balance of a locked, open cash box and mark it closed.

    A positive balance leaves through a `closing` row; a negative one is
    offset by a crediting `adjustment`. No commit.
    """
    if not cash_box.is_open:
        raise AlreadyClosed(account_id=cash_box.id)

    balance = ledger_service.to_money(cash_box.current_amount)
    if balance > 0:
        ledger_service.post_entry(
            db,
            cash_box,
            TransactionType.closing,
            balance,
            ReferenceType.closing,
            reference_id=cash_box.id,
            description="Cash box closing",
            notes=notes,
            acting_user_id=closed_by,
        )
    elif balance < 0:
        ledger_service.post_entry(
            db,
            cash_box,
            TransactionType.adjustment,
            -balance,
            ReferenceType.closing,
            reference_id=cash_box.id,
            description="Closing adjustment of negative balance",
            notes=notes,
            acting_user_id=closed_by,
            sign=CREDIT,
        )

    cash_box.status = CashBoxStatus.closed.value
    cash_box.closed_at = utcnow()
    cash_box.closed_by = closed_by
    cash_box.close_reason = reason
    if counted is not None:
        cash_box.closing_amount = counted
        cash_box.closing_variance = counted - balance
    db.flush()
    return cash_box


def close_cash_box(
    db: Session,
    user_id: int,
    closing_amount: Any = None,
    notes: Optional[str] = "",
) -> CashBox:
    """
    Close the operator's open cash box.

    `closing_amount` is the operator's physical count. It is stored with the
    variance against the system balance; the ledger row always uses the
    system balance.

    Raises:
        NoOpenCashBox, ValidationError (count required by policy), AlreadyClosed
    """
    policy = get_user_settings(db, user_id)
    counted = None
    if closing_amount is not None:
        try:
            counted = ledger_service.parse_amount(closing_amount, allow_zero=True)
        except InvalidAmount:
            raise ValidationError("closing_amount_required")
    elif policy.require_closing_count:
        raise ValidationError("closing_amount_required")

    cash_box = require_open_cash_box(db, user_id)

    def _close() -> CashBox:
        locked = ledger_service.load_account(db, cash_box.id, for_update=True)
        return _close_locked(db, locked, closed_by=user_id, notes=notes, counted=counted)

    closed = ledger_service.atomic(db, [account_key(cash_box.id)], _close)
    logger.info(
        "Cash box %s closed by user %s (count=%s, variance=%s)",
        closed.id, user_id, closed.closing_amount, closed.closing_variance,
    )
    return closed


def force_close_cash_box(
    db: Session,
    cash_box_id: Any,
    admin_user_id: int,
    reason: Optional[str],
    destination_account_id: Any = None,
) -> ForceCloseResult:
    """
    Administrative close of any operator's cash box.

    With a destination the full positive balance is transferred there first
    (redirect-then-close); without one the closing row stays on the cash box
    (close-in-place). Both variants are one unit of work: on any failure the
    box stays open with its balance unchanged.

    Raises:
        ReasonRequired, AccountNotFound, AlreadyClosed,
        DestinationAccountNotFound, SameAccount, AccountClosed
    """
    reason = (reason or "").strip()
    if not reason:
        raise ReasonRequired()

    cash_box = get_cash_box(db, cash_box_id)
    if not cash_box.is_open:
        raise AlreadyClosed(account_id=cash_box.id)

    destination_id = None
    if destination_account_id is not None:
        try:
            destination_id = int(destination_account_id)
        except (TypeError, ValueError):
            raise DestinationAccountNotFound(account_id=destination_account_id)
        if destination_id == cash_box.id:
            raise SameAccount()

    lock_keys = [account_key(cash_box.id)]
    if destination_id is not None:
        lock_keys.append(account_key(destination_id))

    def _force_close() -> ForceCloseResult:
        try:
            locked = ledger_service.lock_accounts(db, [key[1] for key in lock_keys])
        except AccountNotFound as exc:
            if destination_id is not None and exc.params.get("account_id") == destination_id:
                raise DestinationAccountNotFound(account_id=destination_id)
            raise
        box = locked[cash_box.id]
        if not box.is_open:
            raise AlreadyClosed(account_id=box.id)

        moved = None
        if destination_id is not None:
            destination = locked[destination_id]
            balance = ledger_service.to_money(box.current_amount)
            if balance > 0:
                moved = transfer_service.post_transfer_legs(
                    db,
                    box,
                    destination,
                    balance,
                    transfer_service.new_correlation_id(),
                    notes=reason,
                    acting_user_id=admin_user_id,
                    out_description=f"Force-close transfer to {destination.name}",
                    in_description=f"Force-close transfer from {box.name}",
                )
        _close_locked(db, box, closed_by=admin_user_id, notes=reason, reason=reason)
        return ForceCloseResult(cash_box=box, transfer=moved)

    result = ledger_service.atomic(db, lock_keys, _force_close)
    logger.info(
        "Cash box %s force-closed by admin %s (destination=%s, moved=%s): %s",
        result.cash_box.id,
        admin_user_id,
        destination_id,
        result.transfer.amount if result.transfer else ledger_service.ZERO,
        reason,
    )
    return result


# Operator transactions

def _owned_cash_box(db: Session, user_id: int, cash_box_id: Any = None) -> CashBox:
    if cash_box_id is None:
        return require_open_cash_box(db, user_id)
    cash_box = get_cash_box(db, cash_box_id)
    if cash_box.owner_user_id != user_id:
        raise InvalidState("not_cash_box_owner", account_id=cash_box.id)
    return cash_box


def manual_transaction(
    db: Session,
    user_id: int,
    cash_box_id: Any,
    transaction_type: Any,
    amount: Any,
    description: Optional[str] = None,
    notes: Optional[str] = "",
    sign: int = CREDIT,
) -> LedgerTransaction:
    """
    Operator deposit, withdrawal or adjustment on their own cash box.

    Withdrawals are capped by the operator's max_withdrawal_amount (0 = no cap).
    """
    tx_type = ledger_service.parse_transaction_type(transaction_type)
    if tx_type not in CASH_BOX_MANUAL_TYPES:
        raise ValidationError("manual_type_not_allowed", value=tx_type.value)
    magnitude = ledger_service.parse_amount(amount)
    cash_box = _owned_cash_box(db, user_id, cash_box_id)

    if tx_type == TransactionType.withdrawal:
        policy = get_user_settings(db, user_id)
        limit = ledger_service.to_money(policy.max_withdrawal_amount)
        if limit > 0 and magnitude > limit:
            raise ValidationError("max_withdrawal_exceeded", limit=limit)

    if not description:
        description = {
            TransactionType.deposit: "Cash deposit",
            TransactionType.withdrawal: "Cash withdrawal",
        }.get(tx_type, "Manual adjustment")

    return ledger_service.apply_transaction(
        db,
        cash_box.id,
        tx_type,
        magnitude,
        ReferenceType.manual,
        description=description,
        notes=notes,
        acting_user_id=user_id,
        sign=sign,
    )


def post_to_open_cash_box(
    db: Session,
    user_id: int,
    transaction_type: Any,
    amount: Any,
    reference_type: Any,
    reference_id: Optional[Any] = None,
    description: Optional[str] = "",
    notes: Optional[str] = "",
) -> LedgerTransaction:
    """Record a business event (sale, expense, ...) on the operator's open cash box."""
    cash_box = require_open_cash_box(db, user_id)
    return ledger_service.apply_transaction(
        db,
        cash_box.id,
        transaction_type,
        amount,
        reference_type,
        reference_id=reference_id,
        description=description,
        notes=notes,
        acting_user_id=user_id,
    )
