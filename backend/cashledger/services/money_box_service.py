"""
Money boxes: named, shared, always-open treasury pools.
"""
import logging
from typing import Any, List, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cashledger.core.config import settings
from cashledger.core.errors import (
    DuplicateName,
    InvalidState,
    NotFound,
    ValidationError,
)
from cashledger.core.ledger_types import MONEY_BOX_MANUAL_TYPES, ReferenceType, TransactionType
from cashledger.core.locks import account_key
from cashledger.models.account import MoneyBox
from cashledger.models.ledger_transaction import LedgerTransaction
from cashledger.services import ledger_service


logger = logging.getLogger(__name__)


def _normalize_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("name_required")
    return cleaned


def default_money_box_names() -> List[str]:
    return [settings.daily_money_box_name, settings.main_money_box_name]


def list_money_boxes(db: Session) -> List[MoneyBox]:
    return db.query(MoneyBox).order_by(MoneyBox.created_at.desc(), MoneyBox.id.desc()).all()


def get_money_box(db: Session, box_id: Any) -> MoneyBox:
    account = ledger_service.get_account(db, box_id)
    if not isinstance(account, MoneyBox):
        raise InvalidState("not_a_money_box", account_id=account.id)
    return account


def find_money_box_by_name(db: Session, name: str) -> Optional[MoneyBox]:
    return db.query(MoneyBox).filter(MoneyBox.name == (name or "").strip()).first()


def get_money_box_by_name(db: Session, name: str) -> MoneyBox:
    box = find_money_box_by_name(db, name)
    if not box:
        raise NotFound("money_box_not_found", name=name)
    return box


def resolve_money_box(db: Session, reference: Union[int, str]) -> MoneyBox:
    """
    Resolve a money box by id (int or digit string) or by name.

    Raises:
        NotFound / AccountNotFound when nothing matches
    """
    if isinstance(reference, int) or (isinstance(reference, str) and reference.strip().isdigit()):
        return get_money_box(db, int(reference))
    return get_money_box_by_name(db, reference)


def get_daily_money_box(db: Session) -> Optional[MoneyBox]:
    return find_money_box_by_name(db, settings.daily_money_box_name)


def get_main_money_box(db: Session) -> Optional[MoneyBox]:
    return find_money_box_by_name(db, settings.main_money_box_name)


def create_money_box(
    db: Session,
    name: str,
    initial_amount: Any = 0,
    notes: Optional[str] = "",
    created_by: Optional[int] = None,
) -> MoneyBox:
    """
    Create a money box at balance 0; a positive initial amount is posted as
    a deposit so the ledger explains the whole balance.
    """
    name = _normalize_name(name)
    initial = ledger_service.parse_amount(initial_amount, allow_zero=True)

    if find_money_box_by_name(db, name):
        raise DuplicateName(name=name)

    def _create() -> MoneyBox:
        box = MoneyBox(
            name=name,
            current_amount=ledger_service.ZERO,
            notes=(notes or "").strip() or None,
            created_by=created_by,
        )
        db.add(box)
        db.flush()
        if initial > 0:
            ledger_service.post_entry(
                db,
                box,
                TransactionType.deposit,
                initial,
                ReferenceType.manual,
                description="Initial deposit",
                acting_user_id=created_by,
            )
        return box

    try:
        box = ledger_service.atomic(db, [], _create, attempts=1, raise_integrity=True)
    except IntegrityError:
        raise DuplicateName(name=name)

    logger.info("Money box %s (%s) created with %s", box.id, box.name, initial)
    return box


def update_money_box(db: Session, box_id: Any, name: Optional[str] = None, notes: Optional[str] = None) -> MoneyBox:
    box = get_money_box(db, box_id)

    if name is not None:
        new_name = _normalize_name(name)
        if new_name != box.name:
            if box.name in default_money_box_names():
                raise InvalidState("default_money_box_protected", name=box.name)
            existing = find_money_box_by_name(db, new_name)
            if existing and existing.id != box.id:
                raise DuplicateName(name=new_name)
            box.name = new_name

    if notes is not None:
        box.notes = notes.strip() or None

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateName(name=name)
    return box


def delete_money_box(db: Session, box_id: Any) -> None:
    """Delete a money box that never received a transaction."""
    box = get_money_box(db, box_id)

    def _delete() -> None:
        locked = ledger_service.load_account(db, box.id, for_update=True)
        if locked.name in default_money_box_names():
            raise InvalidState("default_money_box_protected", name=locked.name)
        has_rows = db.query(LedgerTransaction.id).filter(
            (LedgerTransaction.account_id == locked.id)
            | (LedgerTransaction.counterparty_account_id == locked.id)
        ).first()
        if has_rows:
            raise InvalidState("money_box_has_transactions")
        db.delete(locked)

    ledger_service.atomic(db, [account_key(box.id)], _delete)
    logger.info("Money box %s deleted", box_id)


def money_box_transaction(
    db: Session,
    box_id: Any,
    transaction_type: Any,
    amount: Any,
    notes: Optional[str] = "",
    acting_user_id: Optional[int] = None,
    description: Optional[str] = None,
) -> LedgerTransaction:
    """Manual deposit or withdrawal on a money box."""
    tx_type = ledger_service.parse_transaction_type(transaction_type)
    if tx_type not in MONEY_BOX_MANUAL_TYPES:
        raise ValidationError("manual_type_not_allowed", value=tx_type.value)
    box = get_money_box(db, box_id)

    if not description:
        description = "Cash deposit" if tx_type == TransactionType.deposit else "Cash withdrawal"

    return ledger_service.apply_transaction(
        db,
        box.id,
        tx_type,
        amount,
        ReferenceType.manual,
        description=description,
        notes=notes,
        acting_user_id=acting_user_id,
    )


def ensure_default_money_boxes(db: Session) -> List[MoneyBox]:
    """Create the daily pool and the main treasury when missing."""
    created = []
    for name in default_money_box_names():
        if find_money_box_by_name(db, name):
            continue
        try:
            created.append(create_money_box(db, name, notes="System money box"))
        except DuplicateName:
            # Created concurrently by another worker
            continue
    return created
