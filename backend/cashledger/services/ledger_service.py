"""
Ledger engine: the only code path allowed to change an account balance.

Every balance change is one new LedgerTransaction row plus the matching update
of `Account.current_amount`, written in the same database transaction. Other
services compose several entries through `post_entry` inside `atomic`, which
owns locking, commit, rollback and retry of conflicting writes.
"""
import logging
import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from cashledger.core.config import settings
from cashledger.core.errors import (
    AccountClosed,
    AccountNotFound,
    InsufficientBalance,
    Internal,
    InvalidAmount,
    LedgerError,
    TransactionConflict,
    UnknownReferenceType,
    UnknownTransactionType,
    ValidationError,
)
from cashledger.core.ledger_types import CREDIT, DEBIT, ReferenceType, TransactionType, fixed_direction
from cashledger.core.locks import LockKey, account_key, ledger_locks
from cashledger.models.account import Account, CashBox
from cashledger.models.cash_box_settings import UserCashBoxSettings
from cashledger.models.ledger_transaction import LedgerTransaction


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Numeric(12, 2) columns
MAX_AMOUNT = Decimal("1e10")
MAX_PAGE_SIZE = 500

# PostgreSQL serialization_failure, deadlock_detected, lock_not_available
RETRYABLE_PGCODES = {"40001", "40P01", "55P03"}

T = TypeVar("T")


# Input normalization

def to_money(value: Any) -> Decimal:
    """Quantize a stored or computed value to cents."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value: Any, allow_zero: bool = False) -> Decimal:
    """
    Validate a monetary input and return it as a Decimal rounded to cents.

    Raises:
        InvalidAmount: if the value is missing, not numeric, not finite,
            negative, zero (unless allow_zero), or too large for a balance column
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmount()
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidAmount()
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            raise InvalidAmount()
        amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount()
    if amount >= MAX_AMOUNT or amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidAmount()
    return amount


def parse_transaction_type(value: Any) -> TransactionType:
    if isinstance(value, TransactionType):
        return value
    try:
        return TransactionType(value)
    except ValueError:
        raise UnknownTransactionType(value=value)


def parse_reference_type(value: Any) -> ReferenceType:
    if isinstance(value, ReferenceType):
        return value
    try:
        return ReferenceType(value)
    except ValueError:
        raise UnknownReferenceType(value=value)


def resolve_direction(transaction_type: TransactionType, sign: int = CREDIT) -> int:
    """Adjustments take the caller's sign; every other type has a fixed one."""
    direction = fixed_direction(transaction_type)
    if direction is None:
        if sign not in (CREDIT, DEBIT):
            raise ValidationError("invalid_sign")
        return sign
    if sign != CREDIT:
        raise ValidationError("invalid_sign")
    return direction


def _coerce_account_id(account_id: Any) -> int:
    try:
        return int(account_id)
    except (TypeError, ValueError):
        raise AccountNotFound(account_id=account_id)


# Unit of work

def _is_conflict(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        if getattr(exc.orig, "pgcode", None) in RETRYABLE_PGCODES:
            return True
        message = str(exc.orig).lower()
        return "database is locked" in message or "deadlock" in message
    return False


def atomic(
    db: Session,
    lock_keys: Iterable[LockKey],
    operation: Callable[[], T],
    attempts: Optional[int] = None,
    raise_integrity: bool = False,
) -> T:
    """
    Run `operation` as one all-or-nothing unit and commit it.

    The lock keys are held (in sorted order) until the commit finishes. Any
    error rolls the whole unit back. Concurrent-write conflicts are retried
    up to `attempts` times (default settings.ledger_max_retries); the
    operation must therefore re-read everything it needs on each call.
    Constraint violations surface as Internal unless raise_integrity is set,
    in which case the caller maps the IntegrityError itself.

    Raises:
        TransactionConflict: conflicts persisted after the last attempt
        Internal: any other persistence failure
        LedgerError: whatever the operation raised, untouched
    """
    max_attempts = max(1, attempts or settings.ledger_max_retries)
    keys = list(lock_keys)
    for attempt in range(1, max_attempts + 1):
        try:
            with ledger_locks.hold(keys):
                result = operation()
                db.commit()
            return result
        except LedgerError:
            db.rollback()
            raise
        except IntegrityError as exc:
            db.rollback()
            if raise_integrity:
                raise
            logger.exception("Ledger constraint violation")
            raise Internal() from exc
        except SQLAlchemyError as exc:
            db.rollback()
            if not _is_conflict(exc):
                logger.exception("Ledger persistence failure")
                raise Internal() from exc
            if attempt < max_attempts:
                logger.warning("Ledger write conflict on %s, retrying (%s/%s)", keys, attempt, max_attempts)
                continue
            logger.warning("Ledger write conflict on %s, giving up after %s attempts", keys, attempt)
            raise TransactionConflict(details={"attempts": attempt}) from exc
        except Exception:
            db.rollback()
            raise
    raise TransactionConflict(details={"attempts": max_attempts})


# Account access

def load_account(db: Session, account_id: Any, for_update: bool = False) -> Account:
    """
    Fetch an account with fresh column values.

    With for_update the row is locked until the surrounding transaction ends
    (no-op on SQLite, where the in-process locks and the version column apply).
    """
    account_id = _coerce_account_id(account_id)
    query = db.query(Account).filter(Account.id == account_id).populate_existing()
    if for_update:
        query = query.with_for_update()
    account = query.first()
    if not account:
        raise AccountNotFound(account_id=account_id)
    return account


def lock_accounts(db: Session, account_ids: Iterable[int]) -> Dict[int, Account]:
    """Lock several account rows in ascending id order."""
    accounts = {}
    for account_id in sorted(set(account_ids)):
        accounts[account_id] = load_account(db, account_id, for_update=True)
    return accounts


def allows_negative_balance(db: Session, account: Account) -> bool:
    if isinstance(account, CashBox):
        policy = db.query(UserCashBoxSettings).filter(
            UserCashBoxSettings.user_id == account.owner_user_id
        ).first()
        return bool(policy and policy.allow_negative_balance)
    return settings.money_box_allow_negative


# Mutation primitive

def post_entry(
    db: Session,
    account: Account,
    transaction_type: Any,
    amount: Any,
    reference_type: Any,
    reference_id: Optional[Any] = None,
    description: Optional[str] = "",
    notes: Optional[str] = "",
    acting_user_id: Optional[int] = None,
    sign: int = CREDIT,
    counterparty_account_id: Optional[int] = None,
) -> LedgerTransaction:
    """
    Append one ledger row to a locked account and move its balance.

    Does not commit: the caller runs this inside `atomic` and holds the
    account's lock.
    """
    tx_type = parse_transaction_type(transaction_type)
    ref_type = parse_reference_type(reference_type)
    magnitude = parse_amount(amount)
    direction = resolve_direction(tx_type, sign)

    if isinstance(account, CashBox) and not account.is_open:
        raise AccountClosed(account_id=account.id)

    balance_before = to_money(account.current_amount)
    balance_after = balance_before + direction * magnitude

    if direction == DEBIT and balance_after < 0 and not allows_negative_balance(db, account):
        logger.info(
            "Rejected %s of %s on account %s: balance %s",
            tx_type.value, magnitude, account.id, balance_before,
        )
        raise InsufficientBalance(
            available=balance_before,
            required=magnitude,
            details={
                "account_id": account.id,
                "account_name": account.name,
                "available_balance": float(balance_before),
                "required_amount": float(magnitude),
            },
        )

    entry = LedgerTransaction(
        account_id=account.id,
        transaction_type=tx_type.value,
        direction=direction,
        amount=magnitude,
        balance_before=balance_before,
        balance_after=balance_after,
        reference_type=ref_type.value,
        reference_id=str(reference_id) if reference_id is not None else None,
        counterparty_account_id=counterparty_account_id,
        description=description or None,
        notes=notes or None,
        created_by=acting_user_id,
    )
    account.current_amount = balance_after
    db.add(entry)
    db.flush()

    logger.debug(
        "Posted %s %s on account %s: %s -> %s",
        tx_type.value, magnitude, account.id, balance_before, balance_after,
    )
    return entry


def apply_transaction(
    db: Session,
    account_id: Any,
    transaction_type: Any,
    amount: Any,
    reference_type: Any,
    reference_id: Optional[Any] = None,
    description: Optional[str] = "",
    notes: Optional[str] = "",
    acting_user_id: Optional[int] = None,
    sign: int = CREDIT,
) -> LedgerTransaction:
    """
    Record a balance-affecting event against one account and commit it.

    Entry point for sales, purchases, expenses, receipts, returns and debt or
    installment payments, which pass their own record id as reference_id.

    Args:
        db: Database session
        account_id: Cash box or money box id
        transaction_type: One of TransactionType
        amount: Positive magnitude; the sign comes from the type
        reference_type: One of ReferenceType
        reference_id: Originating business record (optional)
        description: Short text shown in listings
        notes: Free text
        acting_user_id: User performing the operation
        sign: +1 or -1, only for `adjustment`

    Returns:
        The created LedgerTransaction with balance_before/balance_after

    Raises:
        AccountNotFound, AccountClosed, InvalidAmount, UnknownTransactionType,
        UnknownReferenceType, InsufficientBalance, TransactionConflict
    """
    tx_type = parse_transaction_type(transaction_type)
    ref_type = parse_reference_type(reference_type)
    magnitude = parse_amount(amount)
    resolve_direction(tx_type, sign)
    target_id = _coerce_account_id(account_id)

    def _apply() -> LedgerTransaction:
        account = load_account(db, target_id, for_update=True)
        return post_entry(
            db,
            account,
            tx_type,
            magnitude,
            ref_type,
            reference_id=reference_id,
            description=description,
            notes=notes,
            acting_user_id=acting_user_id,
            sign=sign,
        )

    entry = atomic(db, [account_key(target_id)], _apply)
    logger.info(
        "Transaction %s: %s %s on account %s (%s -> %s)",
        entry.id, tx_type.value, magnitude, target_id, entry.balance_before, entry.balance_after,
    )
    return entry


# Reads

def get_account(db: Session, account_id: Any) -> Account:
    return load_account(db, account_id)


def get_balance(db: Session, account_id: Any) -> Decimal:
    """Committed balance of an account."""
    account_id = _coerce_account_id(account_id)
    row = db.query(Account.current_amount).filter(Account.id == account_id).first()
    if row is None:
        raise AccountNotFound(account_id=account_id)
    return to_money(row[0])


def _check_page(limit: int, offset: int) -> None:
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(detail=f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if offset < 0:
        raise ValidationError(detail="offset must not be negative")


def list_transactions(
    db: Session,
    account_id: Any,
    limit: int = 50,
    offset: int = 0,
    newest_first: bool = True,
) -> List[LedgerTransaction]:
    account_id = _coerce_account_id(account_id)
    _check_page(limit, offset)
    if not db.query(Account.id).filter(Account.id == account_id).first():
        raise AccountNotFound(account_id=account_id)

    order = LedgerTransaction.id.desc() if newest_first else LedgerTransaction.id.asc()
    return (
        db.query(LedgerTransaction)
        .filter(LedgerTransaction.account_id == account_id)
        .order_by(order)
        .offset(offset)
        .limit(limit)
        .all()
    )


def count_transactions(db: Session, account_id: Any) -> int:
    account_id = _coerce_account_id(account_id)
    return db.query(func.count(LedgerTransaction.id)).filter(
        LedgerTransaction.account_id == account_id
    ).scalar() or 0


def _signed_sum():
    return func.coalesce(func.sum(LedgerTransaction.direction * LedgerTransaction.amount), 0)


def compute_ledger_balance(db: Session, account_id: Any) -> Decimal:
    """Balance recomputed from the ledger rows alone."""
    account_id = _coerce_account_id(account_id)
    total = db.query(_signed_sum()).filter(LedgerTransaction.account_id == account_id).scalar()
    return to_money(total)


def reconcile_account(db: Session, account_id: Any) -> Dict[str, Any]:
    """
    Compare the stored balance with the ledger sum in a single statement.

    Returns:
        account_id, stored_balance, ledger_balance, drift, transaction_count,
        consistent
    """
    account_id = _coerce_account_id(account_id)
    ledger_sum = (
        select(_signed_sum())
        .where(LedgerTransaction.account_id == Account.id)
        .scalar_subquery()
    )
    ledger_count = (
        select(func.count(LedgerTransaction.id))
        .where(LedgerTransaction.account_id == Account.id)
        .scalar_subquery()
    )
    row = db.execute(
        select(Account.current_amount, ledger_sum, ledger_count).where(Account.id == account_id)
    ).first()
    if row is None:
        raise AccountNotFound(account_id=account_id)

    stored = to_money(row[0])
    computed = to_money(row[1])
    return {
        "account_id": account_id,
        "stored_balance": stored,
        "ledger_balance": computed,
        "drift": stored - computed,
        "transaction_count": int(row[2] or 0),
        "consistent": stored == computed,
    }
