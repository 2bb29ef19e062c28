"""
Read-only summaries and reports over the cash ledger.

Every aggregate below is computed by a single SQL statement, so each one
observes a single snapshot of the ledger, and balances shown in reports are
recomputed from the ledger rows in that same statement rather than read from
`current_amount`.
"""
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, TypedDict, Union

from sqlalchemy import and_, case, false, func, select, true
from sqlalchemy.orm import Session

from cashledger.core.errors import ValidationError
from cashledger.core.ledger_types import CREDIT, DEBIT, AccountKind
from cashledger.models.account import Account, CashBox
from cashledger.models.base import utcnow
from cashledger.models.ledger_transaction import LedgerTransaction
from cashledger.services import cash_box_service, ledger_service, money_box_service

DateLike = Union[date, datetime, None]

DEFAULT_REPORT_ROWS = 100


class PeriodTotals(TypedDict):
    """Aggregates of one account over a period."""
    opening_balance: Decimal
    total_credits: Decimal
    total_debits: Decimal
    net_change: Decimal
    closing_balance: Decimal
    transaction_count: int


class CashBoxSummary(TypedDict):
    """Dashboard widget for the operator's open cash box."""
    has_open_cash_box: bool
    cash_box_id: Optional[int]
    name: Optional[str]
    current_balance: Decimal
    opened_at: Optional[datetime]
    today_transaction_count: int
    today_credits: Decimal
    today_debits: Decimal
    today_net: Decimal


class MoneyBoxSummary(TypedDict):
    id: int
    name: str
    current_balance: Decimal
    total_credits: Decimal
    total_debits: Decimal
    transaction_count: int
    last_transaction_at: Optional[datetime]


# Period helpers

def _period_bounds(start: DateLike, end: DateLike) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Turn report dates into datetime bounds. A plain date covers the whole
    day: start at 00:00, end at the start of the following day (exclusive).
    """
    if isinstance(start, date) and not isinstance(start, datetime):
        start = datetime.combine(start, time.min)
    if isinstance(end, date) and not isinstance(end, datetime):
        end = datetime.combine(end + timedelta(days=1), time.min)
    if start and end and start >= end:
        raise ValidationError(detail="start date must be before end date")
    return start, end


def _in_period(start: Optional[datetime], end: Optional[datetime]):
    conditions = []
    if start:
        conditions.append(LedgerTransaction.created_at >= start)
    if end:
        conditions.append(LedgerTransaction.created_at < end)
    return and_(*conditions) if conditions else true()


def _sum_when(condition, value):
    return func.coalesce(func.sum(case((condition, value), else_=0)), 0)


def _period_columns(start: Optional[datetime], end: Optional[datetime]) -> list:
    in_period = _in_period(start, end)
    signed = LedgerTransaction.direction * LedgerTransaction.amount
    before = LedgerTransaction.created_at < start if start else false()
    up_to_end = LedgerTransaction.created_at < end if end else true()
    return [
        _sum_when(before, signed),
        _sum_when(and_(in_period, LedgerTransaction.direction == CREDIT), LedgerTransaction.amount),
        _sum_when(and_(in_period, LedgerTransaction.direction == DEBIT), LedgerTransaction.amount),
        _sum_when(in_period, 1),
        _sum_when(up_to_end, signed),
    ]


def _period_totals(db: Session, account_id: int, start: Optional[datetime], end: Optional[datetime]) -> PeriodTotals:
    row = db.execute(
        select(*_period_columns(start, end)).where(LedgerTransaction.account_id == account_id)
    ).one()
    credits = ledger_service.to_money(row[1])
    debits = ledger_service.to_money(row[2])
    return {
        "opening_balance": ledger_service.to_money(row[0]),
        "total_credits": credits,
        "total_debits": debits,
        "net_change": credits - debits,
        "closing_balance": ledger_service.to_money(row[4]),
        "transaction_count": int(row[3] or 0),
    }


def _rows_in_period(
    db: Session,
    account_ids: List[int],
    start: Optional[datetime],
    end: Optional[datetime],
    limit: int,
    offset: int = 0,
) -> List[LedgerTransaction]:
    return (
        db.query(LedgerTransaction)
        .filter(LedgerTransaction.account_id.in_(account_ids), _in_period(start, end))
        .order_by(LedgerTransaction.created_at.desc(), LedgerTransaction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


# Reports

def cash_box_report(
    db: Session,
    cash_box_id: Any,
    start: DateLike = None,
    end: DateLike = None,
    limit: int = DEFAULT_REPORT_ROWS,
) -> Dict[str, Any]:
    """
    Totals and rows of one cash box over a period (whole life when no dates).

    Returns:
        cash_box, totals (PeriodTotals) and the period's transactions, newest first
    """
    ledger_service._check_page(limit, 0)
    cash_box = cash_box_service.get_cash_box(db, cash_box_id)
    start_at, end_at = _period_bounds(start, end)
    return {
        "cash_box": cash_box,
        "period": {"start": start_at, "end": end_at},
        "totals": _period_totals(db, cash_box.id, start_at, end_at),
        "transactions": _rows_in_period(db, [cash_box.id], start_at, end_at, limit),
    }


def cash_box_summary(db: Session, user_id: int) -> CashBoxSummary:
    """Today's activity on the operator's open cash box."""
    cash_box = cash_box_service.get_user_cash_box(db, user_id)
    if not cash_box:
        return {
            "has_open_cash_box": False,
            "cash_box_id": None,
            "name": None,
            "current_balance": ledger_service.ZERO,
            "opened_at": None,
            "today_transaction_count": 0,
            "today_credits": ledger_service.ZERO,
            "today_debits": ledger_service.ZERO,
            "today_net": ledger_service.ZERO,
        }

    today_start, _ = _period_bounds(utcnow().date(), None)
    totals = _period_totals(db, cash_box.id, today_start, None)
    return {
        "has_open_cash_box": True,
        "cash_box_id": cash_box.id,
        "name": cash_box.name,
        "current_balance": totals["closing_balance"],
        "opened_at": cash_box.opened_at,
        "today_transaction_count": totals["transaction_count"],
        "today_credits": totals["total_credits"],
        "today_debits": totals["total_debits"],
        "today_net": totals["net_change"],
    }


def _money_box_rows(db: Session, box_id: Optional[int] = None) -> List[MoneyBoxSummary]:
    signed = LedgerTransaction.direction * LedgerTransaction.amount
    query = (
        select(
            Account.id,
            Account.name,
            func.coalesce(func.sum(signed), 0),
            _sum_when(LedgerTransaction.direction == CREDIT, LedgerTransaction.amount),
            _sum_when(LedgerTransaction.direction == DEBIT, LedgerTransaction.amount),
            func.count(LedgerTransaction.id),
            func.max(LedgerTransaction.created_at),
        )
        .select_from(Account)
        .outerjoin(LedgerTransaction, LedgerTransaction.account_id == Account.id)
        .where(Account.kind == AccountKind.money_box.value)
        .group_by(Account.id, Account.name)
        .order_by(Account.id)
    )
    if box_id is not None:
        query = query.where(Account.id == box_id)

    return [
        {
            "id": row[0],
            "name": row[1],
            "current_balance": ledger_service.to_money(row[2]),
            "total_credits": ledger_service.to_money(row[3]),
            "total_debits": ledger_service.to_money(row[4]),
            "transaction_count": int(row[5] or 0),
            "last_transaction_at": row[6],
        }
        for row in db.execute(query).all()
    ]


def money_box_summary(db: Session, box_id: Any) -> MoneyBoxSummary:
    box = money_box_service.get_money_box(db, box_id)
    return _money_box_rows(db, box.id)[0]


def all_money_boxes_summary(db: Session) -> Dict[str, Any]:
    boxes = _money_box_rows(db)
    return {
        "money_boxes": boxes,
        "count": len(boxes),
        "total_balance": sum((box["current_balance"] for box in boxes), ledger_service.ZERO),
    }


def transactions_by_date_range(
    db: Session,
    account_id: Any,
    start_date: DateLike,
    end_date: DateLike,
    limit: int = DEFAULT_REPORT_ROWS,
    offset: int = 0,
) -> Dict[str, Any]:
    account = ledger_service.get_account(db, account_id)
    ledger_service._check_page(limit, offset)
    start_at, end_at = _period_bounds(start_date, end_date)
    totals = _period_totals(db, account.id, start_at, end_at)
    return {
        "account_id": account.id,
        "period": {"start": start_at, "end": end_at},
        "total": totals["transaction_count"],
        "totals": totals,
        "transactions": _rows_in_period(db, [account.id], start_at, end_at, limit, offset),
    }


def cash_box_with_daily_pool_summary(db: Session, user_id: int) -> Dict[str, Any]:
    """Operator's cash box balance next to the daily money box, one snapshot."""
    cash_box = cash_box_service.require_open_cash_box(db, user_id)
    daily = money_box_service.get_daily_money_box(db)

    def _ledger_balance(account_id):
        return (
            select(func.coalesce(func.sum(LedgerTransaction.direction * LedgerTransaction.amount), 0))
            .where(LedgerTransaction.account_id == account_id)
            .scalar_subquery()
        )

    columns = [_ledger_balance(cash_box.id)]
    if daily:
        columns.append(_ledger_balance(daily.id))
    row = db.execute(select(*columns)).one()

    cash_balance = ledger_service.to_money(row[0])
    daily_balance = ledger_service.to_money(row[1]) if daily else ledger_service.ZERO
    return {
        "cash_box": {"id": cash_box.id, "name": cash_box.name, "balance": cash_balance},
        "daily_money_box": (
            {"id": daily.id, "name": daily.name, "balance": daily_balance} if daily else None
        ),
        "combined_balance": cash_balance + daily_balance,
    }


def comprehensive_report(
    db: Session,
    user_id: int,
    start: DateLike = None,
    end: DateLike = None,
) -> Dict[str, Any]:
    """
    Everything an operator's cash boxes did over a period, broken down by
    transaction type, plus the current money box positions.
    """
    start_at, end_at = _period_bounds(start, end)
    cash_box_ids = [
        row[0] for row in db.query(CashBox.id).filter(CashBox.owner_user_id == user_id).all()
    ]

    by_type: Dict[str, Dict[str, Any]] = {}
    if cash_box_ids:
        rows = db.execute(
            select(
                LedgerTransaction.transaction_type,
                func.count(LedgerTransaction.id),
                _sum_when(LedgerTransaction.direction == CREDIT, LedgerTransaction.amount),
                _sum_when(LedgerTransaction.direction == DEBIT, LedgerTransaction.amount),
            )
            .where(LedgerTransaction.account_id.in_(cash_box_ids), _in_period(start_at, end_at))
            .group_by(LedgerTransaction.transaction_type)
            .order_by(LedgerTransaction.transaction_type)
        ).all()
        by_type = {
            row[0]: {
                "count": int(row[1] or 0),
                "credits": ledger_service.to_money(row[2]),
                "debits": ledger_service.to_money(row[3]),
            }
            for row in rows
        }

    total_credits = sum((v["credits"] for v in by_type.values()), ledger_service.ZERO)
    total_debits = sum((v["debits"] for v in by_type.values()), ledger_service.ZERO)

    return {
        "period": {"start": start_at, "end": end_at},
        "cash_box_count": len(cash_box_ids),
        "current_cash_box": cash_box_summary(db, user_id),
        "by_transaction_type": by_type,
        "total_credits": total_credits,
        "total_debits": total_debits,
        "net_change": total_credits - total_debits,
        "money_boxes": all_money_boxes_summary(db),
    }
