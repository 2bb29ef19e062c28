from datetime import date
from decimal import Decimal
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from cashledger.core.database import get_db
from cashledger.core.deps import get_current_user
from cashledger.core.errors import InvalidState, ValidationError
from cashledger.core.roles import ADMIN_ROLES
from cashledger.core.serialization_helpers import (
    serialize_account,
    serialize_settings,
    serialize_transaction,
    serialize_transfer,
    success_response,
)
from cashledger.models.account import CashBox
from cashledger.models.user import User
from cashledger.services import cash_box_service, ledger_service, report_service, transfer_service

router = APIRouter()


class OpenCashBoxRequest(BaseModel):
    opening_amount: Optional[Decimal] = None
    notes: Optional[str] = None


class CloseCashBoxRequest(BaseModel):
    closing_amount: Optional[Decimal] = None
    notes: Optional[str] = None


class SettingsUpdate(BaseModel):
    default_opening_amount: Optional[Decimal] = None
    allow_negative_balance: Optional[bool] = None
    max_withdrawal_amount: Optional[Decimal] = None
    require_closing_count: Optional[bool] = None


class BusinessTransactionRequest(BaseModel):
    transaction_type: str
    amount: Decimal
    reference_type: str
    reference_id: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None


class ManualTransactionRequest(BaseModel):
    cash_box_id: Optional[int] = None
    transaction_type: str
    amount: Decimal
    description: Optional[str] = None
    notes: Optional[str] = None
    sign: int = 1  # only for adjustments


class DailyTransferRequest(BaseModel):
    amount: Decimal
    notes: Optional[str] = None


class MoneyBoxTransferRequest(BaseModel):
    amount: Decimal
    target_type: str = "daily_money_box"  # "daily_money_box" or "custom_money_box"
    money_box: Optional[Union[int, str]] = None  # id or name, for custom_money_box
    notes: Optional[str] = None


def _is_admin(user: User) -> bool:
    return user.role in {r.value for r in ADMIN_ROLES}


def _visible_cash_box(db: Session, user: User, cash_box_id: int) -> CashBox:
    """Operators only see their own cash boxes; admins see all of them."""
    cash_box = cash_box_service.get_cash_box(db, cash_box_id)
    if cash_box.owner_user_id != user.id and not _is_admin(user):
        raise InvalidState("not_cash_box_owner", account_id=cash_box.id)
    return cash_box


@router.get("/my-cash-box")
def get_my_cash_box(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    cash_box = cash_box_service.get_user_cash_box(db, user.id)
    return success_response(serialize_account(cash_box) if cash_box else None)


@router.get("/my-settings")
def get_my_settings(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return success_response(serialize_settings(cash_box_service.get_user_settings(db, user.id)))


@router.put("/settings")
def update_my_settings(
    data: SettingsUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    policy = cash_box_service.update_user_settings(db, user.id, **data.model_dump())
    return success_response(serialize_settings(policy), "settings_updated")


@router.get("/my-summary")
def get_my_summary(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return success_response(report_service.cash_box_summary(db, user.id))


@router.get("/my-history")
def get_my_history(
    limit: int = Query(50),
    offset: int = Query(0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    boxes = cash_box_service.list_user_cash_box_history(db, user.id, limit=limit, offset=offset)
    return success_response([serialize_account(box) for box in boxes])


@router.post("/open")
def open_cash_box(
    data: OpenCashBoxRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    cash_box = cash_box_service.open_cash_box(db, user.id, opening_amount=data.opening_amount, notes=data.notes)
    return success_response(serialize_account(cash_box), "cash_box_opened")


@router.post("/close")
def close_cash_box(
    data: CloseCashBoxRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    cash_box = cash_box_service.close_cash_box(db, user.id, closing_amount=data.closing_amount, notes=data.notes)
    return success_response(serialize_account(cash_box), "cash_box_closed")


@router.post("/transaction")
def add_business_transaction(
    data: BusinessTransactionRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Record a sale, purchase, expense, receipt or payment on the caller's open cash box."""
    entry = cash_box_service.post_to_open_cash_box(
        db,
        user.id,
        data.transaction_type,
        data.amount,
        data.reference_type,
        reference_id=data.reference_id,
        description=data.description,
        notes=data.notes,
    )
    return success_response(serialize_transaction(entry), "transaction_added")


@router.post("/manual-transaction")
def add_manual_transaction(
    data: ManualTransactionRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    entry = cash_box_service.manual_transaction(
        db,
        user.id,
        data.cash_box_id,
        data.transaction_type,
        data.amount,
        description=data.description,
        notes=data.notes,
        sign=data.sign,
    )
    return success_response(serialize_transaction(entry), "transaction_added")


@router.get("/transactions/{cash_box_id}")
def list_cash_box_transactions(
    cash_box_id: int,
    limit: int = Query(50),
    offset: int = Query(0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    cash_box = _visible_cash_box(db, user, cash_box_id)
    entries = ledger_service.list_transactions(db, cash_box.id, limit=limit, offset=offset)
    return success_response({
        "transactions": [serialize_transaction(entry) for entry in entries],
        "total": ledger_service.count_transactions(db, cash_box.id),
        "limit": limit,
        "offset": offset,
    })


@router.get("/report/{cash_box_id}")
def get_cash_box_report(
    cash_box_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    cash_box = _visible_cash_box(db, user, cash_box_id)
    return success_response(report_service.cash_box_report(db, cash_box.id, start_date, end_date))


@router.get("/with-money-box-summary")
def get_cash_box_with_daily_pool(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return success_response(report_service.cash_box_with_daily_pool_summary(db, user.id))


@router.post("/transfer-to-daily-money-box")
def transfer_to_daily_money_box(
    data: DailyTransferRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    cash_box = cash_box_service.require_open_cash_box(db, user.id)
    result = transfer_service.transfer_to_daily_pool(
        db, cash_box.id, data.amount, notes=data.notes, acting_user_id=user.id
    )
    return success_response(serialize_transfer(result), "transfer_to_daily_done")


@router.post("/transfer-from-daily-money-box")
def transfer_from_daily_money_box(
    data: DailyTransferRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    cash_box = cash_box_service.require_open_cash_box(db, user.id)
    result = transfer_service.transfer_from_daily_pool(
        db, cash_box.id, data.amount, notes=data.notes, acting_user_id=user.id
    )
    return success_response(serialize_transfer(result), "transfer_from_daily_done")


@router.post("/transfer-to-money-box")
def transfer_to_money_box(
    data: MoneyBoxTransferRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    cash_box = cash_box_service.require_open_cash_box(db, user.id)

    if data.target_type == "daily_money_box":
        result = transfer_service.transfer_to_daily_pool(
            db, cash_box.id, data.amount, notes=data.notes, acting_user_id=user.id
        )
        return success_response(serialize_transfer(result), "transfer_to_daily_done")

    if data.target_type == "custom_money_box":
        if data.money_box is None or str(data.money_box).strip() == "":
            raise ValidationError(detail="money_box is required for custom_money_box")
        result = transfer_service.transfer_to_custom_pool(
            db, cash_box.id, data.money_box, data.amount, notes=data.notes, acting_user_id=user.id
        )
        destination = ledger_service.get_account(db, result.destination.account_id)
        return success_response(serialize_transfer(result), "transfer_to_box_done", name=destination.name)

    raise ValidationError(detail=f"unknown target_type {data.target_type}")


@router.get("/comprehensive-report")
def get_comprehensive_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return success_response(report_service.comprehensive_report(db, user.id, start_date, end_date))
