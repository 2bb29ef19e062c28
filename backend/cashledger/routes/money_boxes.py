from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from cashledger.core.database import get_db
from cashledger.core.deps import get_current_user, require_admin
from cashledger.core.serialization_helpers import (
    serialize_account,
    serialize_transaction,
    serialize_transfer,
    success_response,
)
from cashledger.models.user import User
from cashledger.services import ledger_service, money_box_service, report_service, transfer_service

router = APIRouter()


class MoneyBoxCreate(BaseModel):
    name: str
    initial_amount: Decimal = Decimal("0")
    notes: Optional[str] = None


class MoneyBoxUpdate(BaseModel):
    name: Optional[str] = None
    notes: Optional[str] = None


class MoneyBoxTransactionRequest(BaseModel):
    transaction_type: str  # "deposit" or "withdrawal"
    amount: Decimal
    description: Optional[str] = None
    notes: Optional[str] = None


class MoneyBoxTransferRequest(BaseModel):
    from_box_id: int
    to_box_id: int
    amount: Decimal
    notes: Optional[str] = None


@router.get("")
def list_money_boxes(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return success_response([serialize_account(box) for box in money_box_service.list_money_boxes(db)])


@router.get("/summary/all")
def get_all_money_boxes_summary(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return success_response(report_service.all_money_boxes_summary(db))


@router.get("/by-name/{name}")
def get_money_box_by_name(name: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return success_response(serialize_account(money_box_service.get_money_box_by_name(db, name)))


@router.post("/transfer")
def transfer_between_money_boxes(
    data: MoneyBoxTransferRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = transfer_service.transfer_between_money_boxes(
        db, data.from_box_id, data.to_box_id, data.amount, notes=data.notes, acting_user_id=user.id
    )
    return success_response(serialize_transfer(result), "transfer_done")


@router.post("")
def create_money_box(
    data: MoneyBoxCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    box = money_box_service.create_money_box(
        db, data.name, initial_amount=data.initial_amount, notes=data.notes, created_by=user.id
    )
    return success_response(serialize_account(box), "money_box_created")


@router.get("/{box_id}")
def get_money_box(box_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return success_response(serialize_account(money_box_service.get_money_box(db, box_id)))


@router.put("/{box_id}")
def update_money_box(
    box_id: int,
    data: MoneyBoxUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    box = money_box_service.update_money_box(db, box_id, name=data.name, notes=data.notes)
    return success_response(serialize_account(box), "money_box_updated")


@router.delete("/{box_id}")
def delete_money_box(box_id: int, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    money_box_service.delete_money_box(db, box_id)
    return success_response(None, "money_box_deleted")


@router.post("/{box_id}/transactions")
def add_money_box_transaction(
    box_id: int,
    data: MoneyBoxTransactionRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    entry = money_box_service.money_box_transaction(
        db,
        box_id,
        data.transaction_type,
        data.amount,
        notes=data.notes,
        acting_user_id=user.id,
        description=data.description,
    )
    return success_response(serialize_transaction(entry), "transaction_added")


@router.get("/{box_id}/transactions")
def list_money_box_transactions(
    box_id: int,
    limit: int = Query(50),
    offset: int = Query(0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    box = money_box_service.get_money_box(db, box_id)
    entries = ledger_service.list_transactions(db, box.id, limit=limit, offset=offset)
    return success_response({
        "transactions": [serialize_transaction(entry) for entry in entries],
        "total": ledger_service.count_transactions(db, box.id),
        "limit": limit,
        "offset": offset,
    })


@router.get("/{box_id}/transactions/by-date")
def list_money_box_transactions_by_date(
    box_id: int,
    start_date: date,
    end_date: date,
    limit: int = Query(100),
    offset: int = Query(0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    box = money_box_service.get_money_box(db, box_id)
    return success_response(
        report_service.transactions_by_date_range(db, box.id, start_date, end_date, limit=limit, offset=offset)
    )


@router.get("/{box_id}/summary")
def get_money_box_summary(box_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return success_response(report_service.money_box_summary(db, box_id))


@router.get("/{box_id}/reconcile")
def reconcile_money_box(box_id: int, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    box = money_box_service.get_money_box(db, box_id)
    return success_response(ledger_service.reconcile_account(db, box.id))
