from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from cashledger.core.database import get_db
from cashledger.core.deps import require_admin
from cashledger.core.serialization_helpers import (
    serialize_account,
    serialize_transfer,
    success_response,
)
from cashledger.models.user import User
from cashledger.services import cash_box_service, ledger_service

router = APIRouter()


class ForceCloseRequest(BaseModel):
    reason: str
    destination_account_id: Optional[int] = None


@router.get("/cash-boxes/open")
def list_open_cash_boxes(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return success_response([serialize_account(box) for box in cash_box_service.list_open_cash_boxes(db)])


@router.get("/cash-boxes/history")
def list_cash_box_history(
    limit: int = Query(50),
    offset: int = Query(0),
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    boxes = cash_box_service.list_all_cash_box_history(db, limit=limit, offset=offset, status=status)
    return success_response([serialize_account(box) for box in boxes])


@router.get("/cash-boxes/{cash_box_id}")
def get_cash_box(cash_box_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return success_response(serialize_account(cash_box_service.get_cash_box(db, cash_box_id)))


@router.post("/cash-boxes/{cash_box_id}/force-close")
def force_close_cash_box(
    cash_box_id: int,
    data: ForceCloseRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Close another operator's cash box, optionally moving its balance to another box first."""
    result = cash_box_service.force_close_cash_box(
        db,
        cash_box_id,
        admin.id,
        data.reason,
        destination_account_id=data.destination_account_id,
    )
    return success_response(
        {
            "cash_box": serialize_account(result.cash_box),
            "transfer": serialize_transfer(result.transfer) if result.transfer else None,
        },
        "cash_box_force_closed",
    )


@router.get("/accounts/{account_id}/reconcile")
def reconcile_account(account_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return success_response(ledger_service.reconcile_account(db, account_id))
