from typing import Optional, get_args

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import transfers
from authz import Actor
from dependencies import get_actor, get_db
from filter_helpers import blank_to_none, normalize_choice, normalize_direction
from models import CancelIn, Transfer, TransferIn, TransferStatus, TransferUpdate
from retry import retry_on_conflict

router = APIRouter(prefix="/transfers", tags=["transfers"])

TRANSFER_STATUSES = set(get_args(TransferStatus))


@router.get("", response_model=list[Transfer])
def list_transfers_api(
    base_id: Optional[str] = None,
    direction: str = "all",
    status: Optional[str] = None,
    equipment_type_id: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return transfers.list_transfers(
        db,
        actor,
        status=normalize_choice(status, TRANSFER_STATUSES),
        base_id=blank_to_none(base_id),
        direction=normalize_direction(direction),
        equipment_type_id=blank_to_none(equipment_type_id),
    )


@router.post("", response_model=Transfer, status_code=201)
def initiate_transfer_api(
    body: TransferIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: transfers.initiate_transfer(db, actor, body), db=db)


@router.get("/{transfer_id}", response_model=Transfer)
def get_transfer_api(
    transfer_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return transfers.get_transfer(db, actor, transfer_id)


@router.patch("/{transfer_id}", response_model=Transfer)
def update_transfer_api(
    transfer_id: str,
    body: TransferUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: transfers.update_transfer(db, actor, transfer_id, body), db=db)


@router.post("/{transfer_id}/approve", response_model=Transfer)
def approve_transfer_api(
    transfer_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: transfers.approve_transfer(db, actor, transfer_id), db=db)


@router.post("/{transfer_id}/complete", response_model=Transfer)
def complete_transfer_api(
    transfer_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: transfers.complete_transfer(db, actor, transfer_id), db=db)


@router.post("/{transfer_id}/cancel", response_model=Transfer)
def cancel_transfer_api(
    transfer_id: str,
    body: Optional[CancelIn] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    reason = body.reason if body else None
    return retry_on_conflict(lambda: transfers.cancel_transfer(db, actor, transfer_id, reason), db=db)
