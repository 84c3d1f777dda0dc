from typing import Optional, get_args

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import purchases
from authz import Actor
from dependencies import get_actor, get_db
from filter_helpers import blank_to_none, normalize_choice
from models import Purchase, PurchaseIn, PurchaseStatus, PurchaseUpdate
from retry import retry_on_conflict

router = APIRouter(prefix="/purchases", tags=["purchases"])

PURCHASE_STATUSES = set(get_args(PurchaseStatus))


@router.get("", response_model=list[Purchase])
def list_purchases_api(
    base_id: Optional[str] = None,
    status: Optional[str] = None,
    equipment_type_id: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return purchases.list_purchases(
        db,
        actor,
        base_id=blank_to_none(base_id),
        status=normalize_choice(status, PURCHASE_STATUSES),
        equipment_type_id=blank_to_none(equipment_type_id),
    )


@router.post("", response_model=Purchase, status_code=201)
def create_purchase_api(
    body: PurchaseIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: purchases.create_purchase(db, actor, body), db=db)


@router.get("/{purchase_id}", response_model=Purchase)
def get_purchase_api(
    purchase_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return purchases.get_purchase(db, actor, purchase_id)


@router.patch("/{purchase_id}", response_model=Purchase)
def update_purchase_api(
    purchase_id: str,
    body: PurchaseUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: purchases.update_purchase(db, actor, purchase_id, body), db=db)


@router.post("/{purchase_id}/deliver", response_model=Purchase)
def deliver_purchase_api(
    purchase_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: purchases.mark_delivered(db, actor, purchase_id), db=db)


@router.post("/{purchase_id}/cancel", response_model=Purchase)
def cancel_purchase_api(
    purchase_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: purchases.cancel_purchase(db, actor, purchase_id), db=db)
