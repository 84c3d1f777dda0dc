from typing import Optional, get_args

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import expenditures
from authz import Actor
from dependencies import get_actor, get_db
from filter_helpers import blank_to_none, normalize_choice
from models import (
    CancelIn,
    Expenditure,
    ExpenditureIn,
    ExpenditureReason,
    ExpenditureStatus,
    ExpenditureUpdate,
)
from retry import retry_on_conflict

router = APIRouter(prefix="/expenditures", tags=["expenditures"])

EXPENDITURE_STATUSES = set(get_args(ExpenditureStatus))
EXPENDITURE_REASONS = set(get_args(ExpenditureReason))


@router.get("", response_model=list[Expenditure])
def list_expenditures_api(
    base_id: Optional[str] = None,
    status: Optional[str] = None,
    reason: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return expenditures.list_expenditures(
        db,
        actor,
        base_id=blank_to_none(base_id),
        status=normalize_choice(status, EXPENDITURE_STATUSES),
        reason=normalize_choice(reason, EXPENDITURE_REASONS),
    )


@router.post("", response_model=Expenditure, status_code=201)
def create_expenditure_api(
    body: ExpenditureIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: expenditures.create_expenditure(db, actor, body), db=db)


@router.get("/{expenditure_id}", response_model=Expenditure)
def get_expenditure_api(
    expenditure_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return expenditures.get_expenditure(db, actor, expenditure_id)


@router.patch("/{expenditure_id}", response_model=Expenditure)
def update_expenditure_api(
    expenditure_id: str,
    body: ExpenditureUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: expenditures.update_expenditure(db, actor, expenditure_id, body), db=db)


@router.post("/{expenditure_id}/approve", response_model=Expenditure)
def approve_expenditure_api(
    expenditure_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: expenditures.approve_expenditure(db, actor, expenditure_id), db=db)


@router.post("/{expenditure_id}/complete", response_model=Expenditure)
def complete_expenditure_api(
    expenditure_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: expenditures.complete_expenditure(db, actor, expenditure_id), db=db)


@router.post("/{expenditure_id}/cancel", response_model=Expenditure)
def cancel_expenditure_api(
    expenditure_id: str,
    body: Optional[CancelIn] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    reason = body.reason if body else None
    return retry_on_conflict(lambda: expenditures.cancel_expenditure(db, actor, expenditure_id, reason), db=db)
