from typing import Optional, get_args

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import assignments
from authz import Actor
from dependencies import get_actor, get_db
from filter_helpers import blank_to_none, normalize_choice
from models import Assignment, AssignmentStatus, AssignmentIn, AssignmentUpdate, LossIn, ReturnIn
from retry import retry_on_conflict

router = APIRouter(prefix="/assignments", tags=["assignments"])

ASSIGNMENT_STATUSES = set(get_args(AssignmentStatus))


@router.get("", response_model=list[Assignment])
def list_assignments_api(
    base_id: Optional[str] = None,
    status: Optional[str] = None,
    personnel_id: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return assignments.list_assignments(
        db,
        actor,
        base_id=blank_to_none(base_id),
        status=normalize_choice(status, ASSIGNMENT_STATUSES),
        personnel_id=blank_to_none(personnel_id),
    )


@router.post("", response_model=Assignment, status_code=201)
def create_assignment_api(
    body: AssignmentIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: assignments.create_assignment(db, actor, body), db=db)


@router.get("/{assignment_id}", response_model=Assignment)
def get_assignment_api(
    assignment_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return assignments.get_assignment(db, actor, assignment_id)


@router.patch("/{assignment_id}", response_model=Assignment)
def update_assignment_api(
    assignment_id: str,
    body: AssignmentUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: assignments.update_assignment(db, actor, assignment_id, body), db=db)


@router.post("/{assignment_id}/return", response_model=Assignment)
def return_assignment_api(
    assignment_id: str,
    body: Optional[ReturnIn] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    body = body or ReturnIn()
    return retry_on_conflict(
        lambda: assignments.return_asset(db, actor, assignment_id, condition=body.condition, notes=body.notes),
        db=db,
    )


@router.post("/{assignment_id}/loss", response_model=Assignment)
def report_loss_api(
    assignment_id: str,
    body: LossIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(
        lambda: assignments.mark_lost_or_damaged(db, actor, assignment_id, body.status, notes=body.notes),
        db=db,
    )
