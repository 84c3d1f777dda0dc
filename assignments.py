"""
Assignment workflow: a whole lot is issued to one person.

ACTIVE ends in RETURNED, LOST or DAMAGED. LOST and DAMAGED write the lot
off permanently. EXPENDED is only ever set by the expenditure workflow when
it consumes the rest of an assigned lot.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

import authz
from authz import Actor, Resource
from crud import (
    as_utc,
    available_quantity,
    cas_update,
    cas_update_lot,
    get_lot,
    get_record,
    new_id,
    record_movement,
    transaction,
    utcnow,
)
from errors import (
    InsufficientQuantityError,
    InvalidStateTransitionError,
    ValidationError,
)
from models import Assignment, AssignmentIn, AssignmentUpdate
from orm import AssignmentORM

logger = logging.getLogger("ledger.assignments")

# lot status / condition after a write-off
WRITE_OFF = {
    "LOST": ("EXPENDED", "UNSERVICEABLE"),
    "DAMAGED": ("MAINTENANCE", "POOR"),
}


def _get(db: Session, assignment_id: str) -> AssignmentORM:
    return get_record(db, AssignmentORM, "assignment", assignment_id)


def _require_active(a: AssignmentORM, action: str) -> None:
    if a.status != "ACTIVE":
        raise InvalidStateTransitionError("assignment", a.id, a.status, action)


def _check_return_date(expected: Optional[datetime], after: datetime) -> None:
    if expected is not None and as_utc(expected) <= as_utc(after):
        raise ValidationError("expected return date must be after assignment date", field="expected_return_date")


def active_assignment_for(db: Session, lot_id: str) -> Optional[AssignmentORM]:
    stmt = (
        select(AssignmentORM)
        .where(AssignmentORM.lot_id == lot_id, AssignmentORM.status == "ACTIVE")
        .order_by(AssignmentORM.assignment_date.desc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def get_assignment(db: Session, actor: Actor, assignment_id: str) -> Assignment:
    a = _get(db, assignment_id)
    authz.require(actor, authz.READ, Resource(base_id=a.base_id))
    return Assignment.model_validate(a)


def list_assignments(
    db: Session,
    actor: Actor,
    *,
    base_id: Optional[str] = None,
    status: Optional[str] = None,
    personnel_id: Optional[str] = None,
) -> list[Assignment]:
    authz.require(actor, authz.READ)
    base_id = authz.base_scope(actor, base_id)

    stmt = select(AssignmentORM)
    if base_id is not None:
        stmt = stmt.where(AssignmentORM.base_id == base_id)
    if status:
        stmt = stmt.where(AssignmentORM.status == status)
    if personnel_id:
        stmt = stmt.where(AssignmentORM.personnel_id == personnel_id)
    stmt = stmt.order_by(AssignmentORM.assignment_date.desc())
    return [Assignment.model_validate(a) for a in db.execute(stmt).scalars().all()]


def create_assignment(db: Session, actor: Actor, body: AssignmentIn, *, commit: bool = True) -> Assignment:
    lot, version = get_lot(db, body.lot_id)
    authz.require(actor, authz.ASSIGNMENT_CREATE, Resource(base_id=lot.base_id))

    if lot.retired_at is not None or lot.status != "AVAILABLE":
        raise InvalidStateTransitionError("asset_lot", lot.id, lot.status, "assign")
    # the whole lot is issued, so no unit of it may be held by an expenditure
    available = available_quantity(lot)
    if available <= 0 or available < lot.quantity:
        raise InsufficientQuantityError(lot.id, lot.quantity, available)
    if active_assignment_for(db, lot.id) is not None:
        raise InvalidStateTransitionError("asset_lot", lot.id, "ASSIGNED", "assign")

    now = utcnow()
    _check_return_date(body.expected_return_date, now)

    a = AssignmentORM(
        id=new_id(),
        lot_id=lot.id,
        base_id=lot.base_id,
        quantity=lot.quantity,
        personnel_id=body.personnel_id,
        personnel_name=body.personnel_name,
        personnel_rank=body.personnel_rank,
        personnel_unit=body.personnel_unit,
        assignment_date=now,
        expected_return_date=body.expected_return_date,
        actual_return_date=None,
        status="ACTIVE",
        purpose=body.purpose,
        notes=body.notes,
        assigned_by=actor.user_id,
        version=1,
        created_at=now,
        updated_at=now,
    )
    with transaction(db, commit=commit):
        cas_update_lot(db, lot.id, version, status="ASSIGNED")
        db.add(a)
        record_movement(
            db,
            movement_type="ASSIGNMENT",
            reference_kind="assignment",
            reference_id=a.id,
            lot=lot,
            quantity_change=0,
            performed_by=actor.user_id,
        )

    logger.info("assignment_created id=%s lot=%s personnel=%s qty=%s", a.id, lot.id, a.personnel_id, a.quantity)
    return Assignment.model_validate(a)


def return_asset(
    db: Session,
    actor: Actor,
    assignment_id: str,
    condition: Optional[str] = None,
    notes: Optional[str] = None,
    *,
    commit: bool = True,
) -> Assignment:
    a = _get(db, assignment_id)
    authz.require(actor, authz.ASSIGNMENT_RETURN, Resource(base_id=a.base_id))
    _require_active(a, "return")

    lot, version = get_lot(db, a.lot_id)
    lot_changes: dict = {"status": "AVAILABLE"}
    if condition:
        lot_changes["condition"] = condition

    with transaction(db, commit=commit):
        cas_update_lot(db, lot.id, version, **lot_changes)
        cas_update(
            db,
            AssignmentORM,
            "assignment",
            a.id,
            a.version,
            status="RETURNED",
            actual_return_date=utcnow(),
            return_condition=condition,
            notes=notes or a.notes,
        )
        record_movement(
            db,
            movement_type="RETURN",
            reference_kind="assignment",
            reference_id=a.id,
            lot=lot,
            quantity_change=0,
            performed_by=actor.user_id,
        )

    logger.info("assignment_returned id=%s lot=%s condition=%s", a.id, lot.id, condition)
    return Assignment.model_validate(a)


def mark_lost_or_damaged(
    db: Session,
    actor: Actor,
    assignment_id: str,
    status: str,
    notes: Optional[str] = None,
    *,
    commit: bool = True,
) -> Assignment:
    if status not in WRITE_OFF:
        raise ValidationError("status must be either LOST or DAMAGED", field="status")

    a = _get(db, assignment_id)
    authz.require(actor, authz.ASSIGNMENT_LOSS, Resource(base_id=a.base_id))
    _require_active(a, status.lower())

    lot, version = get_lot(db, a.lot_id)
    lot_status, lot_condition = WRITE_OFF[status]
    written_off = lot.quantity
    now = utcnow()

    with transaction(db, commit=commit):
        cas_update_lot(
            db,
            lot.id,
            version,
            quantity=0,
            reserved=0,
            status=lot_status,
            condition=lot_condition,
            retired_at=now,
        )
        cas_update(
            db,
            AssignmentORM,
            "assignment",
            a.id,
            a.version,
            status=status,
            actual_return_date=now,
            notes=notes or a.notes,
        )
        record_movement(
            db,
            movement_type="LOSS",
            reference_kind="assignment",
            reference_id=a.id,
            lot=lot,
            quantity_change=-written_off,
            performed_by=actor.user_id,
        )

    logger.info(
        "assignment_written_off id=%s lot=%s status=%s qty=%s",
        a.id, lot.id, status, written_off,
    )
    return Assignment.model_validate(a)


def update_assignment(
    db: Session, actor: Actor, assignment_id: str, body: AssignmentUpdate, *, commit: bool = True
) -> Assignment:
    a = _get(db, assignment_id)
    authz.require(actor, authz.ASSIGNMENT_UPDATE, Resource(base_id=a.base_id))
    _require_active(a, "update")

    changes = body.model_dump(exclude_unset=True)
    if "expected_return_date" in changes:
        _check_return_date(changes["expected_return_date"], a.assignment_date)
    if not changes:
        return Assignment.model_validate(a)

    with transaction(db, commit=commit):
        cas_update(db, AssignmentORM, "assignment", a.id, a.version, **changes)
    return Assignment.model_validate(a)
