"""
Expenditure workflow: PENDING -> APPROVED -> COMPLETED, CANCELLED from either open state.

Creating an expenditure places a logical hold (``reserved``) on the lot;
the on-hand quantity only drops on completion. Cancelling releases the hold.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

import authz
from assignments import active_assignment_for
from authz import Actor, Resource
from crud import (
    available_quantity,
    cas_update,
    cas_update_lot,
    get_lot,
    get_record,
    new_id,
    record_movement,
    settle_lot,
    transaction,
    utcnow,
)
from errors import InsufficientQuantityError, InvalidStateTransitionError
from models import Expenditure, ExpenditureIn, ExpenditureUpdate
from orm import AssignmentORM, ExpenditureORM

logger = logging.getLogger("ledger.expenditures")

OPEN_STATUSES = ("PENDING", "APPROVED")


def _get(db: Session, expenditure_id: str) -> ExpenditureORM:
    return get_record(db, ExpenditureORM, "expenditure", expenditure_id)


def _require_status(e: ExpenditureORM, allowed: tuple[str, ...], action: str) -> None:
    if e.status not in allowed:
        raise InvalidStateTransitionError("expenditure", e.id, e.status, action)


def get_expenditure(db: Session, actor: Actor, expenditure_id: str) -> Expenditure:
    e = _get(db, expenditure_id)
    authz.require(actor, authz.READ, Resource(base_id=e.base_id))
    return Expenditure.model_validate(e)


def list_expenditures(
    db: Session,
    actor: Actor,
    *,
    base_id: Optional[str] = None,
    status: Optional[str] = None,
    reason: Optional[str] = None,
) -> list[Expenditure]:
    authz.require(actor, authz.READ)
    base_id = authz.base_scope(actor, base_id)

    stmt = select(ExpenditureORM)
    if base_id is not None:
        stmt = stmt.where(ExpenditureORM.base_id == base_id)
    if status:
        stmt = stmt.where(ExpenditureORM.status == status)
    if reason:
        stmt = stmt.where(ExpenditureORM.reason == reason)
    stmt = stmt.order_by(ExpenditureORM.expenditure_date.desc())
    return [Expenditure.model_validate(e) for e in db.execute(stmt).scalars().all()]


def create_expenditure(db: Session, actor: Actor, body: ExpenditureIn, *, commit: bool = True) -> Expenditure:
    lot, version = get_lot(db, body.lot_id)
    authz.require(actor, authz.EXPENDITURE_CREATE, Resource(base_id=lot.base_id))

    available = available_quantity(lot)
    if body.quantity > available:
        raise InsufficientQuantityError(lot.id, body.quantity, available)

    now = utcnow()
    e = ExpenditureORM(
        id=new_id(),
        lot_id=lot.id,
        base_id=lot.base_id,
        equipment_type_id=lot.equipment_type_id,
        quantity=body.quantity,
        reason=body.reason,
        status="PENDING",
        expenditure_date=body.expenditure_date or now,
        authorized_by=actor.user_id,
        operation_name=body.operation_name,
        operation_id=body.operation_id,
        notes=body.notes,
        version=1,
        created_at=now,
        updated_at=now,
    )
    with transaction(db, commit=commit):
        cas_update_lot(db, lot.id, version, reserved=lot.reserved + body.quantity)
        db.add(e)

    logger.info("expenditure_created id=%s lot=%s qty=%s reason=%s", e.id, lot.id, e.quantity, e.reason)
    return Expenditure.model_validate(e)


def approve_expenditure(db: Session, actor: Actor, expenditure_id: str, *, commit: bool = True) -> Expenditure:
    e = _get(db, expenditure_id)
    authz.require(actor, authz.EXPENDITURE_APPROVE, Resource(base_id=e.base_id))
    _require_status(e, ("PENDING",), "approve")

    with transaction(db, commit=commit):
        cas_update(
            db,
            ExpenditureORM,
            "expenditure",
            e.id,
            e.version,
            status="APPROVED",
            approved_by=actor.user_id,
            approved_date=utcnow(),
        )

    logger.info("expenditure_approved id=%s by=%s", e.id, actor.user_id)
    return Expenditure.model_validate(e)


def complete_expenditure(db: Session, actor: Actor, expenditure_id: str, *, commit: bool = True) -> Expenditure:
    e = _get(db, expenditure_id)
    authz.require(actor, authz.EXPENDITURE_COMPLETE, Resource(base_id=e.base_id))
    _require_status(e, ("APPROVED",), "complete")

    lot, version = get_lot(db, e.lot_id)
    if lot.quantity < e.quantity or lot.reserved < e.quantity:
        raise InsufficientQuantityError(lot.id, e.quantity, min(lot.quantity, lot.reserved))

    now = utcnow()
    with transaction(db, commit=commit):
        cas_update_lot(
            db,
            lot.id,
            version,
            quantity=lot.quantity - e.quantity,
            reserved=lot.reserved - e.quantity,
        )
        record_movement(
            db,
            movement_type="EXPENDITURE",
            reference_kind="expenditure",
            reference_id=e.id,
            lot=lot,
            quantity_change=-e.quantity,
            performed_by=actor.user_id,
        )
        cas_update(
            db,
            ExpenditureORM,
            "expenditure",
            e.id,
            e.version,
            status="COMPLETED",
            completed_by=actor.user_id,
            completed_date=now,
        )

        if lot.quantity == 0:
            holder = active_assignment_for(db, lot.id) if lot.status == "ASSIGNED" else None
            if holder is not None:
                cas_update(
                    db,
                    AssignmentORM,
                    "assignment",
                    holder.id,
                    holder.version,
                    status="EXPENDED",
                    actual_return_date=now,
                    notes=f"asset expended - expenditure {e.id}",
                )
            settle_lot(db, lot, status="EXPENDED", condition="UNSERVICEABLE")

    logger.info("expenditure_completed id=%s lot=%s qty=%s remaining=%s", e.id, lot.id, e.quantity, lot.quantity)
    return Expenditure.model_validate(e)


def cancel_expenditure(
    db: Session, actor: Actor, expenditure_id: str, reason: Optional[str] = None, *, commit: bool = True
) -> Expenditure:
    e = _get(db, expenditure_id)
    authz.require(actor, authz.EXPENDITURE_CANCEL, Resource(base_id=e.base_id))
    _require_status(e, OPEN_STATUSES, "cancel")

    lot, version = get_lot(db, e.lot_id)
    notes = e.notes
    if reason:
        notes = f"{e.notes or ''}\nCancellation reason: {reason}".strip()

    with transaction(db, commit=commit):
        cas_update_lot(db, lot.id, version, reserved=max(0, lot.reserved - e.quantity))
        cas_update(
            db,
            ExpenditureORM,
            "expenditure",
            e.id,
            e.version,
            status="CANCELLED",
            cancellation_reason=reason,
            notes=notes,
        )

    logger.info("expenditure_cancelled id=%s reason=%s", e.id, reason)
    return Expenditure.model_validate(e)


def update_expenditure(
    db: Session, actor: Actor, expenditure_id: str, body: ExpenditureUpdate, *, commit: bool = True
) -> Expenditure:
    e = _get(db, expenditure_id)
    authz.require(actor, authz.EXPENDITURE_UPDATE, Resource(base_id=e.base_id))
    _require_status(e, OPEN_STATUSES, "update")

    changes = body.model_dump(exclude_unset=True)
    if not changes:
        return Expenditure.model_validate(e)
    with transaction(db, commit=commit):
        cas_update(db, ExpenditureORM, "expenditure", e.id, e.version, **changes)
    return Expenditure.model_validate(e)
