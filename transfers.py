"""
Transfer workflow: INITIATED -> IN_TRANSIT -> COMPLETED, CANCELLED from either open state.

Initiation reserves the quantity physically: the source lot is decremented
and the units are parked in an IN_TRANSIT holding lot at the source base.
Completion moves the held units into the destination base; cancellation
puts them back. The sum over all lots of the equipment type never changes.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

import authz
from authz import Actor, Resource
from catalog import require_base
from crud import (
    available_quantity,
    cas_update,
    cas_update_lot,
    create_lot,
    find_matching_lot,
    get_lot,
    get_record,
    new_id,
    record_movement,
    settle_lot,
    transaction,
    utcnow,
)
from errors import InsufficientQuantityError, InvalidStateTransitionError, ValidationError
from models import Transfer, TransferIn, TransferUpdate
from orm import TransferORM

logger = logging.getLogger("ledger.transfers")

OPEN_STATUSES = ("INITIATED", "IN_TRANSIT")


def _get(db: Session, transfer_id: str) -> TransferORM:
    return get_record(db, TransferORM, "transfer", transfer_id)


def _resource(t: TransferORM) -> Resource:
    return Resource(source_base_id=t.source_base_id, dest_base_id=t.dest_base_id)


def _require_status(t: TransferORM, allowed: tuple[str, ...], action: str) -> None:
    if t.status not in allowed:
        raise InvalidStateTransitionError("transfer", t.id, t.status, action)


def get_transfer(db: Session, actor: Actor, transfer_id: str) -> Transfer:
    t = _get(db, transfer_id)
    authz.require(actor, authz.READ, _resource(t))
    return Transfer.model_validate(t)


def list_transfers(
    db: Session,
    actor: Actor,
    *,
    status: Optional[str] = None,
    base_id: Optional[str] = None,
    direction: str = "all",
    equipment_type_id: Optional[str] = None,
) -> list[Transfer]:
    authz.require(actor, authz.READ)
    base_id = authz.base_scope(actor, base_id)

    stmt = select(TransferORM)
    if base_id is not None:
        if direction == "in":
            stmt = stmt.where(TransferORM.dest_base_id == base_id)
        elif direction == "out":
            stmt = stmt.where(TransferORM.source_base_id == base_id)
        else:
            stmt = stmt.where(or_(TransferORM.source_base_id == base_id, TransferORM.dest_base_id == base_id))
    if status:
        stmt = stmt.where(TransferORM.status == status)
    if equipment_type_id:
        stmt = stmt.where(TransferORM.equipment_type_id == equipment_type_id)
    stmt = stmt.order_by(TransferORM.transfer_date.desc())
    return [Transfer.model_validate(t) for t in db.execute(stmt).scalars().all()]


def initiate_transfer(db: Session, actor: Actor, body: TransferIn, *, commit: bool = True) -> Transfer:
    if body.source_base_id == body.dest_base_id:
        raise ValidationError("source and destination base must differ", field="dest_base_id")
    authz.require(
        actor,
        authz.TRANSFER_INITIATE,
        Resource(source_base_id=body.source_base_id, dest_base_id=body.dest_base_id),
    )
    require_base(db, body.source_base_id)
    require_base(db, body.dest_base_id)

    lot, version = get_lot(db, body.lot_id)
    if lot.base_id != body.source_base_id:
        raise ValidationError("lot does not belong to the source base", field="lot_id")
    available = available_quantity(lot)
    if body.quantity > available:
        raise InsufficientQuantityError(lot.id, body.quantity, available)

    transfer_id = new_id()
    now = utcnow()
    with transaction(db, commit=commit):
        cas_update_lot(db, lot.id, version, quantity=lot.quantity - body.quantity)
        holding = create_lot(
            db,
            equipment_type_id=lot.equipment_type_id,
            base_id=lot.base_id,
            quantity=body.quantity,
            status="IN_TRANSIT",
            condition=lot.condition,
            serial_number=f"TR-{transfer_id}",
        )
        record_movement(
            db,
            movement_type="TRANSFER_OUT",
            reference_kind="transfer",
            reference_id=transfer_id,
            lot=lot,
            quantity_change=-body.quantity,
            performed_by=actor.user_id,
        )
        t = TransferORM(
            id=transfer_id,
            source_base_id=body.source_base_id,
            dest_base_id=body.dest_base_id,
            equipment_type_id=lot.equipment_type_id,
            source_lot_id=lot.id,
            transit_lot_id=holding.id,
            dest_lot_id=None,
            quantity=body.quantity,
            status="INITIATED",
            transport_details=body.transport_details,
            notes=body.notes,
            initiated_by=actor.user_id,
            transfer_date=now,
            version=1,
            created_at=now,
            updated_at=now,
        )
        db.add(t)

    logger.info(
        "transfer_initiated id=%s lot=%s qty=%s from=%s to=%s",
        t.id, lot.id, t.quantity, t.source_base_id, t.dest_base_id,
    )
    return Transfer.model_validate(t)


def approve_transfer(db: Session, actor: Actor, transfer_id: str, *, commit: bool = True) -> Transfer:
    t = _get(db, transfer_id)
    authz.require(actor, authz.TRANSFER_APPROVE, _resource(t))
    _require_status(t, ("INITIATED",), "approve")

    with transaction(db, commit=commit):
        cas_update(db, TransferORM, "transfer", t.id, t.version, status="IN_TRANSIT", approved_by=actor.user_id)

    logger.info("transfer_approved id=%s by=%s", t.id, actor.user_id)
    return Transfer.model_validate(t)


def complete_transfer(db: Session, actor: Actor, transfer_id: str, *, commit: bool = True) -> Transfer:
    t = _get(db, transfer_id)
    authz.require(actor, authz.TRANSFER_COMPLETE, _resource(t))
    _require_status(t, ("IN_TRANSIT",), "complete")

    holding, holding_version = get_lot(db, t.transit_lot_id)
    source, _ = get_lot(db, t.source_lot_id)
    now = utcnow()

    with transaction(db, commit=commit):
        target = find_matching_lot(
            db,
            equipment_type_id=t.equipment_type_id,
            base_id=t.dest_base_id,
            condition=holding.condition,
        )
        if target is not None:
            cas_update_lot(db, target.id, target.version, quantity=target.quantity + holding.quantity)
            cas_update_lot(db, holding.id, holding_version, quantity=0, retired_at=now)
        else:
            # no compatible lot at the destination: the held units become one
            cas_update_lot(db, holding.id, holding_version, base_id=t.dest_base_id, status="AVAILABLE")
            target = holding

        record_movement(
            db,
            movement_type="TRANSFER_IN",
            reference_kind="transfer",
            reference_id=t.id,
            lot=target,
            quantity_change=t.quantity,
            performed_by=actor.user_id,
        )
        cas_update(
            db,
            TransferORM,
            "transfer",
            t.id,
            t.version,
            status="COMPLETED",
            completed_by=actor.user_id,
            completion_date=now,
            dest_lot_id=target.id,
        )
        settle_lot(db, source)

    logger.info("transfer_completed id=%s dest_lot=%s qty=%s", t.id, target.id, t.quantity)
    return Transfer.model_validate(t)


def cancel_transfer(
    db: Session, actor: Actor, transfer_id: str, reason: Optional[str] = None, *, commit: bool = True
) -> Transfer:
    t = _get(db, transfer_id)
    authz.require(actor, authz.TRANSFER_CANCEL, _resource(t))
    _require_status(t, OPEN_STATUSES, "cancel")

    holding, holding_version = get_lot(db, t.transit_lot_id)
    source, _ = get_lot(db, t.source_lot_id)
    now = utcnow()

    with transaction(db, commit=commit):
        # held units go back to the available pool, never into a lot someone holds
        if source.retired_at is None and source.status == "AVAILABLE":
            target = source
        else:
            target = find_matching_lot(
                db,
                equipment_type_id=t.equipment_type_id,
                base_id=t.source_base_id,
                condition=holding.condition,
                exclude_ids=(holding.id,),
            )

        if target is not None:
            cas_update_lot(db, target.id, target.version, quantity=target.quantity + holding.quantity)
            cas_update_lot(db, holding.id, holding_version, quantity=0, retired_at=now)
        else:
            cas_update_lot(db, holding.id, holding_version, status="AVAILABLE")
            target = holding

        record_movement(
            db,
            movement_type="TRANSFER_CANCEL",
            reference_kind="transfer",
            reference_id=t.id,
            lot=target,
            quantity_change=t.quantity,
            performed_by=actor.user_id,
        )
        cas_update(
            db,
            TransferORM,
            "transfer",
            t.id,
            t.version,
            status="CANCELLED",
            cancelled_by=actor.user_id,
            cancellation_reason=reason,
        )

    logger.info("transfer_cancelled id=%s qty=%s returned_to=%s", t.id, t.quantity, target.id)
    return Transfer.model_validate(t)


def update_transfer(
    db: Session, actor: Actor, transfer_id: str, body: TransferUpdate, *, commit: bool = True
) -> Transfer:
    t = _get(db, transfer_id)
    authz.require(actor, authz.TRANSFER_UPDATE, _resource(t))
    _require_status(t, OPEN_STATUSES, "update")

    changes = body.model_dump(exclude_unset=True)
    if not changes:
        return Transfer.model_validate(t)
    with transaction(db, commit=commit):
        cas_update(db, TransferORM, "transfer", t.id, t.version, **changes)
    return Transfer.model_validate(t)
