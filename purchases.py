"""
Purchase processor.

A purchase is recorded as ORDERED with no effect on the ledger. Delivery is
the only step that creates stock: it adds the purchased quantity to a
matching NEW lot at the destination base, or opens a new lot. Cancellation
has no ledger effect.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

import authz
from authz import Actor, Resource
from catalog import require_base, require_equipment_type
from crud import (
    cas_update,
    cas_update_lot,
    create_lot,
    find_matching_lot,
    get_record,
    new_id,
    record_movement,
    transaction,
    utcnow,
)
from errors import InvalidStateTransitionError, ValidationError
from models import Purchase, PurchaseIn, PurchaseUpdate
from orm import PurchaseORM

logger = logging.getLogger("ledger.purchases")

CENT = Decimal("0.01")
DELIVERED_CONDITION = "NEW"


def compute_total(quantity: int, unit_price: Decimal) -> Decimal:
    return (Decimal(quantity) * Decimal(unit_price)).quantize(CENT, rounding=ROUND_HALF_UP)


def _get(db: Session, purchase_id: str) -> PurchaseORM:
    return get_record(db, PurchaseORM, "purchase", purchase_id)


def _require_ordered(p: PurchaseORM, action: str) -> None:
    if p.status != "ORDERED":
        raise InvalidStateTransitionError("purchase", p.id, p.status, action)


def get_purchase(db: Session, actor: Actor, purchase_id: str) -> Purchase:
    p = _get(db, purchase_id)
    authz.require(actor, authz.READ, Resource(base_id=p.base_id))
    return Purchase.model_validate(p)


def list_purchases(
    db: Session,
    actor: Actor,
    *,
    base_id: Optional[str] = None,
    status: Optional[str] = None,
    equipment_type_id: Optional[str] = None,
) -> list[Purchase]:
    authz.require(actor, authz.READ)
    base_id = authz.base_scope(actor, base_id)

    stmt = select(PurchaseORM)
    if base_id is not None:
        stmt = stmt.where(PurchaseORM.base_id == base_id)
    if status:
        stmt = stmt.where(PurchaseORM.status == status)
    if equipment_type_id:
        stmt = stmt.where(PurchaseORM.equipment_type_id == equipment_type_id)
    stmt = stmt.order_by(PurchaseORM.purchase_date.desc())
    return [Purchase.model_validate(p) for p in db.execute(stmt).scalars().all()]


def create_purchase(db: Session, actor: Actor, body: PurchaseIn, *, commit: bool = True) -> Purchase:
    base_id = authz.effective_base(actor, body.base_id)
    if not base_id:
        raise ValidationError("base_id is required", field="base_id")
    authz.require(actor, authz.PURCHASE_CREATE, Resource(base_id=base_id))

    require_base(db, base_id)
    require_equipment_type(db, body.equipment_type_id)

    now = utcnow()
    p = PurchaseORM(
        id=new_id(),
        base_id=base_id,
        equipment_type_id=body.equipment_type_id,
        quantity=body.quantity,
        unit_price=body.unit_price,
        total_amount=compute_total(body.quantity, body.unit_price),
        supplier_name=body.supplier_name,
        supplier_contact=body.supplier_contact,
        supplier_address=body.supplier_address,
        purchase_date=body.purchase_date or now,
        delivery_date=body.delivery_date,
        status="ORDERED",
        lot_id=None,
        created_by=actor.user_id,
        notes=body.notes,
        version=1,
        created_at=now,
        updated_at=now,
    )
    with transaction(db, commit=commit):
        db.add(p)

    logger.info("purchase_created id=%s base=%s qty=%s total=%s", p.id, base_id, p.quantity, p.total_amount)
    return Purchase.model_validate(p)


def update_purchase(
    db: Session, actor: Actor, purchase_id: str, body: PurchaseUpdate, *, commit: bool = True
) -> Purchase:
    p = _get(db, purchase_id)
    authz.require(actor, authz.PURCHASE_UPDATE, Resource(base_id=p.base_id))
    _require_ordered(p, "update")

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    quantity = changes.get("quantity", p.quantity)
    unit_price = changes.get("unit_price", p.unit_price)
    changes["total_amount"] = compute_total(quantity, unit_price)

    with transaction(db, commit=commit):
        cas_update(db, PurchaseORM, "purchase", p.id, p.version, **changes)

    return Purchase.model_validate(p)


def mark_delivered(db: Session, actor: Actor, purchase_id: str, *, commit: bool = True) -> Purchase:
    p = _get(db, purchase_id)
    authz.require(actor, authz.PURCHASE_DELIVER, Resource(base_id=p.base_id))
    _require_ordered(p, "deliver")

    now = utcnow()
    with transaction(db, commit=commit):
        lot = find_matching_lot(
            db,
            equipment_type_id=p.equipment_type_id,
            base_id=p.base_id,
            condition=DELIVERED_CONDITION,
        )
        if lot is not None:
            cas_update_lot(db, lot.id, lot.version, quantity=lot.quantity + p.quantity)
        else:
            lot = create_lot(
                db,
                equipment_type_id=p.equipment_type_id,
                base_id=p.base_id,
                quantity=p.quantity,
                condition=DELIVERED_CONDITION,
                purchase_id=p.id,
            )

        record_movement(
            db,
            movement_type="PURCHASE",
            reference_kind="purchase",
            reference_id=p.id,
            lot=lot,
            quantity_change=p.quantity,
            performed_by=actor.user_id,
        )
        cas_update(
            db,
            PurchaseORM,
            "purchase",
            p.id,
            p.version,
            status="DELIVERED",
            lot_id=lot.id,
            delivery_date=p.delivery_date or now,
        )

    logger.info("purchase_delivered id=%s lot=%s qty=%s", p.id, lot.id, p.quantity)
    return Purchase.model_validate(p)


def cancel_purchase(db: Session, actor: Actor, purchase_id: str, *, commit: bool = True) -> Purchase:
    p = _get(db, purchase_id)
    authz.require(actor, authz.PURCHASE_CANCEL, Resource(base_id=p.base_id))
    _require_ordered(p, "cancel")

    with transaction(db, commit=commit):
        cas_update(db, PurchaseORM, "purchase", p.id, p.version, status="CANCELLED")

    logger.info("purchase_cancelled id=%s", p.id)
    return Purchase.model_validate(p)
