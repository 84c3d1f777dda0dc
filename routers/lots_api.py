from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import authz
import crud
from authz import Actor, Resource
from dependencies import get_actor, get_db
from errors import InvalidReferenceError
from filter_helpers import (
    blank_to_none,
    normalize_limit,
    normalize_offset,
    normalize_order,
    normalize_sort,
    normalize_status,
    resolve_base_id,
    resolve_equipment_type_id,
)
from models import AssetLot, LotAvailability, LotsMeta

router = APIRouter(tags=["lots"])


def _filters(db: Session, actor: Actor, base: Optional[str], equipment: Optional[str], status: Optional[str]) -> dict:
    authz.require(actor, authz.READ)
    base, equipment = blank_to_none(base), blank_to_none(equipment)
    base_id = resolve_base_id(db, base)
    if base and base_id is None:
        raise InvalidReferenceError("base", base)
    equipment_type_id = resolve_equipment_type_id(db, equipment)
    if equipment and equipment_type_id is None:
        raise InvalidReferenceError("equipment_type", equipment)
    return {
        "base_id": authz.base_scope(actor, base_id),
        "equipment_type_id": equipment_type_id,
        "status": normalize_status(status),
    }


@router.get("/lots", response_model=list[AssetLot])
def list_lots_api(
    base: Optional[str] = None,
    equipment: Optional[str] = None,
    status: Optional[str] = None,
    include_retired: bool = False,
    sort: str = "serial_number",
    order: str = "asc",
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    filters = _filters(db, actor, base, equipment, status)
    return crud.list_lots_filtered(
        db,
        sort=normalize_sort(sort),
        order=normalize_order(order),
        limit=normalize_limit(limit),
        offset=normalize_offset(offset),
        include_retired=include_retired,
        **filters,
    )


@router.get("/lots/meta", response_model=LotsMeta)
def lots_meta_api(
    base: Optional[str] = None,
    equipment: Optional[str] = None,
    status: Optional[str] = None,
    include_retired: bool = False,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    filters = _filters(db, actor, base, equipment, status)
    meta = crud.lots_meta(
        db,
        limit=normalize_limit(limit),
        offset=normalize_offset(offset),
        include_retired=include_retired,
        **filters,
    )
    return LotsMeta(**meta)


@router.get("/lots/{lot_id}", response_model=AssetLot)
def get_lot_api(
    lot_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    lot, _ = crud.get_lot(db, lot_id)
    authz.require(actor, authz.READ, Resource(base_id=lot.base_id))
    return lot


@router.get("/lots/{lot_id}/available", response_model=LotAvailability)
def lot_availability_api(
    lot_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    lot, _ = crud.get_lot(db, lot_id)
    authz.require(actor, authz.READ, Resource(base_id=lot.base_id))
    return LotAvailability(
        lot_id=lot.id,
        status=lot.status,  # type: ignore[arg-type]
        quantity=lot.quantity,
        reserved=lot.reserved,
        available=crud.available_quantity(lot),
    )
