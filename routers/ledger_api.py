from datetime import datetime
from typing import Optional, get_args

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import authz
import balances
import crud
from authz import Actor
from csv_utils import rows_to_csv_response
from dependencies import get_actor, get_db
from filter_helpers import blank_to_none, normalize_choice, normalize_limit, normalize_offset
from models import BalanceSummary, Movement, MovementType
from orm import MovementORM

router = APIRouter(tags=["ledger"])

MOVEMENT_TYPES = set(get_args(MovementType))


def _movement_filters(
    actor: Actor,
    base_id: Optional[str],
    equipment_type_id: Optional[str],
    movement_type: Optional[str],
    reference_id: Optional[str],
    start: Optional[datetime],
    end: Optional[datetime],
) -> dict:
    authz.require(actor, authz.READ)
    return {
        "base_id": authz.base_scope(actor, blank_to_none(base_id)),
        "equipment_type_id": blank_to_none(equipment_type_id),
        "movement_type": normalize_choice(movement_type, MOVEMENT_TYPES),
        "reference_id": blank_to_none(reference_id),
        "start": crud.as_utc(start),
        "end": crud.as_utc(end),
    }


@router.get("/movements", response_model=list[Movement])
def list_movements_api(
    base_id: Optional[str] = None,
    equipment_type_id: Optional[str] = None,
    movement_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 200,
    offset: int = 0,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    filters = _movement_filters(actor, base_id, equipment_type_id, movement_type, reference_id, start, end)
    return crud.list_movements(
        db,
        limit=normalize_limit(limit),
        offset=normalize_offset(offset),
        **filters,
    )


@router.get("/movements/export")
def export_movements_csv(
    base_id: Optional[str] = None,
    equipment_type_id: Optional[str] = None,
    movement_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    filters = _movement_filters(actor, base_id, equipment_type_id, movement_type, reference_id, start, end)
    stmt = crud.build_movements_query(**filters).order_by(MovementORM.created_at.asc())
    rows = db.execute(stmt).scalars().all()
    return rows_to_csv_response(rows, filename="movements_export.csv")


@router.get("/balances", response_model=BalanceSummary)
def balances_api(
    base_id: Optional[str] = None,
    equipment_type_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return balances.balance_summary(
        db,
        actor,
        base_id=blank_to_none(base_id),
        equipment_type_id=blank_to_none(equipment_type_id),
        start=start,
        end=end,
    )
