from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

import authz
import catalog
from authz import Actor
from csv_utils import csv_bytes_to_rows
from dependencies import get_actor, get_db
from errors import ValidationError
from filter_helpers import blank_to_none, normalize_choice
from models import (
    BaseIn,
    BaseOut,
    BaseUpdate,
    EquipmentSummary,
    EquipmentTypeIn,
    EquipmentTypeOut,
    EquipmentTypeUpdate,
)
from retry import retry_on_conflict

router = APIRouter(tags=["catalog"])


@router.get("/bases", response_model=list[BaseOut])
def list_bases_api(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    authz.require(actor, authz.READ)
    return catalog.list_bases(db, include_inactive=include_inactive)


@router.post("/bases", response_model=BaseOut, status_code=201)
def create_base_api(
    body: BaseIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: catalog.create_base(db, actor, body), db=db)


@router.patch("/bases/{base_id}", response_model=BaseOut)
def update_base_api(
    base_id: str,
    body: BaseUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: catalog.update_base(db, actor, base_id, body), db=db)


@router.get("/equipment-types", response_model=list[EquipmentTypeOut])
def list_equipment_types_api(
    category: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    authz.require(actor, authz.READ)
    category = normalize_choice(blank_to_none(category), catalog.VALID_CATEGORIES)
    return catalog.list_equipment_types(db, category=category, include_inactive=include_inactive)


@router.post("/equipment-types", response_model=EquipmentTypeOut, status_code=201)
def create_equipment_type_api(
    body: EquipmentTypeIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: catalog.create_equipment_type(db, actor, body), db=db)


@router.patch("/equipment-types/{equipment_type_id}", response_model=EquipmentTypeOut)
def update_equipment_type_api(
    equipment_type_id: str,
    body: EquipmentTypeUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return retry_on_conflict(lambda: catalog.update_equipment_type(db, actor, equipment_type_id, body), db=db)


@router.get("/equipment-types/{equipment_type_id}/summary", response_model=EquipmentSummary)
def equipment_summary_api(
    equipment_type_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    authz.require(actor, authz.READ)
    return catalog.lookup_equipment(db, equipment_type_id)


@router.post("/equipment-types/import")
async def import_equipment_types_api(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    data = await file.read()
    rows, err = csv_bytes_to_rows(data)
    if err:
        raise ValidationError(err, field="file")
    return catalog.bulk_import_equipment_types(db, actor, rows)
