"""Reference data: bases and the equipment catalog. Read-only to the workflows."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

import authz
from authz import Actor
from crud import get_record, new_id, persist, utcnow
from errors import InvalidReferenceError, ValidationError
from models import (
    BaseIn,
    BaseOut,
    BaseUpdate,
    EquipmentSummary,
    EquipmentTypeIn,
    EquipmentTypeOut,
    EquipmentTypeUpdate,
)
from orm import AssetLotORM, BaseORM, EquipmentTypeORM

logger = logging.getLogger("ledger.catalog")

VALID_CATEGORIES = {"WEAPON", "VEHICLE", "AMMUNITION", "EQUIPMENT", "OTHER"}


# ---------- lookups used by the workflows ----------
def require_base(db: Session, base_id: Optional[str]) -> BaseORM:
    base = get_record(db, BaseORM, "base", base_id)
    if not base.is_active:
        raise InvalidReferenceError("base", base_id)
    return base


def require_equipment_type(db: Session, equipment_type_id: Optional[str]) -> EquipmentTypeORM:
    et = get_record(db, EquipmentTypeORM, "equipment_type", equipment_type_id)
    if not et.is_active:
        raise InvalidReferenceError("equipment_type", equipment_type_id)
    return et


def lookup_equipment(db: Session, equipment_type_id: str) -> EquipmentSummary:
    et = get_record(db, EquipmentTypeORM, "equipment_type", equipment_type_id)
    return EquipmentSummary(name=et.name, category=et.category)  # type: ignore[arg-type]


# ---------- bases ----------
def base_code_exists(db: Session, code: str) -> bool:
    return db.execute(select(BaseORM.id).where(BaseORM.code == code)).first() is not None


def list_bases(db: Session, *, include_inactive: bool = False) -> list[BaseOut]:
    stmt = select(BaseORM).order_by(BaseORM.code.asc())
    if not include_inactive:
        stmt = stmt.where(BaseORM.is_active.is_(True))
    return [BaseOut.model_validate(b) for b in db.execute(stmt).scalars().all()]


def create_base(db: Session, actor: Actor, body: BaseIn, *, commit: bool = True) -> BaseOut:
    authz.require(actor, authz.CATALOG_WRITE)
    if base_code_exists(db, body.code):
        raise ValidationError(f"base code already exists: {body.code}", field="code")
    dup = db.execute(select(BaseORM.id).where(BaseORM.name == body.name)).first()
    if dup:
        raise ValidationError(f"base name already exists: {body.name}", field="name")

    now = utcnow()
    b = BaseORM(
        id=new_id(),
        name=body.name.strip(),
        code=body.code,
        location=body.location or "unknown",
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(b)
    persist(db, commit=commit)
    logger.info("base_created id=%s code=%s", b.id, b.code)
    return BaseOut.model_validate(b)


def update_base(db: Session, actor: Actor, base_id: str, body: BaseUpdate, *, commit: bool = True) -> BaseOut:
    authz.require(actor, authz.CATALOG_WRITE)
    b = get_record(db, BaseORM, "base", base_id)

    data = body.model_dump(exclude_unset=True)
    new_name = (data.get("name") or "").strip()
    if "name" in data:
        if not new_name:
            raise ValidationError("name must not be empty", field="name")
        dup = db.execute(
            select(BaseORM.id).where(BaseORM.name == new_name, BaseORM.id != base_id)
        ).first()
        if dup:
            raise ValidationError(f"base name already exists: {new_name}", field="name")
        data["name"] = new_name

    for k, v in data.items():
        setattr(b, k, v)
    b.updated_at = utcnow()

    persist(db, commit=commit)
    return BaseOut.model_validate(b)


# ---------- equipment types ----------
def equipment_code_exists(db: Session, code: str) -> bool:
    return db.execute(select(EquipmentTypeORM.id).where(EquipmentTypeORM.code == code)).first() is not None


def list_equipment_types(
    db: Session, *, category: Optional[str] = None, include_inactive: bool = False
) -> list[EquipmentTypeOut]:
    stmt = select(EquipmentTypeORM).order_by(EquipmentTypeORM.category.asc(), EquipmentTypeORM.name.asc())
    if category:
        stmt = stmt.where(EquipmentTypeORM.category == category)
    if not include_inactive:
        stmt = stmt.where(EquipmentTypeORM.is_active.is_(True))
    return [EquipmentTypeOut.model_validate(e) for e in db.execute(stmt).scalars().all()]


def create_equipment_type(
    db: Session, actor: Actor, body: EquipmentTypeIn, *, commit: bool = True
) -> EquipmentTypeOut:
    authz.require(actor, authz.CATALOG_WRITE)
    if equipment_code_exists(db, body.code):
        raise ValidationError(f"equipment code already exists: {body.code}", field="code")
    dup = db.execute(select(EquipmentTypeORM.id).where(EquipmentTypeORM.name == body.name)).first()
    if dup:
        raise ValidationError(f"equipment name already exists: {body.name}", field="name")

    now = utcnow()
    e = EquipmentTypeORM(
        id=new_id(),
        name=body.name.strip(),
        code=body.code,
        category=body.category,
        description=body.description,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(e)
    persist(db, commit=commit)
    logger.info("equipment_type_created id=%s code=%s", e.id, e.code)
    return EquipmentTypeOut.model_validate(e)


def update_equipment_type(
    db: Session, actor: Actor, equipment_type_id: str, body: EquipmentTypeUpdate, *, commit: bool = True
) -> EquipmentTypeOut:
    authz.require(actor, authz.CATALOG_WRITE)
    e = get_record(db, EquipmentTypeORM, "equipment_type", equipment_type_id)

    data = body.model_dump(exclude_unset=True)
    if data.get("is_active") is False:
        in_use = db.execute(
            select(func.count())
            .select_from(AssetLotORM)
            .where(AssetLotORM.equipment_type_id == equipment_type_id, AssetLotORM.retired_at.is_(None))
        ).scalar_one()
        if int(in_use) > 0:
            raise ValidationError("equipment type still has live lots", field="is_active")

    for k, v in data.items():
        setattr(e, k, v)
    e.updated_at = utcnow()

    persist(db, commit=commit)
    return EquipmentTypeOut.model_validate(e)


def bulk_import_equipment_types(db: Session, actor: Actor, rows: list[dict[str, str]]) -> dict:
    """
    rows: [{"name": "...", "code": "...", "category": "...", "description": "..."}]
    Existing codes are skipped; malformed rows are reported, not imported.
    """
    authz.require(actor, authz.CATALOG_WRITE)
    created = 0
    skipped = 0
    errors: list[str] = []

    try:
        for idx, r in enumerate(rows, start=1):
            name = (r.get("name") or "").strip()
            code = (r.get("code") or "").strip().upper()
            category = (r.get("category") or "").strip().upper()
            description = (r.get("description") or "").strip() or None

            if not name or not code:
                errors.append(f"row {idx}: name/code is empty")
                continue
            if category not in VALID_CATEGORIES:
                errors.append(f"row {idx}: unknown category {category!r}")
                continue

            if equipment_code_exists(db, code):
                skipped += 1
                continue

            body = EquipmentTypeIn(name=name, code=code, category=category, description=description)  # type: ignore[arg-type]
            try:
                create_equipment_type(db, actor, body, commit=False)
            except ValidationError as exc:
                errors.append(f"row {idx}: {exc.message}")
                continue
            created += 1
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("equipment_import created=%s skipped=%s errors=%s", created, skipped, len(errors))
    return {"created": created, "skipped": skipped, "errors": errors}
