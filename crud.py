from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from datetime import datetime, timezone

from typing import Iterator, Optional, TypeVar
from uuid import uuid4

from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from errors import ConflictError, InvalidReferenceError
from models import AssetLot, Movement
from orm import AssetLotORM, MovementORM, TransferORM

logger = logging.getLogger("ledger.store")

T = TypeVar("T")

ALLOWED_SORTS = {
    "serial_number": AssetLotORM.serial_number,
    "quantity": AssetLotORM.quantity,
    "status": AssetLotORM.status,
    "created_at": AssetLotORM.created_at,
    "updated_at": AssetLotORM.updated_at,
}

SERIAL_PATTERN = re.compile(r"^A(\d+)$")
OPEN_TRANSFER_STATUSES = ("INITIATED", "IN_TRANSIT")

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything stored here is UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)

def new_id() -> str:
    return str(uuid4())

def persist(db: Session, *, commit: bool) -> None:
    if commit:
        db.commit()
    else:
        db.flush()


@contextmanager
def transaction(db: Session, *, commit: bool = True) -> Iterator[None]:
    """All-or-nothing block for one ledger operation.

    Anything raised inside rolls the session back, so a half-applied
    mutation is never visible. Unique-key races and SQLite lock timeouts
    surface as ConflictError.
    """
    try:
        yield
        persist(db, commit=commit)
    except IntegrityError as exc:
        db.rollback()
        if "unique" in str(exc.orig).lower():
            raise ConflictError("record", None, "a concurrent write created the same record") from exc
        raise
    except OperationalError as exc:
        db.rollback()
        if "locked" in str(exc.orig).lower():
            raise ConflictError("database", None, "store is busy with a concurrent write") from exc
        raise
    except Exception:
        db.rollback()
        raise


# ---------- generic records ----------
def get_record(db: Session, cls: type[T], entity: str, record_id: Optional[str]) -> T:
    row = db.get(cls, record_id) if record_id else None
    if row is None:
        raise InvalidReferenceError(entity, record_id)
    return row


def cas_update(db: Session, cls, entity: str, record_id: str, version: int, **changes) -> int:
    """Compare-and-swap write: applies ``changes`` only if the stored version still equals ``version``.

    Returns the new version. Raises ConflictError when another writer got there first.
    """
    new_version = version + 1
    changes.setdefault("updated_at", utcnow())
    result = db.execute(
        update(cls)
        .where(cls.id == record_id, cls.version == version)
        .values(version=new_version, **changes)
    )
    if result.rowcount != 1:
        logger.warning("cas_conflict entity=%s id=%s expected_version=%s", entity, record_id, version)
        raise ConflictError(entity, record_id)
    return new_version


# ---------- Asset lots ----------
def _lot_to_schema(lot: AssetLotORM) -> AssetLot:
    return AssetLot.model_validate(lot)


def get_lot(db: Session, lot_id: Optional[str]) -> tuple[AssetLotORM, int]:
    lot = get_record(db, AssetLotORM, "asset_lot", lot_id)
    return lot, lot.version


def cas_update_lot(db: Session, lot_id: str, version: int, **changes) -> int:
    return cas_update(db, AssetLotORM, "asset_lot", lot_id, version, **changes)


def available_quantity(lot: AssetLotORM | AssetLot) -> int:
    """Units that a new reservation may claim: on-hand minus logical holds, only for live AVAILABLE lots."""
    if lot.retired_at is not None or lot.status != "AVAILABLE":
        return 0
    return max(0, lot.quantity - lot.reserved)


def next_serial_number(db: Session) -> str:
    rows = db.execute(
        select(AssetLotORM.serial_number).where(AssetLotORM.serial_number.like("A%"))
    ).scalars().all()
    highest = 0
    for serial in rows:
        m = SERIAL_PATTERN.match(serial)
        if m:
            highest = max(highest, int(m.group(1)))
    return f"A{highest + 1:03d}"


def create_lot(
    db: Session,
    *,
    equipment_type_id: str,
    base_id: str,
    quantity: int,
    status: str = "AVAILABLE",
    condition: str = "NEW",
    purchase_id: Optional[str] = None,
    serial_number: Optional[str] = None,
) -> AssetLotORM:
    now = utcnow()
    lot = AssetLotORM(
        id=new_id(),
        serial_number=serial_number or next_serial_number(db),
        equipment_type_id=equipment_type_id,
        base_id=base_id,
        purchase_id=purchase_id,
        quantity=quantity,
        reserved=0,
        status=status,
        condition=condition,
        version=1,
        retired_at=None,
        created_at=now,
        updated_at=now,
    )
    db.add(lot)
    db.flush()
    return lot


def find_matching_lot(
    db: Session,
    *,
    equipment_type_id: str,
    base_id: str,
    condition: str,
    exclude_ids: tuple[str, ...] = (),
) -> Optional[AssetLotORM]:
    stmt = (
        select(AssetLotORM)
        .where(
            AssetLotORM.equipment_type_id == equipment_type_id,
            AssetLotORM.base_id == base_id,
            AssetLotORM.condition == condition,
            AssetLotORM.status == "AVAILABLE",
            AssetLotORM.retired_at.is_(None),
        )
        .order_by(AssetLotORM.created_at.asc())
    )
    if exclude_ids:
        stmt = stmt.where(AssetLotORM.id.not_in(exclude_ids))
    return db.execute(stmt).scalars().first()


def has_open_transfer_from(db: Session, lot_id: str) -> bool:
    stmt = select(TransferORM.id).where(
        TransferORM.source_lot_id == lot_id,
        TransferORM.status.in_(OPEN_TRANSFER_STATUSES),
    )
    return db.execute(stmt).first() is not None


def settle_lot(db: Session, lot: AssetLotORM, **changes) -> bool:
    """Retire ``lot`` if it is empty and no workflow still holds it. Returns True when retired."""
    if lot.retired_at is not None or lot.quantity != 0 or lot.reserved != 0:
        return False
    if has_open_transfer_from(db, lot.id):
        return False
    cas_update_lot(db, lot.id, lot.version, retired_at=utcnow(), **changes)
    logger.info("lot_retired lot=%s base=%s", lot.id, lot.base_id)
    return True


# ---------- Movement ledger ----------
def record_movement(
    db: Session,
    *,
    movement_type: str,
    reference_kind: str,
    reference_id: str,
    lot: AssetLotORM,
    quantity_change: int,
    performed_by: str,
    base_id: Optional[str] = None,
) -> MovementORM:
    m = MovementORM(
        id=new_id(),
        movement_type=movement_type,
        reference_kind=reference_kind,
        reference_id=reference_id,
        lot_id=lot.id,
        base_id=base_id or lot.base_id,
        equipment_type_id=lot.equipment_type_id,
        quantity_change=quantity_change,
        balance_after=lot.quantity,
        performed_by=performed_by,
        created_at=utcnow(),
    )
    db.add(m)
    return m


def build_movements_query(
    *,
    base_id: str | None = None,
    equipment_type_id: str | None = None,
    movement_type: str | None = None,
    reference_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
):
    stmt = select(MovementORM)
    if base_id is not None:
        stmt = stmt.where(MovementORM.base_id == base_id)
    if equipment_type_id:
        stmt = stmt.where(MovementORM.equipment_type_id == equipment_type_id)
    if movement_type:
        stmt = stmt.where(MovementORM.movement_type == movement_type)
    if reference_id:
        stmt = stmt.where(MovementORM.reference_id == reference_id)
    if start:
        stmt = stmt.where(MovementORM.created_at >= start)
    if end:
        stmt = stmt.where(MovementORM.created_at <= end)
    return stmt


def list_movements(db: Session, *, limit: int = 500, offset: int = 0, **filters) -> list[Movement]:
    stmt = build_movements_query(**filters).order_by(MovementORM.created_at.asc()).limit(limit).offset(offset)
    return [Movement.model_validate(m) for m in db.execute(stmt).scalars().all()]


# ---------- lot listing ----------
def build_lots_query(
    *,
    base_id: str | None,
    equipment_type_id: str | None,
    status: str | None,
    include_retired: bool = False,
):
    stmt = select(AssetLotORM)

    if base_id is not None:
        stmt = stmt.where(AssetLotORM.base_id == base_id)
    if equipment_type_id:
        stmt = stmt.where(AssetLotORM.equipment_type_id == equipment_type_id)
    if status:
        stmt = stmt.where(AssetLotORM.status == status)
    if not include_retired:
        stmt = stmt.where(AssetLotORM.retired_at.is_(None))

    return stmt

def count_lots_filtered(db: Session, **filters) -> int:
    stmt = build_lots_query(**filters)
    count_stmt = select(func.count()).select_from(stmt.subquery())
    return int(db.execute(count_stmt).scalar_one())

def lots_meta(db: Session, *, limit: int, offset: int, **filters) -> dict:
    total = count_lots_filtered(db, **filters)
    total_pages = max(1, (total + limit - 1) // limit)

    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "total_pages": total_pages,
    }

def list_lots_filtered(
    db: Session,
    *,
    sort: str,
    order: str,
    limit: int,
    offset: int,
    **filters,
) -> list[AssetLot]:
    stmt = build_lots_query(**filters)

    col = ALLOWED_SORTS.get(sort, AssetLotORM.serial_number)
    desc = (order or "").lower() == "desc"
    stmt = stmt.order_by(col.desc() if desc else col.asc())

    stmt = stmt.limit(limit).offset(offset)
    rows = db.execute(stmt).scalars().all()
    return [_lot_to_schema(a) for a in rows]


def total_quantity(db: Session, equipment_type_id: str) -> int:
    """Units of one equipment type held across every lot (including in-transit holds)."""
    stmt = select(func.coalesce(func.sum(AssetLotORM.quantity), 0)).where(
        AssetLotORM.equipment_type_id == equipment_type_id
    )
    return int(db.execute(stmt).scalar_one())
