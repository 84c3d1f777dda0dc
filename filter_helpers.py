from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from orm import BaseORM, EquipmentTypeORM

VALID_LOT_STATUSES = {"AVAILABLE", "ASSIGNED", "IN_TRANSIT", "MAINTENANCE", "EXPENDED"}
VALID_SORTS = {"serial_number", "quantity", "status", "created_at", "updated_at"}
VALID_ORDERS = {"asc", "desc"}
VALID_DIRECTIONS = {"in", "out", "all"}


def blank_to_none(value: Optional[str]) -> Optional[str]:
    if value == "":
        return None
    return value


def normalize_choice(value: Optional[str], choices: set[str]) -> Optional[str]:
    """Upper-cased value if it is one of ``choices``, else None (filter dropped)."""
    if not value:
        return None
    value = value.strip().upper()
    if value in choices:
        return value
    return None


def normalize_status(status: Optional[str]) -> Optional[str]:
    return normalize_choice(status, VALID_LOT_STATUSES)


def normalize_sort(sort: str) -> str:
    if sort in VALID_SORTS:
        return sort
    return "serial_number"


def normalize_order(order: str) -> str:
    if order in VALID_ORDERS:
        return order
    return "asc"


def normalize_direction(direction: str) -> str:
    if direction in VALID_DIRECTIONS:
        return direction
    return "all"


def normalize_limit(limit: int, *, min_value: int = 1, max_value: int = 500) -> int:
    if limit < min_value:
        return min_value
    if limit > max_value:
        return max_value
    return limit


def normalize_offset(offset: int) -> int:
    if offset < 0:
        return 0
    return offset


def resolve_base_id(db: Session, code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    row = db.execute(select(BaseORM.id).where(BaseORM.code == code.strip().upper())).first()
    return row[0] if row else None


def resolve_equipment_type_id(db: Session, code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    row = db.execute(select(EquipmentTypeORM.id).where(EquipmentTypeORM.code == code.strip().upper())).first()
    return row[0] if row else None
