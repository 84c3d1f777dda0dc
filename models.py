from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Literal
from datetime import datetime
from decimal import Decimal

Role = Literal["admin", "base_commander", "logistics_officer", "user"]
LotStatus = Literal["AVAILABLE", "ASSIGNED", "IN_TRANSIT", "MAINTENANCE", "EXPENDED"]
Condition = Literal["NEW", "GOOD", "FAIR", "POOR", "UNSERVICEABLE"]
EquipmentCategory = Literal["WEAPON", "VEHICLE", "AMMUNITION", "EQUIPMENT", "OTHER"]

PurchaseStatus = Literal["ORDERED", "DELIVERED", "CANCELLED"]
TransferStatus = Literal["INITIATED", "IN_TRANSIT", "COMPLETED", "CANCELLED"]
AssignmentStatus = Literal["ACTIVE", "RETURNED", "LOST", "DAMAGED", "EXPENDED"]
ExpenditureStatus = Literal["PENDING", "APPROVED", "COMPLETED", "CANCELLED"]
ExpenditureReason = Literal["TRAINING", "OPERATION", "MAINTENANCE", "DISPOSAL", "OTHER"]

MovementType = Literal[
    "PURCHASE",
    "TRANSFER_OUT",
    "TRANSFER_IN",
    "TRANSFER_CANCEL",
    "ASSIGNMENT",
    "RETURN",
    "LOSS",
    "EXPENDITURE",
]


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------- Catalog ----------
class BaseIn(BaseModel):
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)
    location: str = "unknown"

    @field_validator("code")
    @classmethod
    def _upper_code(cls, v: str) -> str:
        return v.strip().upper()

class BaseUpdate(BaseModel):
    name: Optional[str] = None
    location: Optional[str] = None
    is_active: Optional[bool] = None

class BaseOut(_Record):
    id: str
    name: str
    code: str
    location: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

class EquipmentTypeIn(BaseModel):
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)
    category: EquipmentCategory
    description: Optional[str] = None

    @field_validator("code")
    @classmethod
    def _upper_code(cls, v: str) -> str:
        return v.strip().upper()

class EquipmentTypeUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[EquipmentCategory] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None

class EquipmentTypeOut(_Record):
    id: str
    name: str
    code: str
    category: EquipmentCategory
    description: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

class EquipmentSummary(BaseModel):
    name: str
    category: EquipmentCategory


# ---------- Lots ----------
class AssetLot(_Record):
    id: str
    serial_number: str
    equipment_type_id: str
    base_id: str
    purchase_id: Optional[str] = None
    quantity: int
    reserved: int
    status: LotStatus
    condition: Condition
    version: int
    retired_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

class LotAvailability(BaseModel):
    lot_id: str
    status: LotStatus
    quantity: int
    reserved: int
    available: int

class LotsMeta(BaseModel):
    total: int
    limit: int
    offset: int
    total_pages: int


# ---------- Purchase ----------
class PurchaseIn(BaseModel):
    base_id: Optional[str] = None
    equipment_type_id: str
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    supplier_name: Optional[str] = None
    supplier_contact: Optional[str] = None
    supplier_address: Optional[str] = None
    purchase_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None

class PurchaseUpdate(BaseModel):
    quantity: Optional[int] = Field(default=None, gt=0)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    supplier_name: Optional[str] = None
    supplier_contact: Optional[str] = None
    supplier_address: Optional[str] = None
    purchase_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None

class Purchase(_Record):
    id: str
    base_id: str
    equipment_type_id: str
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    supplier_name: Optional[str] = None
    supplier_contact: Optional[str] = None
    supplier_address: Optional[str] = None
    purchase_date: datetime
    delivery_date: Optional[datetime] = None
    status: PurchaseStatus
    lot_id: Optional[str] = None
    created_by: str
    notes: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime


# ---------- Transfer ----------
class TransferIn(BaseModel):
    source_base_id: str
    dest_base_id: str
    lot_id: str
    quantity: int = Field(gt=0)
    transport_details: Optional[str] = None
    notes: Optional[str] = None

class TransferUpdate(BaseModel):
    transport_details: Optional[str] = None
    notes: Optional[str] = None

class Transfer(_Record):
    id: str
    source_base_id: str
    dest_base_id: str
    equipment_type_id: str
    source_lot_id: str
    transit_lot_id: str
    dest_lot_id: Optional[str] = None
    quantity: int
    status: TransferStatus
    transport_details: Optional[str] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    initiated_by: str
    approved_by: Optional[str] = None
    completed_by: Optional[str] = None
    cancelled_by: Optional[str] = None
    transfer_date: datetime
    completion_date: Optional[datetime] = None
    version: int
    created_at: datetime
    updated_at: datetime


# ---------- Assignment ----------
class AssignmentIn(BaseModel):
    lot_id: str
    personnel_id: str = Field(min_length=1)
    personnel_name: Optional[str] = None
    personnel_rank: Optional[str] = None
    personnel_unit: Optional[str] = None
    expected_return_date: Optional[datetime] = None
    purpose: Optional[str] = None
    notes: Optional[str] = None

class AssignmentUpdate(BaseModel):
    expected_return_date: Optional[datetime] = None
    purpose: Optional[str] = None
    notes: Optional[str] = None

class ReturnIn(BaseModel):
    condition: Optional[Condition] = None
    notes: Optional[str] = None

class LossIn(BaseModel):
    status: Literal["LOST", "DAMAGED"]
    notes: Optional[str] = None

class Assignment(_Record):
    id: str
    lot_id: str
    base_id: str
    quantity: int
    personnel_id: str
    personnel_name: Optional[str] = None
    personnel_rank: Optional[str] = None
    personnel_unit: Optional[str] = None
    assignment_date: datetime
    expected_return_date: Optional[datetime] = None
    actual_return_date: Optional[datetime] = None
    status: AssignmentStatus
    return_condition: Optional[Condition] = None
    purpose: Optional[str] = None
    notes: Optional[str] = None
    assigned_by: str
    version: int
    created_at: datetime
    updated_at: datetime


# ---------- Expenditure ----------
class ExpenditureIn(BaseModel):
    lot_id: str
    quantity: int = Field(gt=0)
    reason: ExpenditureReason
    expenditure_date: Optional[datetime] = None
    operation_name: Optional[str] = None
    operation_id: Optional[str] = None
    notes: Optional[str] = None

class ExpenditureUpdate(BaseModel):
    expenditure_date: Optional[datetime] = None
    operation_name: Optional[str] = None
    operation_id: Optional[str] = None
    notes: Optional[str] = None

class CancelIn(BaseModel):
    reason: Optional[str] = None

class Expenditure(_Record):
    id: str
    lot_id: str
    base_id: str
    equipment_type_id: str
    quantity: int
    reason: ExpenditureReason
    status: ExpenditureStatus
    expenditure_date: datetime
    authorized_by: str
    approved_by: Optional[str] = None
    approved_date: Optional[datetime] = None
    completed_by: Optional[str] = None
    completed_date: Optional[datetime] = None
    operation_name: Optional[str] = None
    operation_id: Optional[str] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime


# ---------- Movement ledger ----------
class Movement(_Record):
    id: str
    movement_type: MovementType
    reference_kind: str
    reference_id: str
    lot_id: str
    base_id: str
    equipment_type_id: str
    quantity_change: int
    balance_after: int
    performed_by: str
    created_at: datetime

class BalanceSummary(BaseModel):
    base_id: Optional[str] = None
    equipment_type_id: Optional[str] = None
    period_start: datetime
    period_end: datetime
    opening_balance: int
    purchases: int
    transfers_in: int
    transfers_out: int
    transfers_cancelled: int
    expended: int
    lost: int
    net_movement: int
    closing_balance: int
