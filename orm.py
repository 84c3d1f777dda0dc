from datetime import datetime
from decimal import Decimal
from sqlalchemy import Boolean, String, DateTime, Text, ForeignKey, Integer, Numeric, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db import Base


class BaseORM(Base):
    __tablename__ = "bases"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    code: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    location: Mapped[str] = mapped_column(String, nullable=False, default="unknown")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class EquipmentTypeORM(Base):
    __tablename__ = "equipment_types"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    code: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    category: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class AssetLotORM(Base):
    __tablename__ = "asset_lots"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_lot_quantity_non_negative"),
        CheckConstraint("reserved >= 0 AND reserved <= quantity", name="ck_lot_reserved_bounds"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    serial_number: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    equipment_type_id: Mapped[str] = mapped_column(String, ForeignKey("equipment_types.id"), nullable=False, index=True)
    base_id: Mapped[str] = mapped_column(String, ForeignKey("bases.id"), nullable=False, index=True)
    purchase_id: Mapped[str | None] = mapped_column(String, ForeignKey("purchases.id"), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String, nullable=False, default="AVAILABLE", index=True)
    condition: Mapped[str] = mapped_column(String, nullable=False, default="NEW")

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    retired_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class PurchaseORM(Base):
    __tablename__ = "purchases"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    base_id: Mapped[str] = mapped_column(String, ForeignKey("bases.id"), nullable=False, index=True)
    equipment_type_id: Mapped[str] = mapped_column(String, ForeignKey("equipment_types.id"), nullable=False, index=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)

    supplier_name: Mapped[str | None] = mapped_column(String, nullable=True)
    supplier_contact: Mapped[str | None] = mapped_column(String, nullable=True)
    supplier_address: Mapped[str | None] = mapped_column(String, nullable=True)

    purchase_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    delivery_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="ORDERED", index=True)
    lot_id: Mapped[str | None] = mapped_column(String, nullable=True)

    created_by: Mapped[str] = mapped_column(String, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class TransferORM(Base):
    __tablename__ = "transfers"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    source_base_id: Mapped[str] = mapped_column(String, ForeignKey("bases.id"), nullable=False, index=True)
    dest_base_id: Mapped[str] = mapped_column(String, ForeignKey("bases.id"), nullable=False, index=True)
    equipment_type_id: Mapped[str] = mapped_column(String, ForeignKey("equipment_types.id"), nullable=False)

    source_lot_id: Mapped[str] = mapped_column(String, ForeignKey("asset_lots.id"), nullable=False, index=True)
    transit_lot_id: Mapped[str] = mapped_column(String, ForeignKey("asset_lots.id"), nullable=False)
    dest_lot_id: Mapped[str | None] = mapped_column(String, ForeignKey("asset_lots.id"), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="INITIATED", index=True)
    transport_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    initiated_by: Mapped[str] = mapped_column(String, nullable=False)
    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String, nullable=True)

    transfer_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completion_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class AssignmentORM(Base):
    __tablename__ = "assignments"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    lot_id: Mapped[str] = mapped_column(String, ForeignKey("asset_lots.id"), nullable=False, index=True)
    base_id: Mapped[str] = mapped_column(String, ForeignKey("bases.id"), nullable=False, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    personnel_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    personnel_name: Mapped[str | None] = mapped_column(String, nullable=True)
    personnel_rank: Mapped[str | None] = mapped_column(String, nullable=True)
    personnel_unit: Mapped[str | None] = mapped_column(String, nullable=True)

    assignment_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expected_return_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    actual_return_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE", index=True)
    return_condition: Mapped[str | None] = mapped_column(String, nullable=True)
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_by: Mapped[str] = mapped_column(String, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class ExpenditureORM(Base):
    __tablename__ = "expenditures"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    lot_id: Mapped[str] = mapped_column(String, ForeignKey("asset_lots.id"), nullable=False, index=True)
    base_id: Mapped[str] = mapped_column(String, ForeignKey("bases.id"), nullable=False, index=True)
    equipment_type_id: Mapped[str] = mapped_column(String, ForeignKey("equipment_types.id"), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING", index=True)
    expenditure_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    authorized_by: Mapped[str] = mapped_column(String, nullable=False)
    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    completed_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    operation_name: Mapped[str | None] = mapped_column(String, nullable=True)
    operation_id: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class MovementORM(Base):
    __tablename__ = "movements"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    movement_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    reference_kind: Mapped[str] = mapped_column(String, nullable=False)
    reference_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    lot_id: Mapped[str] = mapped_column(String, ForeignKey("asset_lots.id"), nullable=False, index=True)
    base_id: Mapped[str] = mapped_column(String, ForeignKey("bases.id"), nullable=False, index=True)
    equipment_type_id: Mapped[str] = mapped_column(String, ForeignKey("equipment_types.id"), nullable=False, index=True)

    quantity_change: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    performed_by: Mapped[str] = mapped_column(String, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
