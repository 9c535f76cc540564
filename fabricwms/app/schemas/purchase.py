from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fabricwms.app.db.models.core_types import MovementDirection, MovementReason, PurchaseStatus
from fabricwms.services.amounts import MAX_PRICE_PER_UNIT, MAX_QUANTITY


def _upper_status(value):
    return value.strip().upper() if isinstance(value, str) else value


# ---------- Requests ----------
class PurchaseCreate(BaseModel):
    material_id: int
    supplier: str = Field(min_length=1, max_length=255)
    quantity: Decimal = Field(gt=0, le=MAX_QUANTITY, decimal_places=3)
    unit: str | None = Field(default=None, max_length=32)
    price_per_unit: Decimal = Field(gt=0, le=MAX_PRICE_PER_UNIT, decimal_places=2)
    purchase_date: date
    invoice_number: str | None = Field(default=None, max_length=64)
    receipt_path: str | None = Field(default=None, max_length=500)
    notes: str | None = None
    delivery_date: date | None = None
    received_quantity: Decimal | None = Field(default=None, gt=0, le=MAX_QUANTITY, decimal_places=3)


class PurchaseUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    material_id: int | None = None
    supplier: str | None = Field(default=None, max_length=255)
    quantity: Decimal | None = Field(default=None, gt=0, le=MAX_QUANTITY, decimal_places=3)
    unit: str | None = Field(default=None, max_length=32)
    price_per_unit: Decimal | None = Field(default=None, gt=0, le=MAX_PRICE_PER_UNIT, decimal_places=2)
    purchase_date: date | None = None
    invoice_number: str | None = Field(default=None, max_length=64)
    receipt_path: str | None = Field(default=None, max_length=500)
    notes: str | None = None
    delivery_date: date | None = None
    received_quantity: Decimal | None = Field(default=None, gt=0, le=MAX_QUANTITY, decimal_places=3)
    status: PurchaseStatus | None = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        return _upper_status(value)


class PurchaseStatusUpdate(BaseModel):
    status: PurchaseStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        return _upper_status(value)


# ---------- Responses ----------
class MaterialSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    unit: str


class MovementRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    material_id: int
    purchase_record_id: int | None
    direction: MovementDirection
    reason: MovementReason
    quantity: Decimal
    unit: str
    unit_cost: Decimal | None
    total_cost: Decimal | None
    qty_after_snapshot: Decimal
    notes: str | None
    occurred_at: datetime
    is_active: bool


class PurchaseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    material_id: int
    material: MaterialSummary
    supplier: str
    quantity: Decimal
    unit: str
    price_per_unit: Decimal
    total_cost: Decimal
    purchase_date: date
    status: PurchaseStatus
    invoice_number: str | None
    receipt_path: str | None
    notes: str | None
    delivery_date: date | None
    received_quantity: Decimal | None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class PurchaseDetail(PurchaseRead):
    active_movement: MovementRead | None = None


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_count: int
    has_next_page: bool
    has_prev_page: bool


class PurchaseList(BaseModel):
    items: list[PurchaseRead]
    pagination: Pagination


class PurchaseDeleted(BaseModel):
    id: int
    deleted: bool = True
