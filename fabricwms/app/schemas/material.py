from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from fabricwms.app.db.models.core_types import MovementDirection, MovementReason
from fabricwms.services.amounts import MAX_PRICE_PER_UNIT, MAX_QUANTITY


class MaterialCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    unit: str = Field(default="pcs", min_length=1, max_length=32)
    opening_quantity: Decimal = Field(default=Decimal("0"), ge=0, le=MAX_QUANTITY, decimal_places=3)


class MaterialRead(BaseModel):
    """qty_on_hand: READ ONLY, maintenu par le ledger."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    unit: str
    qty_on_hand: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime


class AdjustmentCreate(BaseModel):
    direction: MovementDirection
    quantity: Decimal = Field(gt=0, le=MAX_QUANTITY, decimal_places=3)
    reason: MovementReason = MovementReason.adjustment
    notes: str | None = None
    unit_cost: Decimal | None = Field(default=None, gt=0, le=MAX_PRICE_PER_UNIT, decimal_places=2)


class StockAuditRead(BaseModel):
    material_id: int
    qty_on_hand: Decimal
    ledger_balance: Decimal
    difference: Decimal
    in_sync: bool
