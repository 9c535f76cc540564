from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from fabricwms.app.api.deps import get_db
from fabricwms.app.db.models.models_v1 import Material
from fabricwms.app.db.session import atomic
from fabricwms.app.schemas.material import (
    AdjustmentCreate,
    MaterialCreate,
    MaterialRead,
    StockAuditRead,
)
from fabricwms.app.schemas.purchase import MovementRead
from fabricwms.services import inventory

router = APIRouter(prefix="/materials")


@router.get("", response_model=list[MaterialRead])
def list_materials(db: Session = Depends(get_db)):
    rows = (
        db.execute(select(Material).where(Material.is_active.is_(True)).order_by(Material.code))
        .scalars()
        .all()
    )
    return [MaterialRead.model_validate(m) for m in rows]


@router.post("", status_code=201, response_model=MaterialRead)
def create_material(payload: MaterialCreate, db: Session = Depends(get_db)):
    with atomic(db, "create_material"):
        material = inventory.open_material(
            db,
            code=payload.code,
            name=payload.name,
            unit=payload.unit,
            opening_quantity=payload.opening_quantity,
        )
    return MaterialRead.model_validate(material)


@router.get("/{material_id}", response_model=MaterialRead)
def get_material(material_id: int, db: Session = Depends(get_db)):
    return MaterialRead.model_validate(inventory.get_material(db, material_id))


@router.get("/{material_id}/movements", response_model=list[MovementRead])
def list_material_movements(
    material_id: int,
    include_reversed: bool = False,
    db: Session = Depends(get_db),
):
    rows = inventory.list_movements(db, material_id, include_reversed=include_reversed)
    return [MovementRead.model_validate(mv) for mv in rows]


@router.post("/{material_id}/movements", status_code=201, response_model=MovementRead)
def create_material_movement(
    material_id: int,
    payload: AdjustmentCreate,
    db: Session = Depends(get_db),
):
    """Mouvement manuel (consommation production, correction). Jamais lié à un achat."""
    with atomic(db, "record_adjustment"):
        movement = inventory.record_adjustment(
            db,
            material_id=material_id,
            direction=payload.direction,
            quantity=payload.quantity,
            reason=payload.reason,
            notes=payload.notes,
            unit_cost=payload.unit_cost,
        )
    return MovementRead.model_validate(movement)


@router.get("/{material_id}/stock-audit", response_model=StockAuditRead)
def get_stock_audit(material_id: int, db: Session = Depends(get_db)):
    """Stock (READ ONLY): compare qty_on_hand et la somme des mouvements actifs."""
    return StockAuditRead(**inventory.stock_audit(db, material_id))
