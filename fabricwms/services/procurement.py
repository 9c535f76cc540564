"""
Procurement service: moteur de réconciliation achat -> ledger -> stock.

Ce module orchestre le cycle de vie des achats (création, édition, statut,
suppression) mais ne contient AUCUN calcul de stock.

    - décision: services.transitions.plan_transition (pur)
    - application: services.inventory (UPDATE atomiques + ledger)

Aucune fonction ne committe: l'appelant encadre avec `atomic(db)`, ce qui rend
champ(s) achat + mouvement + stock tout-ou-rien.
"""

from __future__ import annotations

import random
import time
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from fabricwms.app.core.logging import get_logger
from fabricwms.app.db.models.core_types import PurchaseStatus
from fabricwms.app.db.models.models_v1 import PurchaseRecord, StockMovement
from fabricwms.services import inventory
from fabricwms.services.amounts import compute_total_cost, price_value, quantity_value
from fabricwms.services.exceptions import (
    PurchaseHasMovementsError,
    PurchaseNotFoundError,
    ValidationError,
)
from fabricwms.services.transitions import LedgerAction, TransitionPlan, plan_transition

logger = get_logger(__name__)

EDITABLE_FIELDS = {
    "material_id",
    "supplier",
    "quantity",
    "unit",
    "price_per_unit",
    "purchase_date",
    "invoice_number",
    "receipt_path",
    "notes",
    "delivery_date",
    "received_quantity",
    "status",
}

STATUS_VALUES = {s.value for s in PurchaseStatus}

# Champs qui déterminent l'entrée ledger d'un achat RECEIVED
LEDGER_FIELDS = ("material_id", "receive_quantity", "price_per_unit", "unit")


def generate_invoice_number() -> str:
    # unicité "best effort", non garantie
    return f"INV-{int(time.time() * 1000)}-{random.randint(0, 9999):04d}"


def parse_status(value: Any) -> PurchaseStatus:
    if isinstance(value, PurchaseStatus):
        return value
    if isinstance(value, str) and value.strip().upper() in STATUS_VALUES:
        return PurchaseStatus(value.strip().upper())
    raise ValidationError(
        "status",
        "Invalid status. Must be one of: PENDING, RECEIVED, CANCELLED",
        value,
    )


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _require_text(field: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, f"{field} is required", value)
    return value.strip()


def _optional_quantity(value: Any) -> Decimal | None:
    if value is None:
        return None
    return quantity_value("received_quantity", value)


def get_purchase(db: Session, purchase_id: int, *, for_update: bool = False) -> PurchaseRecord:
    stmt = (
        select(PurchaseRecord)
        .where(PurchaseRecord.id == purchase_id)
        .where(PurchaseRecord.is_active.is_(True))
    )
    if for_update:
        # verrou ligne achat: sérialise les transitions concurrentes d'un même achat
        stmt = stmt.with_for_update()
    else:
        stmt = stmt.options(selectinload(PurchaseRecord.movements))

    purchase = db.execute(stmt).scalar_one_or_none()
    if not purchase:
        raise PurchaseNotFoundError(purchase_id)
    return purchase


# ---------- CREATE ----------
def create_purchase(
    db: Session,
    *,
    material_id: int,
    supplier: str,
    quantity: Any,
    price_per_unit: Any,
    purchase_date: date,
    unit: str | None = None,
    invoice_number: str | None = None,
    receipt_path: str | None = None,
    notes: str | None = None,
    delivery_date: date | None = None,
    received_quantity: Any = None,
) -> PurchaseRecord:
    """Crée un achat PENDING. Aucun mouvement: le stock ne bouge qu'à la réception."""
    supplier = _require_text("supplier", supplier)
    if purchase_date is None:
        raise ValidationError("purchase_date", "purchase_date is required")

    qty = quantity_value("quantity", quantity)
    price = price_value("price_per_unit", price_per_unit)
    total = compute_total_cost(qty, price)

    material = inventory.get_material(db, material_id)

    purchase = PurchaseRecord(
        material_id=material.id,
        supplier=supplier,
        quantity=qty,
        unit=_clean_optional(unit) or material.unit or "pcs",
        price_per_unit=price,
        total_cost=total,
        purchase_date=purchase_date,
        status=PurchaseStatus.pending,
        invoice_number=_clean_optional(invoice_number) or generate_invoice_number(),
        receipt_path=_clean_optional(receipt_path),
        notes=_clean_optional(notes),
        delivery_date=delivery_date,
        received_quantity=_optional_quantity(received_quantity),
        is_active=True,
    )
    db.add(purchase)
    db.flush()

    logger.info(
        "purchase_created",
        purchase_id=purchase.id,
        material_id=material.id,
        quantity=str(qty),
        total_cost=str(total),
    )
    return purchase


# ---------- RECONCILIATION ----------
def _ledger_state(purchase: PurchaseRecord) -> tuple:
    return tuple(getattr(purchase, name) for name in LEDGER_FIELDS)


def _execute_plan(
    db: Session,
    purchase: PurchaseRecord,
    plan: TransitionPlan,
    active: StockMovement | None,
) -> None:
    if plan.action is LedgerAction.reapply and active.material_id == purchase.material_id:
        # même matière: le stock ne bouge que de plan.stock_delta
        inventory.replace_purchase_receipt(db, purchase, active, plan.apply_quantity)
        return
    if plan.action in (LedgerAction.reverse, LedgerAction.reapply):
        inventory.reverse_movement(db, active)
    if plan.action in (LedgerAction.apply, LedgerAction.reapply):
        inventory.apply_purchase_receipt(db, purchase, plan.apply_quantity)


def _reconcile(
    db: Session,
    purchase: PurchaseRecord,
    *,
    old_status: PurchaseStatus,
    new_status: PurchaseStatus,
    active: StockMovement | None,
    ledger_fields_changed: bool = False,
) -> TransitionPlan:
    plan = plan_transition(
        old_status,
        new_status,
        active_quantity=active.quantity if active else None,
        receive_quantity=purchase.receive_quantity,
        ledger_fields_changed=ledger_fields_changed,
    )
    purchase.status = new_status
    _execute_plan(db, purchase, plan, active)
    db.flush()

    if old_status is not new_status:
        logger.info(
            "purchase_status_changed",
            purchase_id=purchase.id,
            old_status=old_status.value,
            new_status=new_status.value,
            ledger_action=plan.action.value,
        )
    return plan


# ---------- UPDATE ----------
def _merge_fields(db: Session, purchase: PurchaseRecord, changes: dict[str, Any]) -> None:
    if "material_id" in changes:
        material_id = changes["material_id"]
        if material_id is None:
            raise ValidationError("material_id", "material_id is required")
        if material_id != purchase.material_id:
            inventory.get_material(db, material_id)
        purchase.material_id = material_id

    if "supplier" in changes:
        purchase.supplier = _require_text("supplier", changes["supplier"])
    if "quantity" in changes:
        purchase.quantity = quantity_value("quantity", changes["quantity"])
    if "price_per_unit" in changes:
        purchase.price_per_unit = price_value("price_per_unit", changes["price_per_unit"])
    if "unit" in changes:
        purchase.unit = _require_text("unit", changes["unit"])
    if "purchase_date" in changes:
        if changes["purchase_date"] is None:
            raise ValidationError("purchase_date", "purchase_date is required")
        purchase.purchase_date = changes["purchase_date"]
    if "invoice_number" in changes:
        purchase.invoice_number = _clean_optional(changes["invoice_number"])
    if "receipt_path" in changes:
        purchase.receipt_path = _clean_optional(changes["receipt_path"])
    if "notes" in changes:
        purchase.notes = _clean_optional(changes["notes"])
    if "delivery_date" in changes:
        purchase.delivery_date = changes["delivery_date"]
    if "received_quantity" in changes:
        purchase.received_quantity = _optional_quantity(changes["received_quantity"])

    if "quantity" in changes or "price_per_unit" in changes:
        purchase.total_cost = compute_total_cost(purchase.quantity, purchase.price_per_unit)


def update_purchase(db: Session, purchase_id: int, changes: dict[str, Any]) -> PurchaseRecord:
    """
    Édition complète (sous-ensemble de champs + statut optionnel).

    Achat RECEIVED dont matière/quantité/prix/unité changent: l'entrée active est
    extournée puis ré-appliquée avec les nouvelles valeurs, dans la même transaction.
    Même matière: seul l'écart net touche le stock. Changement de matière: extourne
    complète sur l'ancienne (garde stock négatif) puis entrée sur la nouvelle.
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError("body", f"Unknown fields: {', '.join(sorted(unknown))}")

    changes = dict(changes)
    new_status = parse_status(changes.pop("status")) if "status" in changes else None

    purchase = get_purchase(db, purchase_id, for_update=True)
    old_status = purchase.status
    active = purchase.active_movement

    before = _ledger_state(purchase)
    _merge_fields(db, purchase, changes)
    ledger_fields_changed = _ledger_state(purchase) != before

    plan = _reconcile(
        db,
        purchase,
        old_status=old_status,
        new_status=new_status or old_status,
        active=active,
        ledger_fields_changed=ledger_fields_changed,
    )

    logger.info(
        "purchase_updated",
        purchase_id=purchase.id,
        fields=sorted(changes),
        ledger_action=plan.action.value,
    )
    return purchase


# ---------- STATUS ONLY ----------
def change_status(db: Session, purchase_id: int, status: Any) -> PurchaseRecord:
    new_status = parse_status(status)
    purchase = get_purchase(db, purchase_id, for_update=True)
    _reconcile(
        db,
        purchase,
        old_status=purchase.status,
        new_status=new_status,
        active=purchase.active_movement,
    )
    return purchase


# ---------- DELETE ----------
def delete_purchase(db: Session, purchase_id: int) -> PurchaseRecord:
    """
    Soft delete, seulement si AUCUN mouvement n'est lié (actif ou extourné):
    l'historique ledger d'un achat reste rattaché à un achat visible.
    """
    purchase = get_purchase(db, purchase_id, for_update=True)

    linked = db.execute(
        select(StockMovement.id).where(StockMovement.purchase_record_id == purchase.id).limit(1)
    ).first()
    if linked:
        raise PurchaseHasMovementsError(purchase.id)

    purchase.is_active = False
    db.flush()

    logger.info("purchase_deleted", purchase_id=purchase.id)
    return purchase
