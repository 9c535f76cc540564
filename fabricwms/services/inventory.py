"""
Inventory service: stock matérialisé + ledger de mouvements.

Règles:
- Material.qty_on_hand n'est JAMAIS écrit ailleurs que dans apply_stock_delta()
- la variation passe par UN SEUL `UPDATE ... SET qty_on_hand = qty_on_hand + :delta`
  (pas de lecture / calcul en mémoire / réécriture)
- une sortie ne passe que si `qty_on_hand >= :qty` (garde dans le WHERE)
- un mouvement n'est jamais supprimé ni modifié, sauf is_active True -> False

Ces fonctions ne committent pas: la frontière de transaction est celle de l'appelant.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from fabricwms.app.core.logging import get_logger
from fabricwms.app.db.models.core_types import MovementDirection, MovementReason
from fabricwms.app.db.models.models_v1 import Material, PurchaseRecord, StockMovement
from fabricwms.services.amounts import QTY_STEP, price_value, quantity_value, round2
from fabricwms.services.exceptions import (
    ConcurrentUpdateError,
    MaterialCodeExistsError,
    MaterialNotFoundError,
    NegativeStockError,
    ValidationError,
)

logger = get_logger(__name__)


def get_material(db: Session, material_id: int) -> Material:
    material = db.get(Material, material_id)
    if not material or not material.is_active:
        raise MaterialNotFoundError(material_id)
    return material


def _expire_cached_stock(db: Session, material_id: int) -> None:
    cached = db.identity_map.get(db.identity_key(Material, material_id))
    if cached is not None:
        db.expire(cached, ["qty_on_hand", "updated_at"])


def apply_stock_delta(db: Session, material_id: int, delta: Decimal) -> Decimal:
    """
    Incrément/décrément atomique du stock. Retourne qty_on_hand après application.

    Lève NegativeStockError si le décrément ferait passer le stock sous zéro
    (aucune ligne modifiée dans ce cas).
    """
    stmt = (
        update(Material)
        .where(Material.id == material_id)
        .values(qty_on_hand=Material.qty_on_hand + delta)
        .returning(Material.qty_on_hand)
        .execution_options(synchronize_session=False)
    )
    if delta < 0:
        stmt = stmt.where(Material.qty_on_hand >= -delta)

    qty_after = db.execute(stmt).scalar_one_or_none()

    if qty_after is None:
        current = db.execute(
            select(Material.qty_on_hand).where(Material.id == material_id)
        ).scalar_one_or_none()
        if current is None:
            raise MaterialNotFoundError(material_id)
        logger.warning(
            "stock_reversal_rejected",
            material_id=material_id,
            qty_on_hand=str(current),
            delta=str(delta),
        )
        raise NegativeStockError(material_id, current, -delta)

    _expire_cached_stock(db, material_id)
    return Decimal(qty_after)


def _signed(direction: MovementDirection, quantity: Decimal) -> Decimal:
    return quantity if direction is MovementDirection.in_ else -quantity


def _book_receipt(
    db: Session,
    purchase: PurchaseRecord,
    quantity: Decimal,
    qty_after: Decimal,
) -> StockMovement:
    mv = StockMovement(
        material_id=purchase.material_id,
        direction=MovementDirection.in_,
        reason=MovementReason.purchase_receipt,
        quantity=quantity,
        unit=purchase.unit,
        unit_cost=purchase.price_per_unit,
        total_cost=round2(quantity * purchase.price_per_unit),
        qty_after_snapshot=qty_after,
        notes=f"Automatic stock in from purchase: {purchase.supplier}",
    )
    purchase.movements.append(mv)
    db.flush()
    return mv


def _deactivate(db: Session, movement: StockMovement) -> None:
    # CAS: une seule transaction peut extourner une entrée donnée
    flipped = db.execute(
        update(StockMovement)
        .where(StockMovement.id == movement.id)
        .where(StockMovement.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    ).rowcount
    if flipped != 1:
        raise ConcurrentUpdateError(f"movement {movement.id} already reversed")
    set_committed_value(movement, "is_active", False)


def apply_purchase_receipt(db: Session, purchase: PurchaseRecord, quantity: Decimal) -> StockMovement:
    """Entrée IN liée à l'achat + incrément du stock, dans la transaction courante."""
    qty_after = apply_stock_delta(db, purchase.material_id, quantity)
    mv = _book_receipt(db, purchase, quantity, qty_after)

    logger.info(
        "stock_movement_applied",
        movement_id=mv.id,
        purchase_id=purchase.id,
        material_id=purchase.material_id,
        quantity=str(quantity),
        qty_after=str(qty_after),
    )
    return mv


def reverse_movement(db: Session, movement: StockMovement) -> Decimal:
    """
    Extourne: is_active -> False + variation inverse du stock.
    Retourne qty_on_hand après extourne.
    """
    _deactivate(db, movement)
    qty_after = apply_stock_delta(db, movement.material_id, -_signed(movement.direction, movement.quantity))

    logger.info(
        "stock_movement_reversed",
        movement_id=movement.id,
        purchase_id=movement.purchase_record_id,
        material_id=movement.material_id,
        quantity=str(movement.quantity),
        qty_after=str(qty_after),
    )
    return qty_after


def replace_purchase_receipt(
    db: Session,
    purchase: PurchaseRecord,
    movement: StockMovement,
    quantity: Decimal,
) -> StockMovement:
    """
    Réception corrigée sur la MÊME matière: l'ancienne entrée est extournée et une
    nouvelle est écrite, mais le stock ne bouge que de l'écart net (quantity - ancienne).
    Seul un écart négatif peut être refusé pour stock insuffisant.
    """
    if movement.material_id != purchase.material_id:
        raise ValueError("replace_purchase_receipt requires the same material")

    _deactivate(db, movement)
    net = quantity - movement.quantity
    qty_after = apply_stock_delta(db, purchase.material_id, net)
    mv = _book_receipt(db, purchase, quantity, qty_after)

    logger.info(
        "stock_movement_reapplied",
        movement_id=mv.id,
        replaced_movement_id=movement.id,
        purchase_id=purchase.id,
        material_id=purchase.material_id,
        quantity=str(quantity),
        net_delta=str(net),
        qty_after=str(qty_after),
    )
    return mv


def record_adjustment(
    db: Session,
    *,
    material_id: int,
    direction: MovementDirection,
    quantity: Decimal,
    reason: MovementReason = MovementReason.adjustment,
    notes: str | None = None,
    unit_cost: Decimal | None = None,
) -> StockMovement:
    """Mouvement manuel (hors achat): consommation production, correction d'inventaire..."""
    if reason is MovementReason.purchase_receipt:
        raise ValidationError("reason", "Purchase receipts are booked through purchase records", reason.value)

    quantity = quantity_value("quantity", quantity)
    if unit_cost is not None:
        unit_cost = price_value("unit_cost", unit_cost)
    material = get_material(db, material_id)

    qty_after = apply_stock_delta(db, material.id, _signed(direction, quantity))

    mv = StockMovement(
        material_id=material.id,
        purchase_record_id=None,
        direction=direction,
        reason=reason,
        quantity=quantity,
        unit=material.unit,
        unit_cost=unit_cost,
        total_cost=round2(quantity * unit_cost) if unit_cost is not None else None,
        qty_after_snapshot=qty_after,
        notes=notes,
    )
    db.add(mv)
    db.flush()

    logger.info(
        "stock_movement_applied",
        movement_id=mv.id,
        material_id=material.id,
        direction=direction.value,
        reason=reason.value,
        quantity=str(quantity),
        qty_after=str(qty_after),
    )
    return mv


def open_material(
    db: Session,
    *,
    code: str,
    name: str,
    unit: str = "pcs",
    opening_quantity: Decimal = Decimal("0"),
) -> Material:
    """
    Création catalogue. Le stock d'ouverture passe par le ledger (OPENING_BALANCE)
    pour que qty_on_hand == somme des mouvements actifs dès le départ.
    """
    code = code.strip()
    exists = db.execute(select(Material.id).where(Material.code == code)).scalar_one_or_none()
    if exists:
        raise MaterialCodeExistsError(code)

    material = Material(code=code, name=name.strip(), unit=unit, qty_on_hand=Decimal("0"))
    db.add(material)
    db.flush()

    if opening_quantity:
        record_adjustment(
            db,
            material_id=material.id,
            direction=MovementDirection.in_,
            quantity=opening_quantity,
            reason=MovementReason.opening_balance,
            notes="Opening balance",
        )
    return material


def list_movements(db: Session, material_id: int, *, include_reversed: bool = False) -> list[StockMovement]:
    get_material(db, material_id)
    stmt = (
        select(StockMovement)
        .where(StockMovement.material_id == material_id)
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
    )
    if not include_reversed:
        stmt = stmt.where(StockMovement.is_active.is_(True))
    return list(db.execute(stmt).scalars().all())


def ledger_balance(db: Session, material_id: int) -> Decimal:
    """Somme signée des mouvements actifs (source de vérité de l'audit)."""
    signed_qty = case(
        (StockMovement.direction == MovementDirection.in_, StockMovement.quantity),
        else_=-StockMovement.quantity,
    )
    total = db.execute(
        select(func.coalesce(func.sum(signed_qty), 0))
        .where(StockMovement.material_id == material_id)
        .where(StockMovement.is_active.is_(True))
    ).scalar_one()
    return Decimal(str(total)).quantize(QTY_STEP)


def stock_audit(db: Session, material_id: int) -> dict:
    """Lecture seule: compare le stock matérialisé au ledger. Ne corrige rien."""
    material = get_material(db, material_id)
    balance = ledger_balance(db, material_id)
    on_hand = Decimal(material.qty_on_hand)
    return {
        "material_id": material.id,
        "qty_on_hand": on_hand,
        "ledger_balance": balance,
        "difference": on_hand - balance,
        "in_sync": on_hand == balance,
    }
