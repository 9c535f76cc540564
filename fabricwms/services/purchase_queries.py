"""
Lecture seule sur les achats (listes, filtres, pagination). N'écrit jamais.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from fabricwms.app.db.models.core_types import PurchaseStatus
from fabricwms.app.db.models.models_v1 import PurchaseRecord

SORTABLE_FIELDS = {
    "id": PurchaseRecord.id,
    "material_id": PurchaseRecord.material_id,
    "supplier": PurchaseRecord.supplier,
    "quantity": PurchaseRecord.quantity,
    "unit": PurchaseRecord.unit,
    "price_per_unit": PurchaseRecord.price_per_unit,
    "total_cost": PurchaseRecord.total_cost,
    "purchase_date": PurchaseRecord.purchase_date,
    "invoice_number": PurchaseRecord.invoice_number,
    "status": PurchaseRecord.status,
    "delivery_date": PurchaseRecord.delivery_date,
    "received_quantity": PurchaseRecord.received_quantity,
    "created_at": PurchaseRecord.created_at,
    "updated_at": PurchaseRecord.updated_at,
}
DEFAULT_SORT = "purchase_date"


@dataclass
class PurchaseFilters:
    status: PurchaseStatus | None = None
    supplier: str | None = None
    material_id: int | None = None
    start_date: date | None = None
    end_date: date | None = None


@dataclass
class PurchasePage:
    items: list[PurchaseRecord]
    page: int
    limit: int
    total_count: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.limit) if self.limit else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1


def _base_query():
    return (
        select(PurchaseRecord)
        .where(PurchaseRecord.is_active.is_(True))
        .options(selectinload(PurchaseRecord.material))
    )


def _apply_filters(stmt, filters: PurchaseFilters):
    if filters.status is not None:
        stmt = stmt.where(PurchaseRecord.status == filters.status)
    if filters.supplier:
        stmt = stmt.where(PurchaseRecord.supplier.ilike(f"%{filters.supplier.strip()}%"))
    if filters.material_id is not None:
        stmt = stmt.where(PurchaseRecord.material_id == filters.material_id)
    if filters.start_date is not None:
        stmt = stmt.where(PurchaseRecord.purchase_date >= filters.start_date)
    if filters.end_date is not None:
        stmt = stmt.where(PurchaseRecord.purchase_date <= filters.end_date)
    return stmt


def list_purchases(
    db: Session,
    filters: PurchaseFilters,
    *,
    page: int = 1,
    limit: int = 20,
    sort_by: str = DEFAULT_SORT,
    sort_order: str = "desc",
) -> PurchasePage:
    # tri inconnu -> purchase_date desc (pas d'erreur)
    column = SORTABLE_FIELDS.get(sort_by, SORTABLE_FIELDS[DEFAULT_SORT])
    direction = sort_order.lower() if sort_order and sort_order.lower() in ("asc", "desc") else "desc"
    order = column.asc() if direction == "asc" else column.desc()

    stmt = _apply_filters(_base_query(), filters)
    count_stmt = _apply_filters(
        select(func.count(PurchaseRecord.id)).where(PurchaseRecord.is_active.is_(True)),
        filters,
    )

    total_count = db.execute(count_stmt).scalar_one()
    rows = (
        db.execute(
            stmt.order_by(order, PurchaseRecord.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return PurchasePage(items=list(rows), page=page, limit=limit, total_count=total_count)


def purchases_by_material(db: Session, material_id: int, *, limit: int = 10) -> list[PurchaseRecord]:
    stmt = (
        _base_query()
        .where(PurchaseRecord.material_id == material_id)
        .order_by(PurchaseRecord.purchase_date.desc(), PurchaseRecord.id.desc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


def purchases_by_supplier(db: Session, supplier: str, *, limit: int = 10) -> list[PurchaseRecord]:
    stmt = (
        _base_query()
        .where(PurchaseRecord.supplier.ilike(f"%{supplier.strip()}%"))
        .order_by(PurchaseRecord.purchase_date.desc(), PurchaseRecord.id.desc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


def purchases_by_date_range(db: Session, start_date: date, end_date: date) -> list[PurchaseRecord]:
    stmt = (
        _base_query()
        .where(PurchaseRecord.purchase_date >= start_date)
        .where(PurchaseRecord.purchase_date <= end_date)
        .order_by(PurchaseRecord.purchase_date.desc(), PurchaseRecord.id.desc())
    )
    return list(db.execute(stmt).scalars().all())
