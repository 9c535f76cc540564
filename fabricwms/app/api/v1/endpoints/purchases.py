from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fabricwms.app.api.deps import get_db
from fabricwms.app.core.config import get_settings
from fabricwms.app.db.session import atomic
from fabricwms.app.schemas.purchase import (
    Pagination,
    PurchaseCreate,
    PurchaseDeleted,
    PurchaseDetail,
    PurchaseList,
    PurchaseRead,
    PurchaseStatusUpdate,
    PurchaseUpdate,
)
from fabricwms.services import procurement, purchase_queries
from fabricwms.services.exceptions import ValidationError
from fabricwms.services.purchase_queries import PurchaseFilters

router = APIRouter(prefix="/purchases")


def _checked_limit(limit: int) -> int:
    # lu à chaque requête: PURCHASE_LIST_MAX_LIMIT suit get_settings()
    max_limit = get_settings().purchase_list_max_limit
    if limit > max_limit:
        raise ValidationError("limit", f"limit must be less than or equal to {max_limit}", limit)
    return limit


# ---------- READ (hors moteur) ----------
@router.get("", response_model=PurchaseList)
def list_purchases(
    status: str | None = None,
    supplier: str | None = None,
    material_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
    sort_by: str = "purchase_date",
    sort_order: str = "desc",
    db: Session = Depends(get_db),
):
    filters = PurchaseFilters(
        status=procurement.parse_status(status) if status else None,
        supplier=supplier,
        material_id=material_id,
        start_date=start_date,
        end_date=end_date,
    )
    result = purchase_queries.list_purchases(
        db,
        filters,
        page=page,
        limit=_checked_limit(limit),
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return PurchaseList(
        items=[PurchaseRead.model_validate(p) for p in result.items],
        pagination=Pagination(
            current_page=result.page,
            total_pages=result.total_pages,
            total_count=result.total_count,
            has_next_page=result.has_next_page,
            has_prev_page=result.has_prev_page,
        ),
    )


@router.get("/by-material/{material_id}", response_model=list[PurchaseRead])
def list_purchases_by_material(
    material_id: int,
    limit: int = Query(default=10, ge=1),
    db: Session = Depends(get_db),
):
    rows = purchase_queries.purchases_by_material(db, material_id, limit=_checked_limit(limit))
    return [PurchaseRead.model_validate(p) for p in rows]


@router.get("/by-supplier/{supplier}", response_model=list[PurchaseRead])
def list_purchases_by_supplier(
    supplier: str,
    limit: int = Query(default=10, ge=1),
    db: Session = Depends(get_db),
):
    rows = purchase_queries.purchases_by_supplier(db, supplier, limit=_checked_limit(limit))
    return [PurchaseRead.model_validate(p) for p in rows]


@router.get("/by-date-range", response_model=list[PurchaseRead])
def list_purchases_by_date_range(
    start_date: date,
    end_date: date,
    db: Session = Depends(get_db),
):
    rows = purchase_queries.purchases_by_date_range(db, start_date, end_date)
    return [PurchaseRead.model_validate(p) for p in rows]


@router.get("/{purchase_id}", response_model=PurchaseDetail)
def get_purchase(purchase_id: int, db: Session = Depends(get_db)):
    purchase = procurement.get_purchase(db, purchase_id)
    return PurchaseDetail.model_validate(purchase)


# ---------- WRITE (moteur de réconciliation) ----------
@router.post("", status_code=201, response_model=PurchaseRead)
def create_purchase(payload: PurchaseCreate, db: Session = Depends(get_db)):
    with atomic(db, "create_purchase"):
        purchase = procurement.create_purchase(db, **payload.model_dump())
    return PurchaseRead.model_validate(purchase)


@router.put("/{purchase_id}", response_model=PurchaseDetail)
def update_purchase(purchase_id: int, payload: PurchaseUpdate, db: Session = Depends(get_db)):
    with atomic(db, "update_purchase"):
        purchase = procurement.update_purchase(db, purchase_id, payload.model_dump(exclude_unset=True))
    return PurchaseDetail.model_validate(purchase)


@router.patch("/{purchase_id}/status", response_model=PurchaseDetail)
def update_purchase_status(
    purchase_id: int,
    payload: PurchaseStatusUpdate,
    db: Session = Depends(get_db),
):
    with atomic(db, "update_purchase_status"):
        purchase = procurement.change_status(db, purchase_id, payload.status)
    return PurchaseDetail.model_validate(purchase)


@router.delete("/{purchase_id}", response_model=PurchaseDeleted)
def delete_purchase(purchase_id: int, db: Session = Depends(get_db)):
    with atomic(db, "delete_purchase"):
        purchase = procurement.delete_purchase(db, purchase_id)
    return PurchaseDeleted(id=purchase.id)
