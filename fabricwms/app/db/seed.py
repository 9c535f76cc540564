from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from fabricwms.app.core.logging import configure_logging, get_logger
from fabricwms.app.db.models.core_types import PurchaseStatus
from fabricwms.app.db.models.models_v1 import Material, PurchaseRecord
from fabricwms.app.db.session import SessionLocal, atomic
from fabricwms.services import procurement
from fabricwms.services.inventory import open_material

logger = get_logger(__name__)

# matière -> historique d'achats (le stock vient UNIQUEMENT des réceptions)
DEMO_DATA = [
    {
        "material": {"code": "FAB-CHIFFON", "name": "Chiffon Fabric", "unit": "meter"},
        "purchases": [
            ("Premium Textile Indonesia", "60", "45000", date(2024, 1, 15), PurchaseStatus.received),
            ("Premium Textile Indonesia", "40", "47000", date(2024, 2, 10), PurchaseStatus.received),
        ],
    },
    {
        "material": {"code": "FAB-VOILE", "name": "Voile Fabric", "unit": "meter"},
        "purchases": [
            ("Hijab Fabric Supplier", "100", "35000", date(2024, 1, 20), PurchaseStatus.received),
            ("Hijab Fabric Supplier", "50", "36000", date(2024, 2, 5), PurchaseStatus.pending),
        ],
    },
    {
        "material": {"code": "ACC-PINS", "name": "Hijab Pins", "unit": "pcs"},
        "purchases": [
            ("Accessories Wholesale", "500", "500", date(2024, 1, 25), PurchaseStatus.received),
        ],
    },
    {
        "material": {"code": "TRM-LACE", "name": "Lace Trim", "unit": "meter"},
        "purchases": [],
    },
]


def _seed_material(db: Session, data: dict) -> tuple[Material, bool]:
    material = db.scalar(select(Material).where(Material.code == data["code"]))
    if material:
        return material, False
    return open_material(db, code=data["code"], name=data["name"], unit=data["unit"]), True


def run_seed(db: Session | None = None) -> dict[str, int]:
    """Idempotent: matières absentes + achats absents (matière, fournisseur, date)."""
    owns_session = db is None
    db = db or SessionLocal()
    counts = {"materials": 0, "purchases": 0}
    try:
        with atomic(db, "seed"):
            for entry in DEMO_DATA:
                material, created = _seed_material(db, entry["material"])
                counts["materials"] += int(created)

                for supplier, qty, price, purchase_date, status in entry["purchases"]:
                    exists = db.scalar(
                        select(PurchaseRecord.id)
                        .where(PurchaseRecord.material_id == material.id)
                        .where(PurchaseRecord.supplier == supplier)
                        .where(PurchaseRecord.purchase_date == purchase_date)
                    )
                    if exists:
                        continue

                    purchase = procurement.create_purchase(
                        db,
                        material_id=material.id,
                        supplier=supplier,
                        quantity=Decimal(qty),
                        price_per_unit=Decimal(price),
                        purchase_date=purchase_date,
                        notes=f"Sample purchase data for {material.name}",
                    )
                    if status is not PurchaseStatus.pending:
                        procurement.change_status(db, purchase.id, status)
                    counts["purchases"] += 1

        logger.info("seed_completed", **counts)
        return counts
    finally:
        if owns_session:
            db.close()


if __name__ == "__main__":
    configure_logging()
    run_seed()
