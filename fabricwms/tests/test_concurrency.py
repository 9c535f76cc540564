import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from fabricwms.app.db.base import Base
from fabricwms.app.db.models.models_v1 import Material
from fabricwms.app.db.session import atomic, create_db_engine
from fabricwms.services import inventory, procurement


@pytest.fixture
def file_engine(tmp_path):
    """Vraie base fichier: chaque thread a sa connexion et ses commits réels."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


def test_concurrent_receipts_on_same_material_are_not_lost(file_engine):
    """
    GIVEN 2 achats PENDING (10 et 15) sur la même matière à 100
    WHEN 2 requêtes concurrentes les passent en RECEIVED
    THEN stock = 125 (aucune mise à jour perdue), ledger cohérent
    """
    SessionFactory = sessionmaker(bind=file_engine, autoflush=False)

    # ---------- ARRANGE ----------
    with SessionFactory() as db:
        with atomic(db):
            material = inventory.open_material(
                db, code="FAB-CHIFFON", name="Chiffon Fabric", unit="meter", opening_quantity=Decimal("100")
            )
        purchase_ids = []
        for qty in ("10", "15"):
            with atomic(db):
                purchase = procurement.create_purchase(
                    db,
                    material_id=material.id,
                    supplier="Premium Textile Indonesia",
                    quantity=Decimal(qty),
                    price_per_unit=Decimal("45000"),
                    purchase_date=date(2024, 1, 15),
                )
            purchase_ids.append(purchase.id)
        material_id = material.id

    # ---------- ACT ----------
    barrier = threading.Barrier(len(purchase_ids))

    def receive(purchase_id):
        barrier.wait()
        with SessionFactory() as db:
            with atomic(db, "update_purchase_status"):
                procurement.change_status(db, purchase_id, "RECEIVED")

    with ThreadPoolExecutor(max_workers=len(purchase_ids)) as pool:
        # .result() relance l'exception éventuelle du thread
        for future in [pool.submit(receive, pid) for pid in purchase_ids]:
            future.result()

    # ---------- ASSERT ----------
    with SessionFactory() as db:
        assert db.get(Material, material_id).qty_on_hand == Decimal("125")
        audit = inventory.stock_audit(db, material_id)
        assert audit["in_sync"] is True
        for pid in purchase_ids:
            assert procurement.get_purchase(db, pid).active_movement is not None
