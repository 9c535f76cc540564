from decimal import Decimal

from sqlalchemy import select

from fabricwms.app.db.models.models_v1 import Material
from fabricwms.app.db.seed import run_seed
from fabricwms.services import inventory


def test_seed_books_stock_through_purchases(db_session):
    counts = run_seed(db_session)

    assert counts == {"materials": 4, "purchases": 5}

    chiffon = db_session.scalar(select(Material).where(Material.code == "FAB-CHIFFON"))
    voile = db_session.scalar(select(Material).where(Material.code == "FAB-VOILE"))
    assert chiffon.qty_on_hand == Decimal("100")
    # l'achat PENDING n'entre pas en stock
    assert voile.qty_on_hand == Decimal("100")

    for material in db_session.scalars(select(Material)).all():
        assert inventory.stock_audit(db_session, material.id)["in_sync"]


def test_seed_is_idempotent(db_session):
    run_seed(db_session)

    assert run_seed(db_session) == {"materials": 0, "purchases": 0}
