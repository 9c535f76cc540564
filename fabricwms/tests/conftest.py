import os
import tempfile
from datetime import date
from decimal import Decimal

# Base SQLite jetable AVANT tout import applicatif (engine créé à l'import)
_TEST_DB_DIR = tempfile.mkdtemp(prefix="fabricwms-tests-")
os.environ["DATABASE_URL"] = os.getenv(
    "FABRICWMS_TEST_DATABASE_URL",
    f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}",
)
os.environ.setdefault("APP_ENV", "test")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from fabricwms.app.api.deps import get_db  # noqa: E402
from fabricwms.app.db.base import Base  # noqa: E402
from fabricwms.app.db.models import models_v1  # noqa: F401,E402
from fabricwms.app.db.session import atomic, engine  # noqa: E402
from fabricwms.app.main import app  # noqa: E402
from fabricwms.services import inventory, procurement  # noqa: E402

PURCHASE_DATE = date(2024, 1, 15)


@pytest.fixture(scope="session", autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Session DB isolée par test.

    Transaction englobante + SAVEPOINT par commit():
    TOUT est rollback à la fin du test, même après commit().
    """
    connection = engine.connect()
    transaction = connection.begin()

    session = Session(bind=connection, autoflush=False, join_transaction_mode="create_savepoint")

    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def client(db_session):
    def _get_test_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_test_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_material(db_session):
    counter = {"n": 0}

    def _make(opening_quantity="0", unit="m", code=None, name="Cotton fabric"):
        counter["n"] += 1
        with atomic(db_session, "test_material"):
            material = inventory.open_material(
                db_session,
                code=code or f"TEST-MAT-{counter['n']:03d}",
                name=name,
                unit=unit,
                opening_quantity=Decimal(opening_quantity),
            )
        return material

    return _make


@pytest.fixture
def make_purchase(db_session):
    def _make(material, quantity="10", price_per_unit="5", supplier="Premium Textile", **extra):
        extra.setdefault("purchase_date", PURCHASE_DATE)
        with atomic(db_session, "test_purchase"):
            purchase = procurement.create_purchase(
                db_session,
                material_id=material.id,
                supplier=supplier,
                quantity=Decimal(quantity),
                price_per_unit=Decimal(price_per_unit),
                **extra,
            )
        return purchase

    return _make


@pytest.fixture
def set_status(db_session):
    def _set(purchase, status):
        with atomic(db_session, "test_status"):
            return procurement.change_status(db_session, purchase.id, status)

    return _set