from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from fabricwms.app.core.config import get_settings
from fabricwms.services import inventory


def _purchase_payload(material_id, **overrides):
    payload = {
        "material_id": material_id,
        "supplier": "Premium Textile Indonesia",
        "quantity": "10",
        "price_per_unit": "5",
        "purchase_date": "2024-01-15",
    }
    payload.update(overrides)
    return payload


def _stock(client, material_id):
    resp = client.get(f"/v1/materials/{material_id}")
    assert resp.status_code == 200, resp.text
    return Decimal(resp.json()["qty_on_hand"])


@pytest.fixture
def material(make_material):
    return make_material(opening_quantity="100")


@pytest.fixture
def purchase_id(client, material):
    resp = client.post("/v1/purchases", json=_purchase_payload(material.id))
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


def test_create_purchase(client, material):
    resp = client.post("/v1/purchases", json=_purchase_payload(material.id, invoice_number="INV-42"))

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "PENDING"
    assert Decimal(body["total_cost"]) == Decimal("50")
    assert body["invoice_number"] == "INV-42"
    assert body["material"]["code"] == material.code
    assert _stock(client, material.id) == Decimal("100")


def test_create_purchase_validation_errors_are_400(client, material):
    resp = client.post("/v1/purchases", json=_purchase_payload(material.id, quantity="-3"))

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["retryable"] is False
    assert body["details"]["errors"][0]["field"] == "quantity"


def test_create_purchase_unknown_material_is_404(client):
    resp = client.post("/v1/purchases", json=_purchase_payload(31337))

    assert resp.status_code == 404
    assert resp.json()["error"] == "MATERIAL_NOT_FOUND"


def test_receive_and_cancel_through_status_endpoint(client, material, purchase_id):
    resp = client.patch(f"/v1/purchases/{purchase_id}/status", json={"status": "received"})

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "RECEIVED"
    assert body["active_movement"]["direction"] == "IN"
    assert Decimal(body["active_movement"]["quantity"]) == Decimal("10")
    assert _stock(client, material.id) == Decimal("110")

    resp = client.patch(f"/v1/purchases/{purchase_id}/status", json={"status": "CANCELLED"})

    assert resp.status_code == 200
    assert resp.json()["active_movement"] is None
    assert _stock(client, material.id) == Decimal("100")


def test_invalid_status_is_400(client, purchase_id):
    resp = client.patch(f"/v1/purchases/{purchase_id}/status", json={"status": "SHIPPED"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"


def test_negative_stock_reversal_is_409(client, make_material):
    material = make_material()
    created = client.post("/v1/purchases", json=_purchase_payload(material.id)).json()
    client.patch(f"/v1/purchases/{created['id']}/status", json={"status": "RECEIVED"})
    consumed = client.post(
        f"/v1/materials/{material.id}/movements",
        json={"direction": "OUT", "quantity": "5", "reason": "PRODUCTION"},
    )
    assert consumed.status_code == 201, consumed.text

    resp = client.patch(f"/v1/purchases/{created['id']}/status", json={"status": "PENDING"})

    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "NEGATIVE_STOCK"
    assert body["retryable"] is False
    assert "negative stock" in body["detail"]

    after = client.get(f"/v1/purchases/{created['id']}").json()
    assert after["status"] == "RECEIVED"
    assert after["active_movement"] is not None
    assert _stock(client, material.id) == Decimal("5")


def test_put_edits_received_purchase(client, material, purchase_id):
    client.patch(f"/v1/purchases/{purchase_id}/status", json={"status": "RECEIVED"})

    resp = client.put(f"/v1/purchases/{purchase_id}", json={"quantity": "12", "supplier": "Other"})

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["supplier"] == "Other"
    assert Decimal(body["total_cost"]) == Decimal("60")
    assert Decimal(body["active_movement"]["quantity"]) == Decimal("12")
    assert _stock(client, material.id) == Decimal("112")


def test_put_rejects_unknown_fields(client, purchase_id):
    resp = client.put(f"/v1/purchases/{purchase_id}", json={"total_cost": "1"})

    assert resp.status_code == 400


def test_put_unknown_purchase_is_404(client):
    resp = client.put("/v1/purchases/99999", json={"notes": "x"})

    assert resp.status_code == 404
    assert resp.json()["error"] == "PURCHASE_NOT_FOUND"


def test_delete_rules(client, material, purchase_id):
    other = client.post("/v1/purchases", json=_purchase_payload(material.id)).json()
    client.patch(f"/v1/purchases/{other['id']}/status", json={"status": "RECEIVED"})

    refused = client.delete(f"/v1/purchases/{other['id']}")
    assert refused.status_code == 400
    assert refused.json()["error"] == "PURCHASE_HAS_MOVEMENTS"
    assert client.get(f"/v1/purchases/{other['id']}").status_code == 200

    deleted = client.delete(f"/v1/purchases/{purchase_id}")
    assert deleted.status_code == 200
    assert deleted.json() == {"id": purchase_id, "deleted": True}
    assert client.get(f"/v1/purchases/{purchase_id}").status_code == 404


def test_list_filters_and_pagination(client, make_material):
    cotton = make_material()
    silk = make_material(name="Silk fabric")
    for day, supplier in [(10, "Alpha Textile"), (11, "Beta Fabrics"), (12, "Alpha Textile")]:
        client.post(
            "/v1/purchases",
            json=_purchase_payload(cotton.id, supplier=supplier, purchase_date=f"2024-03-{day}"),
        )
    client.post("/v1/purchases", json=_purchase_payload(silk.id, purchase_date="2024-04-01"))

    resp = client.get("/v1/purchases", params={"material_id": cotton.id, "limit": 2})
    body = resp.json()
    assert resp.status_code == 200
    assert [p["purchase_date"] for p in body["items"]] == ["2024-03-12", "2024-03-11"]
    assert body["pagination"] == {
        "current_page": 1,
        "total_pages": 2,
        "total_count": 3,
        "has_next_page": True,
        "has_prev_page": False,
    }

    resp = client.get("/v1/purchases", params={"supplier": "alpha", "sort_order": "asc"})
    assert [p["purchase_date"] for p in resp.json()["items"]] == ["2024-03-10", "2024-03-12"]

    resp = client.get("/v1/purchases", params={"status": "pending", "sort_by": "nope"})
    assert resp.json()["pagination"]["total_count"] == 4
    assert resp.json()["items"][0]["purchase_date"] == "2024-04-01"


def test_list_limit_is_capped(client):
    resp = client.get("/v1/purchases", params={"limit": 10_000})

    assert resp.status_code == 400


def test_list_by_material_supplier_and_dates(client, material):
    client.post("/v1/purchases", json=_purchase_payload(material.id, purchase_date="2024-02-01"))
    client.post(
        "/v1/purchases",
        json=_purchase_payload(material.id, supplier="Hijab Fabric Supplier", purchase_date="2024-02-20"),
    )

    by_material = client.get(f"/v1/purchases/by-material/{material.id}", params={"limit": 1})
    assert [p["purchase_date"] for p in by_material.json()] == ["2024-02-20"]

    by_supplier = client.get("/v1/purchases/by-supplier/hijab")
    assert [p["supplier"] for p in by_supplier.json()] == ["Hijab Fabric Supplier"]

    by_dates = client.get(
        "/v1/purchases/by-date-range",
        params={"start_date": "2024-02-01", "end_date": "2024-02-10"},
    )
    assert [p["purchase_date"] for p in by_dates.json()] == ["2024-02-01"]


def test_by_date_range_requires_both_bounds(client):
    resp = client.get("/v1/purchases/by-date-range", params={"start_date": "2024-02-01"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"


@pytest.mark.parametrize(
    "field,value",
    [("price_per_unit", "0.001"), ("quantity", "0.0004")],
)
def test_values_finer_than_storage_scale_are_400(client, material, field, value):
    resp = client.post("/v1/purchases", json=_purchase_payload(material.id, **{field: value}))

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["details"]["errors"][0]["field"] == field
    assert client.get("/v1/purchases").json()["pagination"]["total_count"] == 0


def test_storage_failure_during_receipt_is_503_and_leaves_nothing_behind(
    client, material, purchase_id, monkeypatch
):
    """
    GIVEN achat PENDING de 10 sur une matière à 100
    WHEN la base lâche APRÈS l'incrément du stock et l'écriture de l'entrée
    THEN 503 rejouable, et statut, ledger et stock inchangés
    """
    real_receipt = inventory.apply_purchase_receipt

    def receipt_then_lock_timeout(db, purchase, quantity):
        real_receipt(db, purchase, quantity)
        raise OperationalError("UPDATE materials ...", {}, Exception("database is locked"))

    monkeypatch.setattr(inventory, "apply_purchase_receipt", receipt_then_lock_timeout)

    resp = client.patch(f"/v1/purchases/{purchase_id}/status", json={"status": "RECEIVED"})

    assert resp.status_code == 503
    assert resp.headers["Retry-After"] == "1"
    body = resp.json()
    assert body["error"] == "TRANSIENT_STORAGE_ERROR"
    assert body["retryable"] is True

    monkeypatch.undo()
    after = client.get(f"/v1/purchases/{purchase_id}").json()
    assert after["status"] == "PENDING"
    assert after["active_movement"] is None
    assert _stock(client, material.id) == Decimal("100")
    history = client.get(
        f"/v1/materials/{material.id}/movements",
        params={"include_reversed": True},
    ).json()
    assert [m["reason"] for m in history] == ["OPENING_BALANCE"]

    # rejouer la même requête réussit
    retried = client.patch(f"/v1/purchases/{purchase_id}/status", json={"status": "RECEIVED"})
    assert retried.status_code == 200
    assert _stock(client, material.id) == Decimal("110")


def test_list_limit_follows_current_settings(client, monkeypatch):
    monkeypatch.setenv("PURCHASE_LIST_MAX_LIMIT", "5")
    get_settings.cache_clear()
    try:
        assert client.get("/v1/purchases", params={"limit": 5}).status_code == 200

        resp = client.get("/v1/purchases", params={"limit": 6})
        assert resp.status_code == 400
        assert resp.json()["details"]["field"] == "limit"
    finally:
        monkeypatch.delenv("PURCHASE_LIST_MAX_LIMIT")
        get_settings.cache_clear()
