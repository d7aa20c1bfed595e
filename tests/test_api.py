"""
HTTP API over the sample vendor export, priced at a pinned moment.
"""
import shutil

import pytest
from fastapi.testclient import TestClient

from dispensary_pricing.api import state
from dispensary_pricing.api.main import app
from dispensary_pricing.config.settings import Settings
from dispensary_pricing.services.pricing_service import PricingService

from conftest import NOW, SAMPLE_DATA


@pytest.fixture
def data_dir(tmp_path):
    target = tmp_path / 'data'
    target.mkdir()
    shutil.copy(SAMPLE_DATA / 'products.csv', target / 'products.csv')
    shutil.copy(SAMPLE_DATA / 'promotions.csv', target / 'promotions.csv')
    return target


@pytest.fixture
def service(tmp_path, data_dir, monkeypatch):
    for name in ('DISPENSARY_PRODUCTS_FILE', 'DISPENSARY_PROMOTIONS_FILE', 'DISPENSARY_TAX_RATE', 'DISPENSARY_VENDOR_ID'):
        monkeypatch.delenv(name, raising=False)
    settings = Settings.load(project_root=tmp_path)
    return PricingService(settings=settings, clock=lambda: NOW)


@pytest.fixture
def client(service):
    state.reset_state(service)
    yield TestClient(app)
    state.reset_state()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "online"


def test_price_with_category_promotion(client):
    response = client.post("/price", json={"product_id": "P-100", "quantity": 1})
    assert response.status_code == 200
    body = response.json()
    assert body["finalPrice"] == 28.0
    assert body["originalPrice"] == 35.0
    assert body["badge"] == {"text": "20% OFF", "color": "green"}
    assert body["appliedPromotion"]["id"] == "PR-FLOWER-20"


def test_price_prefers_higher_priority_tier_promotion(client):
    body = client.post("/price", json={"product_id": "P-101", "quantity": 28}).json()
    assert body["tierLabel"] == "1 oz"
    assert body["finalPrice"] == 6.75
    assert body["badge"]["text"] == "BULK"


def test_price_unknown_product(client):
    assert client.post("/price", json={"product_id": "NOPE"}).status_code == 404


def test_other_vendor_promotion_does_not_leak(client):
    body = client.post("/price", json={"product_id": "P-200"}).json()
    assert body["finalPrice"] == 40.0
    assert body["badge"] is None


def test_cart_quote(client):
    response = client.post("/cart/quote", json={"items": {"P-100": 2, "P-102": 1}, "tax_rate": 0.1})
    assert response.status_code == 200
    totals = response.json()["totals"]
    assert totals["subtotal"] == 71.0
    assert totals["promotion_discount"] == 19.0
    assert totals["tax"] == 7.1
    assert abs(totals["total"] - 78.1) < 0.01


def test_cart_quote_rejects_zero_quantity(client):
    response = client.post("/cart/quote", json={"items": {"P-100": 0}})
    assert response.status_code == 400


def test_cart_quote_unknown_product(client):
    assert client.post("/cart/quote", json={"items": {"NOPE": 1}}).status_code == 404


def test_menu_filters(client):
    body = client.get("/menu", params={"categories": "edibles"}).json()
    assert {p["product_id"] for p in body["products"]} == {"P-102", "P-201"}
    assert all(p["price"] == 15.0 for p in body["products"])

    body = client.get("/menu", params={"categories": "edibles", "vendor_id": "v1"}).json()
    assert [p["product_id"] for p in body["products"]] == ["P-102"]


def test_active_promotions(client):
    body = client.get("/promotions/active", params={"vendor_id": "v1"}).json()
    assert {p["id"] for p in body["promotions"]} == {"PR-FLOWER-20", "PR-GUMMY-5", "PR-OZ-10"}


def test_status(client):
    body = client.get("/system/status").json()
    assert body["products"] == 8
    assert body["promotions"] == 6
    assert body["load_errors"] == []


def test_missing_files_start_empty(tmp_path, monkeypatch):
    monkeypatch.delenv('DISPENSARY_PRODUCTS_FILE', raising=False)
    monkeypatch.delenv('DISPENSARY_PROMOTIONS_FILE', raising=False)
    service = PricingService(settings=Settings.load(project_root=tmp_path / 'empty'), clock=lambda: NOW)
    assert service.products == {}
    assert len(service.load_errors) == 2


def test_pos_session_flow(client):
    session_id = client.post("/api/pos/sessions", json={"vendor_id": "v1"}).json()["sessionId"]

    view = client.post(f"/api/pos/sessions/{session_id}/items", json={"product_id": "P-101", "quantity": 3.5}).json()
    item = view["items"][0]
    assert item["tierLabel"] == "1/8 oz"
    assert item["unitPrice"] == 8.0
    assert item["lineTotal"] == 28.0

    view = client.put(f"/api/pos/sessions/{session_id}/items/P-101", json={"quantity": 28}).json()
    assert view["items"][0]["unitPrice"] == 6.75

    response = client.post(
        f"/api/pos/sessions/{session_id}/items/P-101/discount",
        json={"discount_type": "percentage", "value": 10},
    )
    assert response.status_code == 200
    assert response.json()["items"][0]["lineTotal"] == pytest.approx(170.1)

    summary = client.post(f"/api/pos/sessions/{session_id}/checkout", json={}).json()
    assert summary["totals"]["total"] == pytest.approx(170.1)
    assert summary["promotion_ids"] == ["PR-OZ-10"]

    # Checkout retires the session
    assert client.get(f"/api/pos/sessions/{session_id}").status_code == 404
    assert state.get_registers() == {}
    assert client.get("/system/status").json()["sessions"] == 0


def test_pos_close_session(client):
    session_id = client.post("/api/pos/sessions", json={"vendor_id": "v1"}).json()["sessionId"]
    assert client.delete(f"/api/pos/sessions/{session_id}").status_code == 200
    assert client.get(f"/api/pos/sessions/{session_id}").status_code == 404
    assert client.delete(f"/api/pos/sessions/{session_id}").status_code == 404


def test_pos_errors(client):
    assert client.get("/api/pos/sessions/unknown").status_code == 404

    session_id = client.post("/api/pos/sessions", json={"vendor_id": "v1"}).json()["sessionId"]
    base = f"/api/pos/sessions/{session_id}"

    assert client.post(f"{base}/items", json={"product_id": "NOPE"}).status_code == 404
    assert client.post(f"{base}/items", json={"product_id": "P-100", "quantity": 0}).status_code == 400
    assert client.put(f"{base}/items/P-100", json={"quantity": 2}).status_code == 404
    assert client.post(f"{base}/checkout", json={}).status_code == 400

    client.post(f"{base}/items", json={"product_id": "P-100"})
    response = client.post(f"{base}/items/P-100/discount", json={"discount_type": "bogo", "value": 5})
    assert response.status_code == 400


def test_reload_reprices_open_sessions(client, data_dir):
    session_id = client.post("/api/pos/sessions", json={"vendor_id": "v1"}).json()["sessionId"]
    view = client.post(f"/api/pos/sessions/{session_id}/items", json={"product_id": "P-105"}).json()
    assert view["items"][0]["unitPrice"] == 15.0

    with open(data_dir / 'promotions.csv', 'a', encoding='utf-8') as f:
        f.write("PR-PIPE,Pipe Sale,v1,,product,percentage,30,P-105,,,,,,,,,,true,4,true\n")

    body = client.post("/promotions/reload").json()
    assert body["sessions_updated"] == 1
    assert body["promotions"] == 7

    item = client.get(f"/api/pos/sessions/{session_id}").json()["items"][0]
    assert item["unitPrice"] == 10.5
    assert item["badgeText"] == "30% OFF"


def test_set_promotions_broadcasts_to_registers(service):
    from dispensary_pricing.surfaces.pos import PosRegister

    register = PosRegister("v1", channel=service.channel, promotions=service.promotions_for_vendor("v1"), clock=service.clock)
    register.add_to_cart(service.get_product("P-105"), 1)

    delivered = service.set_promotions([
        {"id": "ALL-10", "vendor_id": "v1", "promotion_type": "global", "discount_type": "percentage", "discount_value": 10},
    ])

    assert delivered == 1
    assert register.session.cart.get_line("P-105").unit_price == 13.5
    register.close()


@pytest.mark.parametrize("quantity", ["NaN", "Infinity", "-Infinity"])
def test_non_finite_quantities_are_rejected(client, quantity):
    session_id = client.post("/api/pos/sessions", json={"vendor_id": "v1"}).json()["sessionId"]
    base = f"/api/pos/sessions/{session_id}"
    headers = {"content-type": "application/json"}

    response = client.post(f"{base}/items", content=f'{{"product_id": "P-100", "quantity": {quantity}}}', headers=headers)
    assert response.status_code in (400, 422)
    view = client.get(base)
    assert view.status_code == 200
    assert view.json()["items"] == []

    client.post(f"{base}/items", json={"product_id": "P-100", "quantity": 2})
    response = client.put(f"{base}/items/P-100", content=f'{{"quantity": {quantity}}}', headers=headers)
    assert response.status_code in (400, 422)
    assert client.get(base).json()["items"][0]["quantity"] == 2

    response = client.post("/cart/quote", content=f'{{"items": {{"P-100": {quantity}}}}}', headers=headers)
    assert response.status_code in (400, 422)


def test_quote_rejects_non_finite_quantity(service):
    with pytest.raises(ValueError):
        service.quote({"P-100": float("nan")})
    with pytest.raises(ValueError):
        service.quote({"P-100": float("inf")})
