import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tablepos.core.database import Base, get_db
from tablepos.core.metrics import order_metrics
from tablepos.engine.consolidation import ORDER_ITEMS_APPENDED, ORDER_OPENED, TableLockRegistry
from tablepos.models import Order, Payment
from tablepos.routers.ordering import router as ordering_router
from tablepos.services.event_bus import ANY_EVENT, event_bus
from tests.fixtures_data import BURGER, SIZE_GROUP, TOPPINGS_GROUP, seed_catalog

COUPONS = {
    "SAVE10": "10%",
    "BIG": '{"type": "percent", "value": 20, "min_subtotal": 30, "label": "20% off big orders"}',
}


def _build(with_locks: bool = True):
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    seed_catalog(db, tax_rate="6", coupons=COUPONS)

    app = FastAPI()
    if with_locks:
        app.state.table_locks = TableLockRegistry()
    app.include_router(ordering_router)
    app.dependency_overrides[get_db] = lambda: db
    return TestClient(app), db


def _build_client() -> TestClient:
    client, _ = _build()
    return client

def _burger(size_option: int = 101, quantity: int = 1, toppings=None) -> dict:
    selections = {str(SIZE_GROUP.id): [size_option]}
    if toppings:
        selections[str(TOPPINGS_GROUP.id)] = toppings
    return {"product_id": BURGER.id, "quantity": quantity, "selections": selections}


def test_product_modifiers_are_resolved():
    client = _build_client()

    response = client.get(f"/api/products/{BURGER.id}/modifiers")

    assert response.status_code == 200
    body = response.json()
    assert [group["id"] for group in body["groups"]] == [30, SIZE_GROUP.id, TOPPINGS_GROUP.id]
    size = body["groups"][1]
    assert size["selection_kind"] == "single"
    assert size["max_choices"] == 1
    assert [option["name"] for option in size["options"]] == ["Regular", "Large"]


def test_unknown_product_has_no_modifiers():
    client = _build_client()

    response = client.get("/api/products/9999/modifiers")

    assert response.status_code == 200
    assert response.json() == {"product_id": 9999, "groups": []}


def test_line_item_is_priced_server_side():
    client = _build_client()

    response = client.post("/api/pricing/line-items", json=_burger(size_option=102, quantity=2))

    assert response.status_code == 200
    line_item = response.json()["line_item"]
    assert line_item["unit_price"] == "12.00"
    assert line_item["line_total"] == "24.00"
    assert line_item["selections"][0]["option_name"] == "Large"


def test_client_supplied_price_is_rejected():
    client = _build_client()
    payload = {**_burger(), "unit_price": "0.01"}

    response = client.post("/api/pricing/line-items", json=payload)

    assert response.status_code == 422


def test_too_many_toppings_is_rejected_with_details():
    client = _build_client()

    response = client.post("/api/pricing/line-items", json=_burger(toppings=[201, 202, 203]))

    assert response.status_code == 422
    errors = response.json()["detail"]["errors"]
    assert errors[0]["kind"] == "too_many_choices"
    assert errors[0]["group_id"] == TOPPINGS_GROUP.id


def test_pricing_unknown_product_is_not_found():
    client = _build_client()

    response = client.post("/api/pricing/line-items", json={"product_id": 300, "quantity": 1})

    assert response.status_code == 404


def test_order_totals_with_coupon_and_tax():
    client = _build_client()

    response = client.post(
        "/api/pricing/orders",
        json={"items": [_burger(quantity=5)], "coupon_code": "save10"},
    )

    assert response.status_code == 200
    assert response.json()["totals"] == {
        "subtotal": "50.00",
        "discount": "5.00",
        "tax": "2.70",
        "total": "47.70",
        "paid": "0.00",
    }


def test_invalid_coupon_can_be_ignored_when_pricing():
    client = _build_client()
    payload = {"items": [_burger()], "coupon_code": "NOPE"}

    strict = client.post("/api/pricing/orders", json=payload)
    lenient = client.post("/api/pricing/orders", json={**payload, "ignore_invalid_coupon": True})

    assert strict.status_code == 422
    assert strict.json()["detail"]["kind"] == "not_found"
    assert lenient.status_code == 200
    assert lenient.json()["totals"]["discount"] == "0.00"


def test_coupon_validation_errors():
    client = _build_client()

    missing = client.post("/api/coupons/validate", json={"code": "  "})
    unknown = client.post("/api/coupons/validate", json={"code": "NOPE"})
    too_small = client.post("/api/coupons/validate", json={"code": "big", "subtotal": "10"})
    valid = client.post("/api/coupons/validate", json={"code": "big", "subtotal": "45"})

    assert missing.status_code == 400
    assert unknown.status_code == 404
    assert too_small.status_code == 422
    assert valid.status_code == 200
    assert valid.json() == {"code": "BIG", "type": "percent", "value": "20", "label": "20% off big orders"}


def test_submissions_for_one_table_share_an_open_order():
    client = _build_client()
    received = []

    def _handler(event_name, payload):
        received.append((event_name, payload["table_id"]))

    event_bus.subscribe(ANY_EVENT, _handler)
    try:
        first = client.post("/api/tables/T5/orders", json={"items": [_burger(quantity=2)]})
        second = client.post(
            "/api/tables/T5/orders",
            json={"items": [_burger(size_option=102, toppings=[201])], "channel": "pos"},
        )
    finally:
        event_bus.unsubscribe(ANY_EVENT, _handler)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["order"]["id"] == first.json()["order"]["id"]
    assert received == [(ORDER_OPENED, "T5"), (ORDER_ITEMS_APPENDED, "T5")]

    open_order = client.get("/api/tables/T5/open-order").json()
    assert open_order["order_number"].startswith("POS-")
    assert len(open_order["line_items"]) == 2
    # 20.00 + 13.50
    assert open_order["totals"]["subtotal"] == "33.50"


def test_rejected_submission_opens_nothing():
    client = _build_client()

    response = client.post(
        "/api/tables/T2/orders",
        json={"items": [_burger(), {"product_id": BURGER.id, "quantity": 1}]},
    )

    assert response.status_code == 422
    assert response.json()["detail"]["errors"][0]["line"] == 1
    assert client.get("/api/tables/T2/open-order").status_code == 404


def test_payment_closes_the_table_and_records_the_method():
    client, db = _build()
    client.post("/api/tables/T7/orders", json={"items": [_burger()]})

    paid = client.post("/api/tables/T7/open-order/pay", json={"paid_amount": "10.60", "payment_method": " Card "})

    assert paid.status_code == 200
    body = paid.json()
    assert body["status"] == "completed"
    assert body["totals"]["paid"] == "10.60"
    assert body["payment_method"] == "card"
    payments = db.query(Payment).filter(Payment.order_id == body["id"]).all()
    assert [(str(payment.amount), payment.method) for payment in payments] == [("10.60", "card")]
    assert db.query(Order).filter(Order.id == body["id"]).one().payment_method == "card"
    assert client.get("/api/tables/T7/open-order").status_code == 404
    assert client.post("/api/tables/T7/open-order/cancel").status_code == 404


def test_payment_requires_a_method():
    client = _build_client()
    client.post("/api/tables/T8/orders", json={"items": [_burger()]})

    missing = client.post("/api/tables/T8/open-order/pay", json={"paid_amount": "10.60"})
    blank = client.post("/api/tables/T8/open-order/pay", json={"paid_amount": "10.60", "payment_method": "  "})

    assert missing.status_code == 422
    assert blank.status_code == 422
    assert client.get("/api/tables/T8/open-order").json()["status"] == "open"


def test_blank_table_id_is_rejected():
    client = _build_client()

    submitted = client.post("/api/tables/%20/orders", json={"items": [_burger()]})
    fetched = client.get("/api/tables/%20/open-order")
    paid = client.post("/api/tables/%20/open-order/pay", json={"paid_amount": "1", "payment_method": "cash"})
    cancelled = client.post("/api/tables/%20/open-order/cancel")

    assert submitted.status_code == 422
    assert submitted.json()["detail"] == "table id is required"
    assert fetched.status_code == 422
    assert paid.status_code == 422
    assert cancelled.status_code == 422


def test_items_start_pending_and_move_through_the_kitchen():
    client = _build_client()
    placed = client.post("/api/tables/T9/orders", json={"items": [_burger(), _burger(size_option=102)]}).json()
    order_id = placed["order"]["id"]
    first, second = placed["order"]["line_items"]
    assert first["status"] == second["status"] == "pending"

    response = client.put(f"/api/orders/{order_id}/items/{first['id']}/status", json={"status": "preparing"})

    assert response.status_code == 200
    statuses = {item["id"]: item["status"] for item in response.json()["line_items"]}
    assert statuses == {first["id"]: "preparing", second["id"]: "pending"}
    open_order = client.get("/api/tables/T9/open-order").json()
    assert open_order["line_items"][0]["status"] == "preparing"


def test_item_status_errors():
    client = _build_client()
    placed = client.post("/api/tables/T10/orders", json={"items": [_burger()]}).json()
    order_id = placed["order"]["id"]
    item_id = placed["order"]["line_items"][0]["id"]

    unknown_item = client.put(f"/api/orders/{order_id}/items/{item_id + 100}/status", json={"status": "done"})
    unknown_order = client.put(f"/api/orders/{order_id + 100}/items/{item_id}/status", json={"status": "done"})
    bad_status = client.put(f"/api/orders/{order_id}/items/{item_id}/status", json={"status": "served"})

    assert unknown_item.status_code == 404
    assert unknown_item.json()["detail"]["kind"] == "item_not_found"
    assert unknown_order.status_code == 404
    assert unknown_order.json()["detail"]["kind"] == "order_not_found"
    assert bad_status.status_code == 422


def test_consolidation_failures_are_counted():
    client = _build_client()
    order_metrics.reset()

    client.post("/api/tables/T11/open-order/cancel")

    assert order_metrics.snapshot()["failures"] == {"no_open_order": 1}


def test_missing_table_lock_registry_fails_fast():
    client, _ = _build(with_locks=False)

    with pytest.raises(RuntimeError, match="table_locks"):
        client.post("/api/tables/T12/orders", json={"items": [_burger()]})
