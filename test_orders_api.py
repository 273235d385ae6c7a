# test_orders_api.py
import pytest
from sqlalchemy.exc import OperationalError

from app.services import order_engine


def jprint(step, r, status=None):
    """Assert on status and return the JSON body."""
    if status is None:
        assert 200 <= r.status_code < 300, f"{step} -> {r.status_code}: {r.text}"
    else:
        assert r.status_code == status, f"{step} -> {r.status_code}: {r.text}"
    return r.json()


@pytest.fixture()
def stocked(client, api):
    r = client.post(f"{api}/stock", json={"productType": "Wig", "productSubtype": "Straight", "quantity": 10})
    jprint("POST /stock", r, 201)
    return client


def stock_of(client, api, t="Wig", s="Straight"):
    return client.get(f"{api}/stock").json().get(t, {}).get(s)


def test_create_order_201(stocked, api, order_body, notifier):
    order = jprint("POST /orders", stocked.post(f"{api}/orders", json=order_body()), 201)
    assert order["quantity"] == 3
    assert order["deliveryStatus"] == "pending"
    assert order["paymentStatus"] == "unpaid"
    assert order["priority"] == "normal"
    assert order["remainingQuantity"] == 3
    assert order["orderId"].startswith("ORD-")
    assert stock_of(stocked, api) == 7
    assert [o["orderId"] for o in notifier.sent] == [order["orderId"]]


def test_create_order_missing_fields_400(stocked, api, order_body):
    body = order_body()
    del body["customerName"]
    err = jprint("POST /orders", stocked.post(f"{api}/orders", json=body), 400)
    assert err["error"] == "validation_error"


@pytest.mark.parametrize("qty", [0, -2, "3", 1.5])
def test_create_order_invalid_quantity_400(stocked, api, order_body, qty):
    r = stocked.post(f"{api}/orders", json=order_body(quantity=qty))
    jprint("POST /orders", r, 400)
    assert stock_of(stocked, api) == 10


def test_create_order_insufficient_stock_400(stocked, api, order_body, notifier):
    err = jprint("POST /orders", stocked.post(f"{api}/orders", json=order_body(quantity=12)), 400)
    assert err == {"error": "insufficient_stock", "message": "Insufficient stock", "available": 10, "requested": 12}
    assert stock_of(stocked, api) == 10
    assert notifier.sent == []


def test_list_orders_newest_first(stocked, api, order_body):
    a = stocked.post(f"{api}/orders", json=order_body(quantity=1)).json()
    b = stocked.post(f"{api}/orders", json=order_body(quantity=1)).json()
    listed = jprint("GET /orders", stocked.get(f"{api}/orders"))
    assert [o["id"] for o in listed] == [b["id"], a["id"]]
    one = jprint("GET /orders/{id}", stocked.get(f"{api}/orders/{a['id']}"))
    assert one["orderId"] == a["orderId"]


def test_not_found_on_every_mutation(client, api):
    assert client.delete(f"{api}/orders/999").status_code == 404
    assert client.patch(f"{api}/orders/999/delivery", json={"deliveryStatus": "delivered"}).status_code == 404
    assert client.patch(f"{api}/orders/999/payment", json={"amountPaid": 1}).status_code == 404
    assert client.patch(f"{api}/orders/999/priority", json={"priority": "high"}).status_code == 404
    assert client.patch(f"{api}/orders/999/worker-notes", json={"workerNotes": "x"}).status_code == 404
    assert client.patch(f"{api}/orders/999/return", json={"quantity": 1, "returnType": "partial"}).status_code == 404
    r = client.patch(f"{api}/orders/999/cancel")
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


def test_field_updates(stocked, api, order_body):
    oid = stocked.post(f"{api}/orders", json=order_body()).json()["id"]

    r = stocked.patch(f"{api}/orders/{oid}/delivery", json={"deliveryStatus": "in_transit"})
    assert jprint("delivery", r)["deliveryStatus"] == "in_transit"
    jprint("delivery invalid", stocked.patch(f"{api}/orders/{oid}/delivery", json={"deliveryStatus": "lost"}), 400)

    r = stocked.patch(f"{api}/orders/{oid}/payment", json={"paymentStatus": "paid", "amountPaid": 120})
    body = jprint("payment", r)
    assert (body["paymentStatus"], body["amountPaid"]) == ("partially_paid", 120.0)
    jprint("payment too much", stocked.patch(f"{api}/orders/{oid}/payment", json={"amountPaid": 301}), 400)
    jprint("payment negative", stocked.patch(f"{api}/orders/{oid}/payment", json={"amountPaid": -5}), 400)
    jprint("payment empty", stocked.patch(f"{api}/orders/{oid}/payment", json={}), 400)

    assert jprint("priority", stocked.patch(f"{api}/orders/{oid}/priority", json={"priority": "high"}))["priority"] == "high"
    jprint("priority invalid", stocked.patch(f"{api}/orders/{oid}/priority", json={"priority": "meh"}), 400)

    r = stocked.patch(f"{api}/orders/{oid}/worker-notes", json={"workerNotes": "Call first", "workerName": "Esi"})
    body = jprint("notes", r)
    assert (body["workerNotes"], body["workerName"]) == ("Call first", "Esi")
    jprint("notes empty", stocked.patch(f"{api}/orders/{oid}/worker-notes", json={"workerNotes": ""}), 400)


def test_return_flow_and_cancel_rejected(stocked, api, order_body):
    oid = stocked.post(f"{api}/orders", json=order_body(quantity=3)).json()["id"]
    assert stock_of(stocked, api) == 7

    early = stocked.patch(f"{api}/orders/{oid}/return", json={"quantity": 1, "returnType": "partial"})
    assert jprint("return before delivery", early, 400)["error"] == "invalid_transition"

    r = stocked.patch(f"{api}/orders/{oid}/delivery", json={"deliveryStatus": "delivered", "deliveredBy": "Kofi"})
    assert jprint("deliver", r)["deliveredBy"] == "Kofi"
    assert stock_of(stocked, api) == 7

    body = jprint("return 1", stocked.patch(f"{api}/orders/{oid}/return", json={"quantity": 1, "returnType": "partial"}))
    assert (body["returnedQuantity"], body["remainingQuantity"], body["deliveryStatus"]) == (1, 2, "delivered")
    assert stock_of(stocked, api) == 8

    over = stocked.patch(f"{api}/orders/{oid}/return", json={"quantity": 3, "returnType": "partial"})
    assert jprint("over-return", over, 400)["remaining"] == 2
    assert stock_of(stocked, api) == 8

    jprint("cancel delivered", stocked.patch(f"{api}/orders/{oid}/cancel"), 400)
    assert stock_of(stocked, api) == 8

    body = jprint("return rest", stocked.patch(f"{api}/orders/{oid}/return", json={"quantity": 2, "returnType": "full"}))
    assert body["deliveryStatus"] == "returned"
    assert stock_of(stocked, api) == 10


def test_cancel_twice_credits_once(stocked, api, order_body):
    oid = stocked.post(f"{api}/orders", json=order_body(quantity=4)).json()["id"]
    body = jprint("cancel", stocked.patch(f"{api}/orders/{oid}/cancel"))
    assert body["deliveryStatus"] == "cancelled"
    assert stock_of(stocked, api) == 10
    jprint("cancel again", stocked.patch(f"{api}/orders/{oid}/cancel"), 400)
    assert stock_of(stocked, api) == 10


def test_delete_restores_open_order(stocked, api, order_body):
    oid = stocked.post(f"{api}/orders", json=order_body(quantity=4)).json()["id"]
    assert jprint("delete", stocked.delete(f"{api}/orders/{oid}")) == {"message": "Order deleted successfully", "id": oid}
    assert stock_of(stocked, api) == 10
    jprint("get deleted", stocked.get(f"{api}/orders/{oid}"), 404)


def test_duplicate_order_id_400(stocked, api, order_body):
    jprint("first", stocked.post(f"{api}/orders", json=order_body(quantity=1, orderId="ORD-X")), 201)
    err = jprint("dup", stocked.post(f"{api}/orders", json=order_body(quantity=1, orderId="ORD-X")), 400)
    assert err["error"] == "duplicate_order_id"
    assert stock_of(stocked, api) == 9


def test_storage_failure_mid_create_rolls_back(stocked, api, order_body, notifier, monkeypatch):
    def broken_insert(db, body, **fields):
        raise OperationalError("INSERT INTO orders", {}, Exception("disk I/O error"))

    monkeypatch.setattr(order_engine, "_insert_order", broken_insert)
    err = jprint("POST /orders", stocked.post(f"{api}/orders", json=order_body(quantity=4)), 500)
    assert err["error"] == "transaction_failed"
    assert stock_of(stocked, api) == 10
    assert stocked.get(f"{api}/orders").json() == []
    assert notifier.sent == []
