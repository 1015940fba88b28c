import pytest

import orders
from errors import Conflict, ValidationError
from schemas import Order as OrderSchema
from tests.conftest import bearer, insert_product, register


@pytest.fixture
def product_id(db):
    return insert_product(db, name="Galaxy S24", brand="Samsung", price=900.0)


def order_body(product_id, quantity=1, price=900.0, tax=0.0, shipping=0.0):
    items_price = price * quantity
    return {
        "orderItems": [
            {"product": product_id, "name": "Galaxy S24", "image": "s24.jpg", "price": price, "quantity": quantity}
        ],
        "shippingAddress": {"address": "1 Main St", "city": "Pune", "postalCode": "411001", "country": "India"},
        "paymentMethod": "Cash on Delivery",
        "itemsPrice": items_price,
        "shippingPrice": shipping,
        "taxPrice": tax,
        "totalPrice": items_price + shipping + tax,
    }


@pytest.fixture
def order(client, user_headers, product_id):
    res = client.post("/orders", headers=user_headers, json=order_body(product_id))
    assert res.status_code == 201, res.text
    return res.json()


def test_create_order_starts_pending(order, user):
    assert order["status"] == "Pending"
    assert order["isPaid"] is False
    assert order["isDelivered"] is False
    assert order["paidAt"] is None
    assert order["user"] == user["id"]
    assert order["orderItems"][0]["quantity"] == 1


def test_create_order_without_items(client, db, user_headers, product_id):
    body = order_body(product_id)
    body["orderItems"] = []
    res = client.post("/orders", headers=user_headers, json=body)
    assert res.status_code == 400
    assert res.json()["detail"] == "No order items"
    assert db["order"].count_documents({}) == 0


def test_create_order_requires_login(client, product_id):
    assert client.post("/orders", json=order_body(product_id)).status_code == 401


def test_create_order_rejects_wrong_totals(client, db, user_headers, product_id):
    body = order_body(product_id, quantity=2)
    body["itemsPrice"] = 100
    body["totalPrice"] = 100
    assert client.post("/orders", headers=user_headers, json=body).status_code == 400

    body = order_body(product_id, tax=162.0)
    body["totalPrice"] = 900
    assert client.post("/orders", headers=user_headers, json=body).status_code == 400
    assert db["order"].count_documents({}) == 0


def test_create_order_with_tax(client, user_headers, product_id):
    res = client.post("/orders", headers=user_headers, json=order_body(product_id, quantity=2, tax=324.0))
    assert res.status_code == 201
    assert res.json()["totalPrice"] == 2124.0


def test_create_order_unknown_product(client, user_headers):
    res = client.post("/orders", headers=user_headers, json=order_body("507f1f77bcf86cd799439011"))
    assert res.status_code == 400


def test_create_order_trusts_totals_when_verification_off(db, user, product_id):
    body = OrderSchema(**{**order_body(product_id), "totalPrice": 1.0, "itemsPrice": 1.0})
    order = orders.create_order(db, user["id"], body, verify=False)
    assert order["totalPrice"] == 1.0


def test_my_orders_newest_first(client, user_headers, product_id):
    first = client.post("/orders", headers=user_headers, json=order_body(product_id)).json()
    second = client.post("/orders", headers=user_headers, json=order_body(product_id, quantity=3)).json()
    other = register(client, name="Bob", email="bob@example.com")
    client.post("/orders", headers=bearer(other["token"]), json=order_body(product_id))

    res = client.get("/orders/myorders", headers=user_headers)
    assert res.status_code == 200
    assert [o["id"] for o in res.json()] == [second["id"], first["id"]]


def test_all_orders_admin_with_user(client, admin_headers, user_headers, order):
    assert client.get("/orders", headers=user_headers).status_code == 403
    res = client.get("/orders", headers=admin_headers)
    assert res.status_code == 200
    [listed] = res.json()
    assert listed["id"] == order["id"]
    assert listed["user"]["name"] == "Alice"
    assert listed["user"]["email"] == "alice@example.com"


def test_get_order_owner_or_admin(client, admin_headers, user_headers, order):
    assert client.get(f"/orders/{order['id']}", headers=user_headers).status_code == 200
    assert client.get(f"/orders/{order['id']}", headers=admin_headers).status_code == 200
    stranger = register(client, name="Eve", email="eve@example.com")
    assert client.get(f"/orders/{order['id']}", headers=bearer(stranger["token"])).status_code == 403


def test_get_order_not_found(client, user_headers):
    assert client.get("/orders/507f1f77bcf86cd799439011", headers=user_headers).status_code == 404
    assert client.put("/orders/507f1f77bcf86cd799439011/pay", headers=user_headers).status_code == 404


def test_pay_sets_processing(client, user_headers, order):
    res = client.put(f"/orders/{order['id']}/pay", headers=user_headers)
    assert res.status_code == 200
    data = res.json()
    assert data["status"] == "Processing"
    assert data["isPaid"] is True
    assert data["paidAt"]


def test_pay_twice_keeps_first_timestamp(client, user_headers, order):
    paid_at = client.put(f"/orders/{order['id']}/pay", headers=user_headers).json()["paidAt"]
    again = client.put(f"/orders/{order['id']}/pay", headers=user_headers)
    assert again.status_code == 200
    assert again.json()["paidAt"] == paid_at


def test_deliver_admin_only(client, user_headers, admin_headers, order):
    client.put(f"/orders/{order['id']}/pay", headers=user_headers)
    assert client.put(f"/orders/{order['id']}/deliver", headers=user_headers).status_code == 403
    res = client.put(f"/orders/{order['id']}/deliver", headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["status"] == "Delivered"
    assert res.json()["isDelivered"] is True
    assert res.json()["deliveredAt"]


def test_deliver_unpaid_order_rejected(client, admin_headers, order):
    res = client.put(f"/orders/{order['id']}/deliver", headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Cannot change order status from Pending to Delivered"


def test_status_side_effects(client, admin_headers, order):
    url = f"/orders/{order['id']}/status"
    processing = client.put(url, headers=admin_headers, json={"status": "Processing"}).json()
    assert processing["isPaid"] is True
    assert processing["paidAt"]

    shipped = client.put(url, headers=admin_headers, json={"status": "Shipped"}).json()
    assert shipped["status"] == "Shipped"
    assert shipped["isPaid"] is True
    assert shipped["isDelivered"] is False
    assert shipped["paidAt"] == processing["paidAt"]

    delivered = client.put(url, headers=admin_headers, json={"status": "Delivered"}).json()
    assert delivered["isDelivered"] is True
    assert delivered["deliveredAt"]


def test_backward_transition_rejected(client, admin_headers, order):
    url = f"/orders/{order['id']}/status"
    client.put(url, headers=admin_headers, json={"status": "Processing"})
    client.put(url, headers=admin_headers, json={"status": "Delivered"})
    res = client.put(url, headers=admin_headers, json={"status": "Pending"})
    assert res.status_code == 400
    assert client.get(f"/orders/{order['id']}", headers=admin_headers).json()["status"] == "Delivered"


def test_cancel_pending_order(client, admin_headers, user_headers, order):
    url = f"/orders/{order['id']}/status"
    res = client.put(url, headers=admin_headers, json={"status": "Cancelled"})
    assert res.status_code == 200
    assert res.json()["status"] == "Cancelled"
    assert res.json()["isPaid"] is False
    assert client.put(f"/orders/{order['id']}/pay", headers=user_headers).status_code == 400


def test_unknown_status_value(client, admin_headers, order):
    res = client.put(f"/orders/{order['id']}/status", headers=admin_headers, json={"status": "Lost"})
    assert res.status_code == 400


def test_transition_table():
    assert orders.can_transition("Pending", "Processing")
    assert orders.can_transition("Processing", "Cancelled")
    assert orders.can_transition("Shipped", "Delivered")
    assert not orders.can_transition("Shipped", "Cancelled")
    assert not orders.can_transition("Delivered", "Pending")
    assert not orders.can_transition("Cancelled", "Processing")


def test_set_status_service(db, user, product_id):
    order = orders.create_order(db, user["id"], OrderSchema(**order_body(product_id)))
    oid = str(order["_id"])
    with pytest.raises(Conflict):
        orders.set_status(db, oid, "Shipped")
    assert orders.set_status(db, oid, "Processing")["isPaid"] is True
    with pytest.raises(ValidationError):
        orders.create_order(db, user["id"], OrderSchema(**{**order_body(product_id), "orderItems": []}))


def test_create_order_rejects_item_price_snapshot_mismatch(client, db, user_headers, product_id):
    body = order_body(product_id)
    body["orderItems"][0]["price"] = 1.0
    res = client.post("/orders", headers=user_headers, json=body)
    assert res.status_code == 400
    assert "does not match catalog price" in res.json()["detail"]
    assert db["order"].count_documents({}) == 0
