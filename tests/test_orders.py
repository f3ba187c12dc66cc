from conftest import auth_headers, make_cart_item, make_order, make_product, make_user


def test_orders_newest_first_with_items(client, user_id, user_headers, sent_notifications):
    make_cart_item(user_id, make_product(name="First", price=10))
    first = client.post("/api/checkout", json={"paymentMethod": "paypal"}, headers=user_headers).json()["data"]
    make_cart_item(user_id, make_product(name="Second", price=20))
    second = client.post("/api/checkout", json={"paymentMethod": "paypal"}, headers=user_headers).json()["data"]

    orders = client.get("/api/orders", headers=user_headers).json()["data"]["orders"]

    assert [o["id"] for o in orders] == [second["orderId"], first["orderId"]]
    assert orders[0]["items"][0]["product"]["name"] == "Second"
    assert orders[0]["items"][0]["price_at_purchase"] == 20.0


def test_order_detail_includes_payments(client, user_id, user_headers, sent_notifications):
    make_cart_item(user_id, make_product(price=10))
    order_id = client.post("/api/checkout", json={"paymentMethod": "paypal", "paypalOrderId": "P-1"},
                           headers=user_headers).json()["data"]["orderId"]

    order = client.get(f"/api/orders/{order_id}", headers=user_headers).json()["data"]["order"]

    assert order["order_status"] == "paid"
    assert len(order["items"]) == 1
    assert [p["transaction_id"] for p in order["payments"]] == ["P-1"]


def test_foreign_order_is_not_found(client, user_headers):
    other = make_user(email="other@example.com")
    order_id = make_order(other)

    response = client.get(f"/api/orders/{order_id}", headers=user_headers)

    assert response.status_code == 404
    assert response.json()["error"] == "Order not found"
    assert client.get(f"/api/orders/{order_id}", headers=auth_headers(other)).status_code == 200
