import asyncio

from sqlalchemy import text
from sqlalchemy.future import select

from conftest import add_rows, auth_headers, fetch_all, make_cart_item, make_product, make_user
from storefront.db.database import engine
from storefront.db.models import AuditLog, CartItem, Inventory, Order, OrderStatus, Payment


def test_checkout_paypal_in_development_completes(client, user_id, user_headers, sent_notifications):
    laptop = make_product(name="Laptop", price=100, stock=5)
    mouse = make_product(name="Mouse", price=25)
    make_cart_item(user_id, laptop, 2)
    make_cart_item(user_id, mouse, 1)

    response = client.post(
        "/api/checkout",
        json={"paymentMethod": "paypal", "paypalOrderId": "PAY-123", "email": "buyer@example.com"},
        headers=user_headers,
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["order"]["total_amount"] == 225.0
    assert data["order"]["order_status"] == "paid"
    assert data["payment"]["status"] == "completed"
    assert data["payment"]["transactionId"] == "PAY-123"

    [order] = fetch_all(select(Order))
    assert order.id == data["orderId"]
    assert fetch_all(select(CartItem)) == []
    [inventory] = fetch_all(select(Inventory))
    assert inventory.stock_quantity == 3
    [payment] = fetch_all(select(Payment))
    assert payment.order_id == order.id

    [email] = sent_notifications
    assert email["kind"] == "order_confirmation_email"
    assert email["to"] == "buyer@example.com"
    assert email["total"] == "225.00"

    assert "checkout" in [a.action for a in fetch_all(select(AuditLog))]


def test_checkout_paypal_without_order_id_generates_dev_id(client, user_id, user_headers, sent_notifications):
    make_cart_item(user_id, make_product(price=10))

    data = client.post("/api/checkout", json={"paymentMethod": "paypal"}, headers=user_headers).json()["data"]

    assert data["payment"]["transactionId"].startswith("DEV-PAYPAL-")
    assert sent_notifications[0]["to"] == "user@example.com"


def test_checkout_mpesa_sends_sms(client, sent_notifications):
    user_id = make_user(phone="0712345678")
    make_cart_item(user_id, make_product(price=10))

    response = client.post("/api/checkout", json={"paymentMethod": "mpesa"}, headers=auth_headers(user_id))
    # no proof of payment, order stays pending
    assert response.json()["data"]["order"]["order_status"] == "pending"
    assert "payment" not in response.json()["data"]
    assert sent_notifications == []

    make_cart_item(user_id, make_product(name="Other", price=5))
    response = client.post(
        "/api/checkout",
        json={"paymentMethod": "mpesa", "phoneNumber": "0700000000"},
        headers=auth_headers(user_id),
    )
    data = response.json()["data"]
    assert data["order"]["order_status"] == "paid"
    assert data["payment"]["transactionId"] == f"test_mpesa_{data['orderId']}"
    [sms] = sent_notifications
    assert sms["kind"] == "order_confirmation_sms"
    assert sms["phone"] == "0700000000"


def test_checkout_empty_cart(client, user_headers):
    response = client.post("/api/checkout", json={"paymentMethod": "paypal"}, headers=user_headers)

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Cart is empty"}


def test_checkout_unsupported_method(client, user_id, user_headers):
    make_cart_item(user_id, make_product())

    response = client.post("/api/checkout", json={"paymentMethod": "stripe"}, headers=user_headers)

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid payment method")
    assert fetch_all(select(Order)) == []


def test_checkout_insufficient_stock_rolls_back(client, user_id, user_headers):
    product_id = make_product(stock=1)
    make_cart_item(user_id, product_id, 2)

    response = client.post("/api/checkout", json={"paymentMethod": "paypal"}, headers=user_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Insufficient inventory"
    assert fetch_all(select(Order)) == []
    assert len(fetch_all(select(CartItem))) == 1
    [inventory] = fetch_all(select(Inventory))
    assert inventory.stock_quantity == 1


def test_checkout_in_production_verifies_paypal(client, user_id, user_headers, monkeypatch, sent_notifications):
    monkeypatch.setattr("storefront.db.functions.orders.IS_PRODUCTION", True)

    async def fake_get_order(paypal_order_id):
        return {"id": paypal_order_id, "status": "APPROVED"}

    monkeypatch.setattr("storefront.payment_providers.get_paypal_order", fake_get_order)
    make_cart_item(user_id, make_product(price=10))

    response = client.post("/api/checkout", json={"paymentMethod": "paypal", "paypalOrderId": "X1"},
                           headers=user_headers)

    data = response.json()["data"]
    assert data["order"]["order_status"] == "pending"
    assert "payment" not in data
    # cart is kept for a retry
    assert len(fetch_all(select(CartItem))) == 1


def test_checkout_in_production_completed_paypal(client, user_id, user_headers, monkeypatch, sent_notifications):
    monkeypatch.setattr("storefront.db.functions.orders.IS_PRODUCTION", True)

    async def fake_get_order(paypal_order_id):
        return {"id": paypal_order_id, "status": "COMPLETED"}

    monkeypatch.setattr("storefront.payment_providers.get_paypal_order", fake_get_order)
    make_cart_item(user_id, make_product(price=10))

    response = client.post("/api/checkout", json={"paymentMethod": "paypal", "paypalOrderId": "X2"},
                           headers=user_headers)

    assert response.json()["data"]["order"]["order_status"] == "paid"


def test_payment_methods(client, user_headers):
    methods = client.get("/api/checkout/payment-methods", headers=user_headers).json()["data"]["paymentMethods"]

    assert [m["id"] for m in methods] == ["paypal", "mpesa"]


def test_checkout_draws_stock_from_every_inventory_row(client, user_id, user_headers, sent_notifications):
    product_id = make_product(stock=3)
    add_rows(Inventory(product_id=product_id, stock_quantity=3))

    assert client.get(f"/api/products/{product_id}").json()["data"]["inventory"] == 6
    assert client.post("/api/cart", json={"product_id": product_id, "quantity": 5},
                       headers=user_headers).status_code == 201

    response = client.post("/api/checkout", json={"paymentMethod": "paypal"}, headers=user_headers)

    assert response.status_code == 201
    rows = fetch_all(select(Inventory).order_by(Inventory.id))
    assert [row.stock_quantity for row in rows] == [0, 1]
    assert client.get(f"/api/products/{product_id}").json()["data"]["inventory"] == 1


async def _drop_inventory_table():
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE inventories"))


def test_checkout_without_inventory_table_skips_stock_checks(client, user_id, user_headers, sent_notifications):
    product_id = make_product(price=15, stock=1)
    make_cart_item(user_id, product_id, 4)
    asyncio.run(_drop_inventory_table())

    response = client.post("/api/checkout", json={"paymentMethod": "paypal"}, headers=user_headers)

    assert response.status_code == 201
    assert response.json()["data"]["order"]["order_status"] == "paid"
    [order] = fetch_all(select(Order))
    assert order.order_status == OrderStatus.paid
    assert fetch_all(select(CartItem)) == []
