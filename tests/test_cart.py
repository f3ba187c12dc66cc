from conftest import auth_headers, make_cart_item, make_product, make_user


def test_cart_requires_auth(client):
    assert client.get("/api/cart").status_code == 401


def test_add_and_list_cart(client, user_headers):
    product_id = make_product(name="Mouse", price=25)

    response = client.post("/api/cart", json={"product_id": product_id, "quantity": 2}, headers=user_headers)
    assert response.status_code == 201
    assert response.json()["data"]["quantity"] == 2

    items = client.get("/api/cart", headers=user_headers).json()["data"]["items"]
    assert len(items) == 1
    assert items[0]["quantity"] == 2
    assert items[0]["product"]["name"] == "Mouse"


def test_adding_same_product_merges_quantity(client, user_headers):
    product_id = make_product()

    client.post("/api/cart", json={"productId": product_id}, headers=user_headers)
    client.post("/api/cart", json={"productId": product_id, "quantity": 3}, headers=user_headers)

    items = client.get("/api/cart", headers=user_headers).json()["data"]["items"]
    assert [i["quantity"] for i in items] == [4]


def test_add_validation(client, user_headers):
    product_id = make_product()

    missing = client.post("/api/cart", json={"quantity": 1}, headers=user_headers)
    assert missing.status_code == 400
    assert missing.json()["error"] == "product_id required"

    zero = client.post("/api/cart", json={"product_id": product_id, "quantity": 0}, headers=user_headers)
    assert zero.status_code == 400
    assert zero.json()["error"] == "Quantity must be at least 1"

    unknown = client.post("/api/cart", json={"product_id": 999}, headers=user_headers)
    assert unknown.status_code == 404


def test_add_respects_stock(client, user_headers):
    product_id = make_product(stock=3)

    ok = client.post("/api/cart", json={"product_id": product_id, "quantity": 2}, headers=user_headers)
    assert ok.status_code == 201

    too_many = client.post("/api/cart", json={"product_id": product_id, "quantity": 2}, headers=user_headers)
    assert too_many.status_code == 400
    assert too_many.json()["error"] == "Insufficient inventory"


def test_update_and_delete_item(client, user_id, user_headers):
    product_id = make_product(stock=10)
    item_id = make_cart_item(user_id, product_id, 1)

    updated = client.patch(f"/api/cart/{item_id}", json={"quantity": 5}, headers=user_headers)
    assert updated.status_code == 200
    assert updated.json()["data"]["quantity"] == 5

    over = client.patch(f"/api/cart/{item_id}", json={"quantity": 11}, headers=user_headers)
    assert over.status_code == 400

    removed = client.patch(f"/api/cart/{item_id}", json={"quantity": 0}, headers=user_headers)
    assert removed.json() == {"success": True, "data": None}
    assert client.get("/api/cart", headers=user_headers).json()["data"]["items"] == []


def test_cannot_touch_another_users_item(client, user_headers):
    other = make_user(email="other@example.com")
    item_id = make_cart_item(other, make_product())

    assert client.delete(f"/api/cart/{item_id}", headers=user_headers).status_code == 404
    assert client.patch(f"/api/cart/{item_id}", json={"quantity": 2}, headers=user_headers).status_code == 404

    # still there for its owner
    items = client.get("/api/cart", headers=auth_headers(other)).json()["data"]["items"]
    assert len(items) == 1


def test_delete_item(client, user_id, user_headers):
    item_id = make_cart_item(user_id, make_product())

    assert client.delete(f"/api/cart/{item_id}", headers=user_headers).status_code == 200
    assert client.delete(f"/api/cart/{item_id}", headers=user_headers).json()["error"] == "Not found"
