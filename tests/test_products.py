from conftest import add_rows, make_product
from storefront.db.models import Review


def test_list_products_paginates(client):
    for i in range(5):
        make_product(name=f"Item {i}", price=10 + i)

    response = client.get("/api/products", params={"page": 2, "limit": 2, "sort": "price", "order": "ASC"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert [p["name"] for p in data["products"]] == ["Item 2", "Item 3"]
    assert data["pagination"] == {"page": 2, "limit": 2, "total": 5, "pages": 3}


def test_list_products_filters(client):
    make_product(name="Gaming Laptop", price=1200, category="Computers")
    make_product(name="Office Laptop", price=600, category="Computers", featured=True)
    make_product(name="Desk Lamp", price=30, category="Home")

    by_category = client.get("/api/products", params={"category": "Computers"}).json()["data"]
    assert {p["name"] for p in by_category["products"]} == {"Gaming Laptop", "Office Laptop"}

    by_price = client.get("/api/products", params={"min_price": 100, "max_price": 1000}).json()["data"]
    assert [p["name"] for p in by_price["products"]] == ["Office Laptop"]

    by_search = client.get("/api/products", params={"search": "lamp"}).json()["data"]
    assert [p["name"] for p in by_search["products"]] == ["Desk Lamp"]

    featured = client.get("/api/products", params={"featured": "true"}).json()["data"]
    assert [p["name"] for p in featured["products"]] == ["Office Laptop"]


def test_unknown_sort_column_falls_back(client):
    make_product(name="A")

    response = client.get("/api/products", params={"sort": "hacked; DROP TABLE"})

    assert response.status_code == 200
    assert response.json()["data"]["pagination"]["total"] == 1


def test_invalid_page_is_a_400(client):
    response = client.get("/api/products", params={"page": "abc"})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_product_detail(client):
    product_id = make_product(name="Phone", price=299.99, stock=7, category="Mobile")

    response = client.get(f"/api/products/{product_id}")

    assert response.status_code == 200
    product = response.json()["data"]["product"]
    assert product["name"] == "Phone"
    assert product["price"] == 299.99
    assert product["inventory"] == 7
    assert [c["name"] for c in product["categories"]] == ["Mobile"]
    assert len(product["images"]) == 1


def test_product_detail_without_inventory(client):
    product_id = make_product()

    product = client.get(f"/api/products/{product_id}").json()["data"]["product"]

    assert product["inventory"] is None


def test_product_detail_errors(client):
    assert client.get("/api/products/abc").status_code == 400
    missing = client.get("/api/products/999")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "error": "Product not found"}


def test_categories(client):
    product_id = make_product(name="Phone", category="Mobile")
    make_product(name="Lamp", category="Home")

    categories = client.get("/api/categories").json()["data"]["categories"]
    assert [c["name"] for c in categories] == ["Home", "Mobile"]

    mobile = next(c for c in categories if c["name"] == "Mobile")
    detail = client.get(f"/api/categories/{mobile['id']}").json()["data"]["category"]
    assert [p["id"] for p in detail["products"]] == [product_id]

    assert client.get("/api/categories/999").status_code == 404


def test_unknown_route_uses_envelope(client):
    response = client.get("/api/nothing-here")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Not found"}


def test_health(client):
    assert client.get("/health").json() == {"success": True, "data": "ok"}


def test_search_by_keyword_category_and_price(client):
    make_product(name="Gaming Laptop", price=1200, category="Computers")
    make_product(name="Office Laptop", price=600, category="Computers")
    make_product(name="Desk Lamp", price=30, category="Home", description="Warm laptop-friendly light")

    def names(**params):
        response = client.get("/api/products/search", params=params)
        assert response.status_code == 200
        return {p["name"] for p in response.json()["data"]["products"]}

    assert names(query="laptop") == {"Gaming Laptop", "Office Laptop", "Desk Lamp"}
    assert names(query="laptop", category="comp") == {"Gaming Laptop", "Office Laptop"}
    assert names(maxPrice=700) == {"Office Laptop", "Desk Lamp"}
    assert names(minPrice=100, maxPrice=1000) == {"Office Laptop"}


def test_search_defaults_to_five_newest(client):
    for i in range(7):
        make_product(name=f"Item {i}")

    products = client.get("/api/products/search").json()["data"]["products"]

    assert [p["name"] for p in products] == [f"Item {i}" for i in range(6, 1, -1)]


def test_search_sorted_by_rating(client, user_id):
    loved = make_product(name="Loved")
    liked = make_product(name="Liked")
    make_product(name="Unrated")
    add_rows(
        Review(user_id=user_id, product_id=loved, rating=5),
        Review(user_id=user_id, product_id=liked, rating=3),
        Review(user_id=user_id, product_id=liked, rating=4),
    )

    products = client.get("/api/products/search", params={"sortBy": "rating"}).json()["data"]["products"]
    assert [p["name"] for p in products] == ["Loved", "Liked", "Unrated"]

    ascending = client.get("/api/products/search", params={"sortBy": "rating", "sortDir": "ASC"}).json()
    assert [p["name"] for p in ascending["data"]["products"]] == ["Unrated", "Liked", "Loved"]


def test_search_results_carry_inventory_and_images(client):
    make_product(name="Stocked", stock=4)
    make_product(name="Untracked")

    products = client.get("/api/products/search", params={"sortBy": "name", "sortDir": "ASC"}).json()["data"]["products"]

    assert [(p["name"], p["inventory"]) for p in products] == [("Stocked", 4), ("Untracked", 0)]
    assert all(p["images"] == ["/api/placeholder/400/400"] for p in products)
