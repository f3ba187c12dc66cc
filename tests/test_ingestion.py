from decimal import Decimal

import pytest

from storefront.ingestion import (
    ProductValidationError,
    generate_slug,
    read_csv,
    strip_html,
    transform_csv_to_products,
    validate_product,
)


def test_validate_product_normalises():
    product = validate_product({
        "name": "  Lamp ",
        "price": "19.9",
        "description": "<div>Warm <script>alert(1)</script>light</div>",
        "images": [f"img{i}.jpg" for i in range(15)],
        "attributes": "not a dict",
    })

    assert product["name"] == "Lamp"
    assert product["price"] == Decimal("19.90")
    assert product["description"] == "Warm light"
    assert len(product["images"]) == 10
    assert product["attributes"] == {}
    assert product["slug"].startswith("lamp-")


def test_validate_product_variant_prices():
    product = validate_product({"name": "Shirt", "variants": [{"sku": "S", "price": "12.00"}, {"sku": "M", "price": 10}]})

    assert [v["price_cents"] for v in product["variants"]] == [1200, 1000]
    assert product["price"] == Decimal("10")


@pytest.mark.parametrize("data,message", [
    ({"price": 5}, "Product name is required"),
    ({"name": "X"}, "Either product price or variants with prices are required"),
    ({"name": "X", "variants": [{"sku": "A"}]}, "Variant at index 0 must have a price"),
    ({"name": "X", "price": "abc"}, "Invalid price: abc"),
])
def test_validate_product_errors(data, message):
    with pytest.raises(ProductValidationError, match=message):
        validate_product(data)


def test_slugs_are_unique():
    assert generate_slug("Red Shoes!") != generate_slug("Red Shoes!")
    assert generate_slug("Red Shoes!").startswith("red-shoes-")


def test_strip_html():
    assert strip_html("<p>Hello <b>world</b></p><style>p{}</style>") == "Hello world"
    assert strip_html(None) == ""


def test_transform_groups_variants_and_keeps_attributes():
    rows = [
        {"Title": "T-Shirt", "Product_ID": "TS", "Price": "15", "Variant_SKU": "TS-S", "Variant_Price": "15",
         "Option1_Name": "size", "Option1_Value": "S", "Stock": "3", "Material": "cotton"},
        {"Title": "T-Shirt", "Product_ID": "TS", "Price": "15", "Variant_SKU": "TS-M", "Variant_Price": "16",
         "Option1_Name": "size", "Option1_Value": "M", "Stock": "0", "Material": "cotton"},
        {"Title": "Cap", "Product_ID": "", "Price": "9", "Variant_SKU": "", "Variant_Price": "",
         "Option1_Name": "", "Option1_Value": "", "Stock": "7", "Material": ""},
    ]

    products = transform_csv_to_products(rows)

    shirt, cap = products
    assert shirt["name"] == "T-Shirt"
    assert shirt["external_id"] == "TS"
    assert shirt["attributes"]["Material"] == "cotton"
    assert [(v["sku"], v["price_cents"], v["options"]) for v in shirt["variants"]] == [
        ("TS-S", 1500, {"size": "S"}),
        ("TS-M", 1600, {"size": "M"}),
    ]
    assert shirt["variants"][0]["inventory"]["quantity"] == 3

    # stock without variant columns gets a default variant
    [default] = cap["variants"]
    assert default["price_cents"] == 900
    assert default["inventory"]["quantity"] == 7


def test_transform_images():
    [product] = transform_csv_to_products([
        {"name": "Vase", "price": "20", "image_url": "main.jpg", "gallery_images": "a.jpg, b.jpg"},
    ])

    assert product["images"] == ["main.jpg", "a.jpg", "b.jpg"]


def test_read_csv_with_and_without_header(tmp_path):
    with_header = tmp_path / "with.csv"
    with_header.write_text("name;price\nMug;4.5\n;\n", encoding="utf-8")
    without_header = tmp_path / "without.csv"
    without_header.write_text("Mug,4.5,Nice mug,Kitchen,Acme,MUG-1,3\n", encoding="utf-8")

    assert read_csv(str(with_header), delimiter=";") == [{"name": "Mug", "price": "4.5"}]
    [row] = read_csv(str(without_header), has_header=False)
    assert row["name"] == "Mug"
    assert row["quantity"] == "3"
