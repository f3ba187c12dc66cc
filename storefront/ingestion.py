# storefront/ingestion.py
"""Product ingestion: validation, CSV mapping and job tracked upserts.

Products reach the catalog through three doors, all of which end in
`IngestionService.upsert_product`:

* manual  - one product posted by an admin
* csv     - an uploaded spreadsheet, grouped into products and variants
* api     - a batch pushed by a seller with an API key

Every run is recorded as an `IngestionJob` with `IngestionEvent` rows, so a
bad row is logged and skipped instead of failing the whole import.
"""
import asyncio
import csv
import hashlib
import logging
import os
import re
import time
from decimal import Decimal, InvalidOperation

from sqlalchemy import insert
from sqlalchemy.future import select

from storefront.audit import write_audit
from storefront.db.database import SessionLocal
from storefront.db.functions.catalog import get_or_create_category
from storefront.db.models import (
    IngestionEvent,
    IngestionJob,
    Inventory,
    JobStatus,
    JobType,
    Offer,
    Product,
    ProductVariant,
    Seller,
    product_categories,
)

logger = logging.getLogger(__name__)

MAX_IMAGES = 10

CSV_MAPPINGS = {
    "name": "name",
    "title": "name",
    "product_name": "name",
    "description": "description",
    "product_description": "description",
    "price": "price",
    "cost": "price",
    "price_usd": "price",
    "brand": "brand",
    "brand_name": "brand",
    "category": "category",
    "category_name": "category",
    "sku": "sku",
    "product_sku": "sku",
    "barcode": "barcode",
    "upc": "barcode",
    "gtin": "barcode",
    "ean": "barcode",
    "external_id": "external_id",
    "product_id": "external_id",
    "image": "image_url",
    "image_url": "image_url",
    "main_image": "image_url",
    "gallery_images": "gallery_images",
    "additional_images": "gallery_images",
    "variant_sku": "variant.sku",
    "variant_barcode": "variant.barcode",
    "variant_price": "variant.price",
    "option1_name": "variant.option1_name",
    "option1_value": "variant.option1_value",
    "option2_name": "variant.option2_name",
    "option2_value": "variant.option2_value",
    "option3_name": "variant.option3_name",
    "option3_value": "variant.option3_value",
    "quantity": "inventory.quantity",
    "stock": "inventory.quantity",
    "stock_quantity": "inventory.quantity",
    "inventory": "inventory.quantity",
    "safety_stock": "inventory.safety_stock",
}

# column order assumed for header-less files
DEFAULT_COLUMNS = ["name", "price", "description", "category", "brand", "sku", "quantity"]


class ProductValidationError(ValueError):
    pass


def strip_html(html: str) -> str:
    if not html:
        return ""
    text = re.sub(r"<script\b[^>]*>.*?</script>", "", html, flags=re.I | re.S)
    text = re.sub(r"<style\b[^>]*>.*?</style>", "", text, flags=re.I | re.S)
    text = re.sub(r"<[^>]*>", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def generate_slug(name: str) -> str:
    base = re.sub(r"[^\w\s-]", "", name.lower())
    base = re.sub(r"\s+", "-", base.strip())
    digest = hashlib.md5(f"{name}{time.time_ns()}".encode()).hexdigest()[:6]
    return f"{base}-{digest}"


def _to_decimal(value, field="price") -> Decimal:
    try:
        return Decimal(str(value).strip()).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        raise ProductValidationError(f"Invalid {field}: {value}")


def _to_cents(value) -> int:
    return int(_to_decimal(value) * 100)


def _safe_cents(value) -> int:
    try:
        return _to_cents(value)
    except ProductValidationError:
        return 0


def _to_int(value, default=0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def validate_product(data: dict) -> dict:
    """Check and normalise one product payload. Returns a new dict."""
    if not isinstance(data, dict):
        raise ProductValidationError("Product data must be an object")
    product = dict(data)

    name = product.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ProductValidationError("Product name is required")
    product["name"] = name.strip()

    variants = product.get("variants") or []
    if not isinstance(variants, list):
        raise ProductValidationError("Variants must be a list")
    if not product.get("price") and not variants:
        raise ProductValidationError("Either product price or variants with prices are required")

    normalized = []
    for index, variant in enumerate(variants):
        variant = dict(variant or {})
        if not variant.get("price_cents") and not variant.get("price"):
            raise ProductValidationError(f"Variant at index {index} must have a price")
        if variant.get("price") and not variant.get("price_cents"):
            variant["price_cents"] = _to_cents(variant["price"])
        if not isinstance(variant.get("options") or {}, dict):
            variant["options"] = {}
        normalized.append(variant)
    product["variants"] = normalized

    if product.get("price"):
        product["price"] = _to_decimal(product["price"])
    elif normalized:
        product["price"] = Decimal(min(v["price_cents"] for v in normalized)) / 100

    if product.get("description"):
        product["description"] = strip_html(product["description"])
    if not product.get("slug"):
        product["slug"] = generate_slug(product["name"])
    if not isinstance(product.get("images") or [], list):
        product["images"] = []
    if product.get("images"):
        product["images"] = [str(i) for i in product["images"]][:MAX_IMAGES]
    if not isinstance(product.get("attributes") or {}, dict):
        product["attributes"] = {}
    return product


def transform_csv_to_products(rows) -> list:
    """Group CSV rows into product payloads.

    Rows sharing an external_id (or, failing that, a name) become variants
    of one product. Unmapped columns are kept as attributes.
    """
    products = {}

    for row in rows:
        product = {
            "name": "", "price": None, "description": "", "category": "", "brand": "",
            "external_id": "", "sku": "", "barcode": "", "images": [], "attributes": {},
        }
        variant = {"sku": "", "barcode": "", "price": None, "options": {}}
        inventory = {"quantity": 0, "safety_stock": 0}
        normalized_row = {str(k).lower().strip(): v for k, v in row.items() if k is not None}

        for column, value in row.items():
            if column is None:
                continue
            key = str(column).lower().strip()
            target = CSV_MAPPINGS.get(key)
            if not target:
                product["attributes"][column] = value
            elif target.startswith("variant."):
                field = target[len("variant."):]
                if field.startswith("option") and field.endswith("_name"):
                    option_value = normalized_row.get(key.replace("_name", "_value"))
                    if value and option_value:
                        variant["options"][value] = option_value
                elif not field.startswith("option"):
                    variant[field] = value
            elif target.startswith("inventory."):
                inventory[target[len("inventory."):]] = _to_int(value)
            elif target == "image_url":
                if value:
                    product["images"].insert(0, value)
            elif target == "gallery_images":
                if value:
                    product["images"].extend(i.strip() for i in value.split(",") if i.strip())
            else:
                product[target] = value

        key = product["external_id"] or product["name"]
        if key not in products:
            products[key] = {**product, "variants": []}
        grouped = products[key]

        if variant["sku"] or variant["barcode"] or variant["price"] or variant["options"]:
            if variant["price"]:
                variant["price_cents"] = _safe_cents(variant["price"])
            variant["inventory"] = inventory
            grouped["variants"].append(variant)
        elif inventory["quantity"] > 0:
            grouped["variants"].append({
                "sku": grouped["sku"] or None,
                "barcode": grouped["barcode"] or None,
                "price_cents": _safe_cents(grouped["price"]) if grouped["price"] else 0,
                "options": {},
                "inventory": inventory,
            })

    result = []
    for product in products.values():
        # a default variant without a price is only there to carry stock
        for variant in product["variants"]:
            if not variant.get("price_cents") and not variant.get("price") and product["price"]:
                variant["price_cents"] = _safe_cents(product["price"])
        result.append(product)
    return result


def read_csv(file_path: str, has_header: bool = True, delimiter: str = ",") -> list:
    with open(file_path, newline="", encoding="utf-8-sig") as f:
        if has_header:
            reader = csv.DictReader(f, delimiter=delimiter, skipinitialspace=True)
        else:
            reader = csv.DictReader(f, fieldnames=DEFAULT_COLUMNS, delimiter=delimiter, skipinitialspace=True)
        rows = []
        for row in reader:
            row = {k: (v.strip() if isinstance(v, str) else v) for k, v in row.items()}
            if any(row.values()):
                rows.append(row)
        return rows


async def upsert_inventory(session, product_id: int, variant_id, data: dict):
    """Set the stock row of a product (variant_id None) or of one variant."""
    query = select(Inventory).filter(Inventory.product_id == product_id)
    if variant_id is None:
        query = query.filter(Inventory.variant_id.is_(None))
    else:
        query = query.filter(Inventory.variant_id == variant_id)
    inventory = (await session.execute(query)).scalars().first()

    if inventory:
        inventory.stock_quantity = _to_int(data.get("quantity"))
        inventory.safety_stock = _to_int(data.get("safety_stock"))
        inventory.warehouse_id = data.get("warehouse_id") or inventory.warehouse_id
    else:
        session.add(Inventory(
            product_id=product_id,
            variant_id=variant_id,
            stock_quantity=_to_int(data.get("quantity")),
            safety_stock=_to_int(data.get("safety_stock")),
            warehouse_id=data.get("warehouse_id"),
        ))


def empty_stats() -> dict:
    return {"total": 0, "processed": 0, "created": 0, "updated": 0, "failed": 0, "warnings": 0}


class IngestionService:
    """Runs ingestion jobs. Each step uses its own session from `session_factory`."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    async def create_job(self, job_type: str, seller_id=None, options=None, file_path=None) -> IngestionJob:
        async with self.session_factory() as session:
            job = IngestionJob(
                type=JobType(job_type),
                seller_id=seller_id,
                status=JobStatus.queued,
                options=options or {},
                file_path=file_path,
                stats=empty_stats(),
            )
            session.add(job)
            await session.commit()
        await self.log_event(job.id, "info", "JOB_CREATED", f"Started {job_type} ingestion job")
        return job

    async def log_event(self, job_id: int, level: str, code: str, message: str, payload=None):
        async with self.session_factory() as session:
            event = IngestionEvent(job_id=job_id, level=level, code=code, message=message, payload=payload or {})
            session.add(event)
            await session.commit()
            return event

    async def update_job_status(self, job_id: int, status: str, stats: dict = None) -> IngestionJob:
        async with self.session_factory() as session:
            job = (await session.execute(select(IngestionJob).filter(IngestionJob.id == job_id))).scalar_one_or_none()
            if not job:
                raise LookupError(f"Job {job_id} not found")
            job.status = JobStatus(status)
            if stats:
                job.stats = {**(job.stats or {}), **stats}
            await session.commit()
            return job

    async def process_manual(self, data: dict, user_id=None):
        """Validate and upsert one product. Returns `(product, created, job)`."""
        job = await self.create_job("manual")
        try:
            await self.update_job_status(job.id, "processing")
            product, created = await self.upsert_product(validate_product(data), job_id=job.id)
            job = await self.update_job_status(job.id, "done", {
                "total": 1,
                "processed": 1,
                "created": 1 if created else 0,
                "updated": 0 if created else 1,
            })
        except Exception as e:
            await self.log_event(job.id, "error", "PROCESSING_ERROR", str(e), {"error": repr(e)})
            await self.update_job_status(job.id, "failed", {"failed": 1})
            raise

        if user_id:
            await write_audit(user_id, "create" if created else "update", "products", product.id,
                              {"name": product.name, "method": "manual"})
        return product, created, job

    async def process_csv(self, file_path: str, user_id=None, has_header: bool = True, delimiter: str = ","):
        job = await self.create_job(
            "csv", options={"originalFilename": os.path.basename(file_path)}, file_path=file_path
        )
        try:
            await self.update_job_status(job.id, "processing")
            await self.log_event(job.id, "info", "PROCESSING_STARTED",
                                 f"Processing CSV file: {os.path.basename(file_path)}")
            rows = await asyncio.to_thread(read_csv, file_path, has_header, delimiter)
            await self.update_job_status(job.id, "processing", {"total": len(rows)})
            products = transform_csv_to_products(rows)
        except Exception as e:
            await self.log_event(job.id, "error", "PROCESSING_ERROR", str(e), {"error": repr(e)})
            job = await self.update_job_status(job.id, "failed", {"failed": 1})
            return job, job.stats

        job, results = await self._process_batch(job, products, source="csv")
        if user_id:
            await write_audit(user_id, "bulk-import", "products", None, {"method": "csv", "results": results})
        return job, results

    async def process_api(self, products: list, seller_id=None, user_id=None):
        job = await self.create_job("api", seller_id=seller_id)
        await self.update_job_status(job.id, "processing", {"total": len(products)})
        await self.log_event(job.id, "info", "PROCESSING_STARTED", f"Processing {len(products)} products via API")
        job, results = await self._process_batch(job, products, source="api", seller_id=seller_id)
        if user_id:
            await write_audit(user_id, "bulk-import", "products", None, {"method": "api", "results": results})
        return job, results

    async def _process_batch(self, job: IngestionJob, products: list, source: str, seller_id=None):
        results = {k: v for k, v in empty_stats().items() if k != "total"}
        for data in products:
            try:
                product, created = await self.upsert_product(validate_product(data), seller_id=seller_id, job_id=job.id)
                results["created" if created else "updated"] += 1
            except Exception as e:
                results["failed"] += 1
                name = data.get("name") if isinstance(data, dict) else None
                logger.warning("Ingestion job %s: product %r failed: %s", job.id, name, e)
                await self.log_event(job.id, "error", "PRODUCT_ERROR", str(e),
                                     {"product": name or "Unknown product", "error": repr(e)})
            results["processed"] += 1

        results["warnings"] = await self._count_warnings(job.id)
        job = await self.update_job_status(job.id, "done", results)
        await self.log_event(
            job.id, "info", "PROCESSING_COMPLETED",
            f"Completed processing {results['processed']} products: {results['created']} created, "
            f"{results['updated']} updated, {results['failed']} failed",
            {"source": source},
        )
        return job, results

    async def _count_warnings(self, job_id: int) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(IngestionEvent.id).filter(IngestionEvent.job_id == job_id, IngestionEvent.level == "warn")
            )
            return len(result.scalars().all())

    async def upsert_product(self, data: dict, seller_id=None, job_id=None):
        """Create or update a validated product with its variants, stock,
        seller offer and category link, all in one transaction.

        Returns `(product, created)`.
        """
        async with self.session_factory() as session:
            async with session.begin():
                product = await self._find_existing(session, data)
                created = product is None
                images = (data.get("images") or [])[:MAX_IMAGES]

                if product:
                    product.name = data["name"]
                    product.description = data.get("description") or product.description
                    product.brand = data.get("brand") or product.brand
                    product.category = data.get("category") or product.category
                    product.price = data.get("price") or product.price
                    product.images = images or product.images
                    product.attributes = data.get("attributes") or product.attributes
                    product.slug = product.slug or data.get("slug") or generate_slug(data["name"])
                    product.external_id = data.get("external_id") or product.external_id
                    if "featured" in data:
                        product.featured = bool(data["featured"])
                    code, verb = "PRODUCT_UPDATED", "Updated"
                else:
                    product = Product(
                        name=data["name"],
                        description=data.get("description"),
                        brand=data.get("brand") or None,
                        category=data.get("category") or None,
                        price=data.get("price") or 0,
                        images=images,
                        attributes=data.get("attributes") or {},
                        slug=data.get("slug") or generate_slug(data["name"]),
                        external_id=data.get("external_id") or None,
                        featured=bool(data.get("featured", False)),
                    )
                    session.add(product)
                    code, verb = "PRODUCT_CREATED", "Created"
                await session.flush()

                if job_id:
                    session.add(IngestionEvent(job_id=job_id, level="info", code=code,
                                               message=f"{verb} product: {product.name}",
                                               payload={"productId": product.id}))

                for variant_data in data.get("variants") or []:
                    await self._upsert_variant(session, product, variant_data, job_id)

                stock = data.get("stock_quantity", data.get("stock"))
                if stock is not None and not data.get("variants"):
                    await upsert_inventory(session, product.id, None,
                                           {"quantity": _to_int(stock), "safety_stock": data.get("safety_stock")})

                if seller_id:
                    await self._ensure_offer(session, product.id, seller_id)
                if data.get("category"):
                    await self._link_category(session, product.id, data["category"])

        return product, created

    async def _find_existing(self, session, data: dict):
        if data.get("external_id"):
            product = (await session.execute(
                select(Product).filter(Product.external_id == data["external_id"])
            )).scalar_one_or_none()
            if product:
                return product

        for variant in data.get("variants") or []:
            for field in ("sku", "barcode"):
                if not variant.get(field):
                    continue
                existing = (await session.execute(
                    select(ProductVariant).filter(getattr(ProductVariant, field) == variant[field])
                )).scalar_one_or_none()
                if existing:
                    return (await session.execute(
                        select(Product).filter(Product.id == existing.product_id)
                    )).scalar_one()
        return None

    async def _upsert_variant(self, session, product: Product, data: dict, job_id=None):
        existing = None
        for field in ("sku", "barcode"):
            if data.get(field):
                existing = (await session.execute(
                    select(ProductVariant).filter(getattr(ProductVariant, field) == data[field])
                )).scalar_one_or_none()
                break

        if existing and existing.product_id != product.id:
            logger.warning("Variant %s already belongs to product %s", data.get("sku"), existing.product_id)
            if job_id:
                session.add(IngestionEvent(
                    job_id=job_id, level="warn", code="VARIANT_CONFLICT",
                    message=f"Variant with SKU {data.get('sku') or 'unknown'} already exists for another product",
                    payload={"existingProductId": existing.product_id, "newProductId": product.id},
                ))
            return None

        if existing:
            existing.price_cents = data.get("price_cents") or existing.price_cents
            existing.compare_at_price_cents = data.get("compare_at_price_cents")
            existing.options = data.get("options") or {}
            existing.weight_grams = data.get("weight_grams")
            existing.dimensions = data.get("dimensions")
            existing.currency = data.get("currency") or "USD"
            variant = existing
        else:
            variant = ProductVariant(
                product_id=product.id,
                sku=data.get("sku") or None,
                barcode=data.get("barcode") or None,
                price_cents=data.get("price_cents") or 0,
                compare_at_price_cents=data.get("compare_at_price_cents"),
                options=data.get("options") or {},
                weight_grams=data.get("weight_grams"),
                dimensions=data.get("dimensions"),
                currency=data.get("currency") or "USD",
            )
            session.add(variant)
            await session.flush()

        inventory = data.get("inventory") or {}
        if inventory.get("quantity") or inventory.get("safety_stock"):
            await upsert_inventory(session, product.id, variant.id, inventory)
        return variant

    async def _ensure_offer(self, session, product_id: int, seller_id: int):
        seller = (await session.execute(select(Seller).filter(Seller.id == seller_id))).scalar_one_or_none()
        if not seller:
            return
        offer = (await session.execute(
            select(Offer).filter(Offer.product_id == product_id, Offer.seller_id == seller_id)
        )).scalar_one_or_none()
        if not offer:
            session.add(Offer(product_id=product_id, seller_id=seller_id, status="active"))

    async def _link_category(self, session, product_id: int, name: str):
        category = await get_or_create_category(session, name, description=f"Category for {name} products")
        linked = (await session.execute(
            select(product_categories.c.product_id).filter(
                product_categories.c.product_id == product_id,
                product_categories.c.category_id == category.id,
            )
        )).first()
        if not linked:
            await session.execute(insert(product_categories).values(product_id=product_id, category_id=category.id))
