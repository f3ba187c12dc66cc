# storefront/db/functions/admin.py
from fastapi import HTTPException
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from storefront.auth_utils import generate_token
from storefront.db.functions.catalog import product_to_dict
from storefront.db.models import (
    CartItem,
    IngestionEvent,
    IngestionJob,
    Inventory,
    Offer,
    Product,
    ProductVariant,
    Review,
    Seller,
    product_categories,
)
from storefront.db.schemas import (
    IngestionEventResponse,
    IngestionJobResponse,
    InventoryResponse,
    SellerResponse,
    VariantResponse,
)
from storefront.ingestion import MAX_IMAGES, upsert_inventory

PRODUCT_FIELDS = ("name", "description", "price", "brand", "attributes", "category", "featured")


def job_to_dict(job: IngestionJob) -> dict:
    return IngestionJobResponse.model_validate(job).model_dump()


def event_to_dict(event: IngestionEvent) -> dict:
    return IngestionEventResponse.model_validate(event).model_dump()


def seller_to_dict(seller: Seller) -> dict:
    return SellerResponse.model_validate(seller).model_dump()


async def _get_product_or_404(db: AsyncSession, product_id: int) -> Product:
    product = (await db.execute(select(Product).filter(Product.id == product_id))).scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Not found")
    return product


def _variant_price_cents(data: dict) -> int:
    if data.get("price_cents"):
        return int(data["price_cents"])
    try:
        return round(float(data.get("price") or 0) * 100)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid variant price")


async def update_product(db: AsyncSession, product_id: int, data: dict) -> Product:
    product = await _get_product_or_404(db, product_id)

    images = data.get("images")
    if images is not None and not isinstance(images, list):
        raise HTTPException(status_code=400, detail="images must be array")

    for field in PRODUCT_FIELDS:
        if data.get(field) is not None:
            setattr(product, field, data[field])
    if images is not None:
        product.images = images[:MAX_IMAGES]

    variants = data.get("variants")
    if isinstance(variants, list):
        for variant_data in variants:
            variant = None
            if variant_data.get("id"):
                variant = (await db.execute(
                    select(ProductVariant).filter(
                        ProductVariant.id == variant_data["id"],
                        ProductVariant.product_id == product.id,
                    )
                )).scalar_one_or_none()
                if not variant:
                    continue
                variant.sku = variant_data.get("sku", variant.sku)
                variant.barcode = variant_data.get("barcode", variant.barcode)
                variant.price_cents = _variant_price_cents(variant_data)
                variant.compare_at_price_cents = variant_data.get("compare_at_price_cents")
                variant.options = variant_data.get("options") or {}
                variant.weight_grams = variant_data.get("weight_grams")
                variant.dimensions = variant_data.get("dimensions")
            else:
                variant = ProductVariant(
                    product_id=product.id,
                    sku=variant_data.get("sku"),
                    barcode=variant_data.get("barcode"),
                    price_cents=_variant_price_cents(variant_data),
                    compare_at_price_cents=variant_data.get("compare_at_price_cents"),
                    options=variant_data.get("options") or {},
                    weight_grams=variant_data.get("weight_grams"),
                    dimensions=variant_data.get("dimensions"),
                    currency=variant_data.get("currency") or "USD",
                )
                db.add(variant)
                await db.flush()
            if variant_data.get("inventory"):
                await upsert_inventory(db, product.id, variant.id, variant_data["inventory"])

    if data.get("stock_quantity") is not None:
        await upsert_inventory(db, product.id, None, {
            "quantity": data["stock_quantity"],
            "safety_stock": data.get("safety_stock"),
        })

    await db.commit()
    return product


async def delete_product(db: AsyncSession, product_id: int):
    product = await _get_product_or_404(db, product_id)
    # children first; the async session can't lazy load them for an ORM cascade
    await db.execute(delete(product_categories).where(product_categories.c.product_id == product.id))
    for model in (Inventory, ProductVariant, Review, Offer, CartItem):
        await db.execute(delete(model).where(model.product_id == product.id))
    await db.execute(delete(Product).where(Product.id == product.id))
    await db.commit()


async def list_jobs(db: AsyncSession, limit: int = 100):
    result = await db.execute(
        select(IngestionJob).order_by(IngestionJob.created_at.desc(), IngestionJob.id.desc()).limit(limit)
    )
    return [job_to_dict(j) for j in result.scalars().all()]


async def get_job(db: AsyncSession, job_id: int, seller_id: int = None) -> IngestionJob:
    query = select(IngestionJob).filter(IngestionJob.id == job_id)
    if seller_id is not None:
        query = query.filter(IngestionJob.seller_id == seller_id)
    job = (await db.execute(query)).scalar_one_or_none()
    if not job:
        detail = "Job not found or does not belong to this seller" if seller_id is not None else "Job not found"
        raise HTTPException(status_code=404, detail=detail)
    return job


async def get_job_events(db: AsyncSession, job_id: int):
    result = await db.execute(
        select(IngestionEvent)
        .filter(IngestionEvent.job_id == job_id)
        .order_by(IngestionEvent.created_at.asc(), IngestionEvent.id.asc())
    )
    return [event_to_dict(e) for e in result.scalars().all()]


async def list_sellers(db: AsyncSession):
    result = await db.execute(select(Seller).order_by(Seller.name.asc()))
    return [seller_to_dict(s) for s in result.scalars().all()]


async def create_seller(db: AsyncSession, name: str, contact_email: str, webhook_url=None, status="active"):
    """Returns `(seller, api_key)`; the key is only ever shown here."""
    if not name or not contact_email:
        raise HTTPException(status_code=400, detail="Name and email are required")
    api_key = generate_token(16)
    seller = Seller(
        name=name,
        contact_email=contact_email,
        api_key=api_key,
        webhook_url=webhook_url,
        status=status or "active",
    )
    db.add(seller)
    await db.commit()
    return seller, api_key


async def update_seller(db: AsyncSession, seller_id: int, data: dict) -> Seller:
    seller = (await db.execute(select(Seller).filter(Seller.id == seller_id))).scalar_one_or_none()
    if not seller:
        raise HTTPException(status_code=404, detail="Seller not found")
    seller.name = data.get("name") or seller.name
    seller.contact_email = data.get("contact_email") or seller.contact_email
    seller.status = data.get("status") or seller.status
    if "webhook_url" in data:
        seller.webhook_url = data["webhook_url"]
    await db.commit()
    return seller


async def get_seller_product(db: AsyncSession, product_id: int, seller_id: int) -> dict:
    """A product with variants and stock, only if the seller has an offer on it."""
    result = await db.execute(
        select(Product)
        .join(Offer, Offer.product_id == Product.id)
        .filter(Product.id == product_id, Offer.seller_id == seller_id)
        .options(selectinload(Product.variants), selectinload(Product.inventory))
    )
    product = result.scalars().first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found or does not belong to this seller")

    data = product_to_dict(product)
    data["variants"] = [VariantResponse.model_validate(v).model_dump() for v in product.variants]
    data["inventory"] = [InventoryResponse.model_validate(i).model_dump() for i in product.inventory]
    return data
