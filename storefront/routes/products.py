# storefront/routes/products.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.db.database import get_db
from storefront.db.functions.catalog import get_product_details, list_products, search_catalog

router = APIRouter(prefix="/products", tags=["products"])


@router.get("")
async def get_products(
    page: int = 1,
    limit: int = 12,
    sort: str = "created_at",
    order: str = "DESC",
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    featured: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
):
    products, pagination = await list_products(
        db,
        page=page,
        limit=limit,
        sort=sort,
        order=order,
        category=category,
        search=search,
        min_price=min_price,
        max_price=max_price,
        featured=featured,
    )
    return {"success": True, "data": {"products": products, "pagination": pagination}}


@router.get("/search")
async def search(
    query: Optional[str] = None,
    category: Optional[str] = None,
    minPrice: Optional[float] = None,
    maxPrice: Optional[float] = None,
    sortBy: str = "createdAt",
    sortDir: str = "DESC",
    limit: int = 5,
    db: AsyncSession = Depends(get_db),
):
    products = await search_catalog(
        db,
        query=query,
        category=category,
        min_price=minPrice,
        max_price=maxPrice,
        sort_by=sortBy,
        sort_dir=sortDir,
        limit=limit,
    )
    return {"success": True, "data": {"products": products}}


@router.get("/{product_id}")
async def get_product(product_id: str, db: AsyncSession = Depends(get_db)):
    if not product_id.isdigit():
        raise HTTPException(status_code=400, detail="Invalid product ID")
    product = await get_product_details(db, int(product_id))
    return {"success": True, "data": {"product": product}}
