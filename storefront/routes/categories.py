# storefront/routes/categories.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.db.database import get_db
from storefront.db.functions.catalog import get_category_with_products, list_categories

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("")
async def get_categories(db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": {"categories": await list_categories(db)}}


@router.get("/{category_id}")
async def get_category(category_id: str, db: AsyncSession = Depends(get_db)):
    if not category_id.isdigit():
        raise HTTPException(status_code=400, detail="Invalid category ID")
    category = await get_category_with_products(db, int(category_id))
    return {"success": True, "data": {"category": category}}
