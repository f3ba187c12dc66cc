# storefront/routes/cart.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth_utils import get_current_user
from storefront.db.database import get_db
from storefront.db.functions.cart import (
    add_product_to_cart,
    cart_item_to_dict,
    get_cart_items,
    remove_cart_item,
    update_cart_item,
)
from storefront.db.models import User
from storefront.db.schemas import CartItemCreate, CartItemUpdate

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("")
async def get_cart(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    items = await get_cart_items(db, user.id)
    return {"success": True, "data": {"items": [cart_item_to_dict(i, with_product=True) for i in items]}}


@router.post("", status_code=201)
async def add_to_cart(
    payload: CartItemCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    product_id = payload.product_id or payload.productId
    if not product_id:
        raise HTTPException(status_code=400, detail="product_id required")
    item = await add_product_to_cart(db, user.id, product_id, payload.quantity)
    return {"success": True, "data": cart_item_to_dict(item)}


@router.patch("/{item_id}")
async def update_item(
    item_id: int,
    payload: CartItemUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    item = await update_cart_item(db, user.id, item_id, payload.quantity)
    return {"success": True, "data": cart_item_to_dict(item) if item else None}


@router.delete("/{item_id}")
async def delete_item(item_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await remove_cart_item(db, user.id, item_id)
    return {"success": True, "data": None}
