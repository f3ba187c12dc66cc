# storefront/db/functions/cart.py
import logging

from fastapi import HTTPException
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from storefront.db.functions.catalog import get_stock_level, product_to_dict
from storefront.db.models import CartItem, Product
from storefront.db.schemas import CartItemResponse

logger = logging.getLogger(__name__)


def cart_item_to_dict(item: CartItem, with_product: bool = False) -> dict:
    data = CartItemResponse.model_validate(item).model_dump()
    if with_product:
        data["product"] = product_to_dict(item.product)
    return data


async def get_cart_items(db: AsyncSession, user_id: int):
    result = await db.execute(
        select(CartItem)
        .filter(CartItem.user_id == user_id)
        .options(selectinload(CartItem.product))
        .order_by(CartItem.id)
    )
    items = result.scalars().all()
    logger.debug("cart items for user %s: %s", user_id, [(i.product_id, i.quantity) for i in items])
    return items


async def _check_stock(db: AsyncSession, product_id: int, wanted: int):
    stock = await get_stock_level(db, product_id)
    if stock is not None and wanted > stock:
        raise HTTPException(status_code=400, detail="Insufficient inventory")


async def add_product_to_cart(db: AsyncSession, user_id: int, product_id: int, quantity: int = 1):
    if quantity < 1:
        raise HTTPException(status_code=400, detail="Quantity must be at least 1")

    product = (await db.execute(select(Product).filter(Product.id == product_id))).scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    result = await db.execute(
        select(CartItem).filter(CartItem.user_id == user_id, CartItem.product_id == product_id)
    )
    cart_item = result.scalar_one_or_none()
    current = cart_item.quantity if cart_item else 0
    await _check_stock(db, product_id, current + quantity)

    if cart_item:
        cart_item.quantity += quantity
    else:
        cart_item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
        db.add(cart_item)

    await db.commit()
    return cart_item


async def _get_own_item(db: AsyncSession, user_id: int, item_id: int) -> CartItem:
    item = (await db.execute(select(CartItem).filter(CartItem.id == item_id))).scalar_one_or_none()
    if not item or item.user_id != user_id:
        raise HTTPException(status_code=404, detail="Not found")
    return item


async def update_cart_item(db: AsyncSession, user_id: int, item_id: int, quantity: int):
    """Set an item's quantity. Returns None when the row was removed."""
    item = await _get_own_item(db, user_id, item_id)
    if quantity <= 0:
        await db.delete(item)
        await db.commit()
        return None

    await _check_stock(db, item.product_id, quantity)
    item.quantity = quantity
    await db.commit()
    return item


async def remove_cart_item(db: AsyncSession, user_id: int, item_id: int):
    item = await _get_own_item(db, user_id, item_id)
    await db.delete(item)
    await db.commit()


async def clear_user_cart(db: AsyncSession, user_id: int):
    """Delete every cart row of the user. Does not commit."""
    await db.execute(delete(CartItem).where(CartItem.user_id == user_id))
