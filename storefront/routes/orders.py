# storefront/routes/orders.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth_utils import get_current_user
from storefront.db.database import get_db
from storefront.db.functions.orders import get_order, list_user_orders, order_to_dict
from storefront.db.models import User

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("")
async def get_orders(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": {"orders": await list_user_orders(db, user.id)}}


@router.get("/{order_id}")
async def get_order_by_id(order_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    order = await get_order(db, order_id, user_id=user.id, with_relations=True)
    return {"success": True, "data": {"order": order_to_dict(order, items=True, payments=True)}}
