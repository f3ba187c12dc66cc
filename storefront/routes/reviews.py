# storefront/routes/reviews.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.audit import write_audit
from storefront.auth_utils import get_current_user
from storefront.db.database import get_db
from storefront.db.functions.reviews import create_review, get_product_reviews, review_to_dict
from storefront.db.models import User
from storefront.db.schemas import ReviewCreate

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.get("/{product_id}")
async def get_reviews(product_id: int, db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": await get_product_reviews(db, product_id)}


@router.post("/{product_id}", status_code=201)
async def add_review(
    product_id: int,
    payload: ReviewCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    review = await create_review(db, user.id, product_id, payload.rating, payload.comment)
    await write_audit(user.id, "create", "reviews", review.id, {"productId": product_id, "rating": review.rating})
    return {"success": True, "data": review_to_dict(review)}
