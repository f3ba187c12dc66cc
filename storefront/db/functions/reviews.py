# storefront/db/functions/reviews.py
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from storefront.db.models import Product, Review
from storefront.db.schemas import ReviewResponse


def review_to_dict(review: Review) -> dict:
    data = ReviewResponse.model_validate(review).model_dump()
    if "user" in review.__dict__ and review.user is not None:
        data["user"] = {"id": review.user.id, "name": review.user.name}
    return data


async def get_product_reviews(db: AsyncSession, product_id: int) -> dict:
    result = await db.execute(
        select(Review)
        .filter(Review.product_id == product_id)
        .options(selectinload(Review.user))
        .order_by(Review.created_at.desc(), Review.id.desc())
    )
    reviews = result.scalars().all()
    count = len(reviews)
    average = round(sum(r.rating for r in reviews) / count, 2) if count else 0
    return {"reviews": [review_to_dict(r) for r in reviews], "average": average, "count": count}


def parse_rating(value) -> int:
    invalid = HTTPException(status_code=400, detail="Rating must be an integer between 1 and 5")
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise invalid
    try:
        rating = int(value)
    except ValueError:
        raise invalid
    if not 1 <= rating <= 5:
        raise invalid
    return rating


async def create_review(db: AsyncSession, user_id: int, product_id: int, rating, comment: str = None) -> Review:
    rating = parse_rating(rating)
    product = (await db.execute(select(Product).filter(Product.id == product_id))).scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    review = Review(user_id=user_id, product_id=product_id, rating=rating, comment=comment)
    db.add(review)
    await db.commit()
    return review
