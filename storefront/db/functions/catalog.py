# storefront/db/functions/catalog.py
from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from storefront.db.models import Category, Inventory, Product, Review
from storefront.db.schemas import CategoryResponse, ProductResponse

PLACEHOLDER_IMAGE = "/api/placeholder/400/400"
SORTABLE_COLUMNS = {
    "created_at": Product.created_at,
    "createdAt": Product.created_at,
    "name": Product.name,
    "price": Product.price,
    "id": Product.id,
}
MAX_PAGE_SIZE = 100


def product_to_dict(product: Product) -> dict:
    return ProductResponse.model_validate(product).model_dump()


def category_to_dict(category: Category) -> dict:
    return CategoryResponse.model_validate(category).model_dump()


def _apply_filters(query, category=None, search=None, min_price=None, max_price=None, featured=None,
                   partial_category=False):
    if category and partial_category:
        pattern = f"%{category}%"
        query = query.filter(or_(
            Product.categories.any(Category.name.ilike(pattern)),
            Product.category.ilike(pattern),
        ))
    elif category:
        query = query.filter(or_(
            Product.categories.any(Category.name == category),
            Product.category == category,
        ))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
    if min_price is not None:
        query = query.filter(Product.price >= min_price)
    if max_price is not None:
        query = query.filter(Product.price <= max_price)
    if featured is not None:
        query = query.filter(Product.featured == featured)
    return query


async def list_products(
    db: AsyncSession,
    page: int = 1,
    limit: int = 12,
    sort: str = "created_at",
    order: str = "DESC",
    **filters,
):
    """Paginated product listing.

    Unknown sort columns fall back to `created_at`. Returns the products
    and the pagination block.
    """
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    column = SORTABLE_COLUMNS.get(sort, Product.created_at)
    ordering = column.asc() if str(order).upper() == "ASC" else column.desc()

    count_query = _apply_filters(select(func.count(Product.id)), **filters)
    total = (await db.execute(count_query)).scalar_one()

    query = _apply_filters(select(Product), **filters)
    query = query.order_by(ordering, Product.id.desc()).offset((page - 1) * limit).limit(limit)
    result = await db.execute(query)
    products = result.scalars().all()

    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit,
    }
    return [product_to_dict(p) for p in products], pagination


async def search_catalog(
    db: AsyncSession,
    query: str = None,
    category: str = None,
    min_price: float = None,
    max_price: float = None,
    sort_by: str = "createdAt",
    sort_dir: str = "DESC",
    limit: int = 5,
):
    """Short product search behind the storefront search box.

    `category` matches category names partially. `sort_by="rating"` orders
    by average review rating, unrated products counting as 0.
    """
    if sort_by == "rating":
        column = func.coalesce(
            select(func.avg(Review.rating)).where(Review.product_id == Product.id).scalar_subquery(), 0
        )
    else:
        column = SORTABLE_COLUMNS.get(sort_by, Product.created_at)
    ordering = column.asc() if str(sort_dir).upper() == "ASC" else column.desc()

    stmt = _apply_filters(
        select(Product),
        category=category,
        search=query,
        min_price=min_price,
        max_price=max_price,
        partial_category=True,
    )
    stmt = stmt.order_by(ordering, Product.id.desc()).limit(min(max(limit, 1), MAX_PAGE_SIZE))
    products = (await db.execute(stmt)).scalars().all()

    stock = {}
    if products:
        result = await db.execute(
            select(Inventory.product_id, func.sum(Inventory.stock_quantity))
            .filter(Inventory.product_id.in_([p.id for p in products]))
            .group_by(Inventory.product_id)
        )
        stock = {product_id: int(total or 0) for product_id, total in result.all()}

    found = []
    for product in products:
        data = product_to_dict(product)
        data["inventory"] = stock.get(product.id, 0)
        if not data["images"] or not isinstance(data["images"], list):
            data["images"] = [PLACEHOLDER_IMAGE]
        found.append(data)
    return found


async def get_product(db: AsyncSession, product_id: int):
    result = await db.execute(
        select(Product).filter(Product.id == product_id).options(selectinload(Product.categories))
    )
    return result.scalar_one_or_none()


async def get_stock_level(db: AsyncSession, product_id: int):
    """Summed stock of all inventory rows, or None when the product has none."""
    result = await db.execute(
        select(func.count(Inventory.id), func.sum(Inventory.stock_quantity))
        .filter(Inventory.product_id == product_id)
    )
    rows, stock = result.one()
    if not rows:
        return None
    return int(stock or 0)


async def get_product_details(db: AsyncSession, product_id: int) -> dict:
    product = await get_product(db, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    data = product_to_dict(product)
    data["inventory"] = await get_stock_level(db, product_id)
    data["categories"] = [category_to_dict(c) for c in product.categories]
    if not data["images"] or not isinstance(data["images"], list):
        data["images"] = [PLACEHOLDER_IMAGE]
    return data


async def list_categories(db: AsyncSession):
    result = await db.execute(select(Category).order_by(Category.name.asc()))
    return [category_to_dict(c) for c in result.scalars().all()]


async def get_category_with_products(db: AsyncSession, category_id: int) -> dict:
    result = await db.execute(
        select(Category).filter(Category.id == category_id).options(selectinload(Category.products))
    )
    category = result.scalar_one_or_none()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    data = category_to_dict(category)
    data["products"] = [product_to_dict(p) for p in category.products]
    return data


async def get_or_create_category(db: AsyncSession, name: str, description: str = None) -> Category:
    result = await db.execute(select(Category).filter(Category.name == name))
    category = result.scalar_one_or_none()
    if not category:
        category = Category(name=name, description=description)
        db.add(category)
        await db.flush()
    return category
