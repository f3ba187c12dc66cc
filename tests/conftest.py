import asyncio
import os
import tempfile

_tmp_dir = tempfile.mkdtemp(prefix="storefront-tests-")

# must be set before storefront.config is imported; empty values keep .env from filling them in
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_tmp_dir, 'test.db')}"
os.environ["ENVIRONMENT"] = "test"
os.environ["UPLOAD_DIR"] = os.path.join(_tmp_dir, "uploads")
for name in ("RABBITMQ_URL", "SMTP_HOST", "TWILIO_ACCOUNT_SID", "AZURE_OPENAI_API_KEY", "AZURE_OPENAI_ENDPOINT"):
    os.environ[name] = ""

import pytest
from fastapi.testclient import TestClient

from storefront.auth_utils import create_access_token, hash_password
from storefront.db.database import SessionLocal
from storefront.db.init_db import drop_db, init_db
from storefront.db.models import (
    CartItem,
    Category,
    Inventory,
    Order,
    OrderStatus,
    Product,
    RoleEnum,
    Seller,
    User,
)
from storefront.main import app


@pytest.fixture(autouse=True)
def reset_db():
    asyncio.run(drop_db())
    asyncio.run(init_db())
    yield


@pytest.fixture
def client():
    return TestClient(app)


async def _add(*rows):
    async with SessionLocal() as session:
        session.add_all(rows)
        await session.commit()
        return [row.id for row in rows]


def add_rows(*rows):
    """Insert ORM rows and return their ids."""
    return asyncio.run(_add(*rows))


def make_user(email="user@example.com", name="Test User", password="secret123",
              role=RoleEnum.user, verified=True, phone=None):
    [user_id] = add_rows(User(
        name=name,
        email=email,
        hashed_password=hash_password(password),
        role=role,
        email_verified=verified,
        phone=phone,
    ))
    return user_id


def make_product(name="Laptop", price=100, stock=None, category=None, featured=False, description=None):
    [product_id] = add_rows(Product(
        name=name,
        price=price,
        category=category,
        featured=featured,
        description=description,
        images=[],
        attributes={},
    ))
    if stock is not None:
        add_rows(Inventory(product_id=product_id, stock_quantity=stock))
    if category is not None:
        asyncio.run(_link_category(product_id, category))
    return product_id


async def _link_category(product_id, name):
    from sqlalchemy import insert
    from sqlalchemy.future import select

    from storefront.db.models import product_categories

    async with SessionLocal() as session:
        category = (await session.execute(select(Category).filter(Category.name == name))).scalar_one_or_none()
        if not category:
            category = Category(name=name)
            session.add(category)
            await session.flush()
        await session.execute(insert(product_categories).values(product_id=product_id, category_id=category.id))
        await session.commit()


def make_cart_item(user_id, product_id, quantity=1):
    [item_id] = add_rows(CartItem(user_id=user_id, product_id=product_id, quantity=quantity))
    return item_id


def make_order(user_id, total=50, status=OrderStatus.pending):
    [order_id] = add_rows(Order(user_id=user_id, total_amount=total, currency="USD", order_status=status))
    return order_id


def make_seller(name="Acme", api_key="a" * 32, status="active"):
    [seller_id] = add_rows(Seller(name=name, contact_email=f"{name.lower()}@example.com",
                                  api_key=api_key, status=status))
    return seller_id


def auth_headers(user_id, role="user"):
    token = create_access_token({"id": user_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


async def _fetch(query):
    async with SessionLocal() as session:
        return (await session.execute(query)).scalars().all()


def fetch_all(query):
    """Run a select in a fresh session and return the scalars."""
    return asyncio.run(_fetch(query))


@pytest.fixture
def user_id():
    return make_user()


@pytest.fixture
def user_headers(user_id):
    return auth_headers(user_id)


@pytest.fixture
def admin_id():
    return make_user(email="admin@example.com", name="Admin", role=RoleEnum.admin)


@pytest.fixture
def admin_headers(admin_id):
    return auth_headers(admin_id, role="admin")


@pytest.fixture
def sent_notifications(monkeypatch):
    """Capture notify() calls made by the routes instead of delivering them."""
    sent = []

    async def fake_notify(kind, **data):
        sent.append({"kind": kind, **data})

    for module in ("auth", "checkout", "support", "support_assist"):
        monkeypatch.setattr(f"storefront.routes.{module}.notify", fake_notify)
    return sent
