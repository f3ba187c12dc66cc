# storefront/db/functions/chat.py
import uuid

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from storefront.db.models import CartItem, ChatMessage, ChatSession, Order, Product
from storefront.db.schemas import ChatMessageResponse

HISTORY_LIMIT = 20
MAX_SUGGESTIONS = 5


async def get_or_create_session(db: AsyncSession, session_id: str = None, user_id: int = None) -> ChatSession:
    if session_id:
        result = await db.execute(select(ChatSession).filter(ChatSession.session_id == session_id))
        session = result.scalar_one_or_none()
        if session:
            if user_id and not session.user_id:
                session.user_id = user_id
            return session

    session = ChatSession(session_id=session_id or uuid.uuid4().hex, user_id=user_id, status="active", meta={})
    db.add(session)
    await db.flush()
    return session


async def recent_messages(db: AsyncSession, chat_session: ChatSession, limit: int = HISTORY_LIMIT):
    """Last `limit` messages of the session, oldest first."""
    result = await db.execute(
        select(ChatMessage)
        .filter(ChatMessage.session_fk == chat_session.id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
    )
    return list(reversed(result.scalars().all()))


async def save_messages(db: AsyncSession, chat_session: ChatSession, *messages):
    for role, content in messages:
        db.add(ChatMessage(session_fk=chat_session.id, role=role, content=content))
    await db.commit()


async def get_history(db: AsyncSession, session_id: str) -> dict:
    result = await db.execute(
        select(ChatSession)
        .filter(ChatSession.session_id == session_id)
        .options(selectinload(ChatSession.messages))
    )
    chat_session = result.scalar_one_or_none()
    if not chat_session:
        raise HTTPException(status_code=404, detail="Chat session not found")
    messages = sorted(chat_session.messages, key=lambda m: (m.created_at, m.id))
    return {
        "sessionId": chat_session.session_id,
        "messages": [ChatMessageResponse.model_validate(m).model_dump() for m in messages],
    }


async def build_user_context(db: AsyncSession, user) -> dict:
    if user is None:
        return {"name": None, "cart": [], "last_order_id": None}

    cart = await db.execute(
        select(CartItem).filter(CartItem.user_id == user.id).options(selectinload(CartItem.product))
    )
    last_order = await db.execute(
        select(Order.id).filter(Order.user_id == user.id).order_by(Order.created_at.desc(), Order.id.desc()).limit(1)
    )
    return {
        "name": user.name,
        "cart": [f"{item.product.name} x{item.quantity}" for item in cart.scalars().all()],
        "last_order_id": last_order.scalar_one_or_none(),
    }


async def search_products(db: AsyncSession, keywords, budget: float = None, limit: int = MAX_SUGGESTIONS):
    if not keywords and budget is None:
        return []

    query = select(Product)
    if keywords:
        conditions = []
        for word in keywords:
            pattern = f"%{word}%"
            conditions.extend([
                Product.name.ilike(pattern),
                Product.description.ilike(pattern),
                Product.brand.ilike(pattern),
                Product.category.ilike(pattern),
            ])
        query = query.filter(or_(*conditions))
    if budget is not None:
        query = query.filter(Product.price <= budget)

    result = await db.execute(query.order_by(Product.featured.desc(), Product.price.asc()).limit(limit))
    return result.scalars().all()
