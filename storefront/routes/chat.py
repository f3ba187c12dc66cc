# storefront/routes/chat.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storefront import assistant
from storefront.auth_utils import get_optional_user
from storefront.db.database import get_db
from storefront.db.functions.catalog import product_to_dict
from storefront.db.functions.chat import (
    build_user_context,
    get_history,
    get_or_create_session,
    recent_messages,
    save_messages,
    search_products,
)
from storefront.db.models import User
from storefront.db.schemas import ChatRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("")
async def chat(
    payload: ChatRequest,
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    message = (payload.message or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")

    user_id = user.id if user else None
    chat_session = await get_or_create_session(db, payload.sessionId, user_id)
    history = await recent_messages(db, chat_session)
    context = await build_user_context(db, user)

    budget = assistant.extract_budget(message)
    keywords = assistant.extract_keywords(message)
    products = await search_products(db, keywords, budget)
    logger.debug("Chat %s: keywords=%s budget=%s matches=%d", chat_session.session_id, keywords, budget, len(products))

    reply = await assistant.generate_reply(message, context, history, products)
    await save_messages(db, chat_session, ("user", message), ("assistant", reply))

    return {
        "success": True,
        "data": {
            "reply": reply,
            "sessionId": chat_session.session_id,
            "products": [product_to_dict(p) for p in products],
        },
    }


@router.get("/{session_id}")
async def chat_history(session_id: str, db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": await get_history(db, session_id)}
