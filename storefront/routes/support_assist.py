# storefront/routes/support_assist.py
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storefront import ai
from storefront.audit import write_audit
from storefront.auth_utils import get_current_user
from storefront.db.database import get_db
from storefront.db.functions.chat import save_messages
from storefront.db.functions.support import (
    create_ticket,
    find_open_duplicate,
    get_assist_history,
    get_assist_session,
    ticket_to_dict,
)
from storefront.db.models import User
from storefront.db.schemas import ChatRequest, ChatTicketCreate
from storefront.notifications import notify

router = APIRouter(prefix="/support/assist", tags=["support"])


@router.post("/chat/message")
async def chat_message(
    payload: ChatRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    message = (payload.message or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")

    chat_session = await get_assist_session(db, payload.sessionId, user.id)
    category = ai.classify(message)
    solutions = ai.suggested_solutions(category)
    duplicate = await find_open_duplicate(db, user.id, message)
    response, should_create_ticket = ai.support_reply(message, category, solutions, duplicate)
    await save_messages(db, chat_session, ("user", message), ("assistant", response))

    return {
        "success": True,
        "data": {
            "sessionId": chat_session.session_id,
            "response": response,
            "category": category,
            "solutions": solutions,
            "duplicate": {
                "id": duplicate.id,
                "subject": duplicate.subject,
                "status": duplicate.status.value,
            } if duplicate else None,
            "shouldCreateTicket": should_create_ticket,
        },
    }


@router.post("/chat/create-ticket", status_code=201)
async def chat_create_ticket(
    payload: ChatTicketCreate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not payload.sessionId or not payload.subject or not payload.description:
        raise HTTPException(status_code=400, detail="Session ID, subject, and description are required")

    chat_session = await get_assist_session(db, payload.sessionId, user.id)
    try:
        ticket = await create_ticket(db, user.id, payload.subject, payload.description)
    except HTTPException as e:
        if e.status_code == 409:
            existing = e.detail["duplicateTicket"]["id"]
            await save_messages(db, chat_session, (
                "assistant",
                f"I found that you already have a similar open ticket (ID: {existing}). "
                f"Let's use that one instead of creating a duplicate.",
            ))
        raise

    await save_messages(db, chat_session, (
        "assistant",
        f"I've created a support ticket for you! Your ticket ID is: {ticket.id}. "
        f"Our support team will review your issue and get back to you via email.",
    ))
    data = ticket_to_dict(ticket, with_history=True)
    await write_audit(user.id, "create", "support_tickets", ticket.id,
                      {"category": data["category"], "source": "chat"})
    background_tasks.add_task(notify, "ticket_created", to=user.email, ticket=data)
    return {"success": True, "data": {"id": ticket.id, "category": data["category"]}}


@router.get("/chat/history/{session_id}")
async def chat_history(session_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": await get_assist_history(db, session_id, user.id)}
