# storefront/db/functions/support.py
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from storefront import ai
from storefront.db.functions.chat import get_or_create_session
from storefront.db.models import (
    ChatSession,
    RoleEnum,
    SupportTicket,
    TicketCategory,
    TicketHistory,
    TicketStatus,
)
from storefront.db.schemas import ChatMessageResponse, TicketHistoryResponse, TicketResponse

ACTIVE_STATUSES = (TicketStatus.open, TicketStatus.in_progress)


def ticket_to_dict(ticket: SupportTicket, with_history: bool = False) -> dict:
    data = TicketResponse.model_validate(ticket).model_dump()
    if with_history:
        history = sorted(ticket.history, key=lambda h: (h.timestamp, h.id))
        data["history"] = [TicketHistoryResponse.model_validate(h).model_dump() for h in history]
    return data


async def find_open_duplicate(db: AsyncSession, user_id: int, text: str):
    """One of the user's active tickets that looks like the same issue, or None."""
    result = await db.execute(
        select(SupportTicket).filter(
            SupportTicket.user_id == user_id,
            SupportTicket.status.in_(ACTIVE_STATUSES),
        ).order_by(SupportTicket.created_at)
    )
    return ai.find_duplicate(text, result.scalars().all())


async def create_ticket(db: AsyncSession, user_id: int, subject: str, description: str) -> SupportTicket:
    """Classify and store a new ticket with its first history entry.

    Raises 409 when one of the user's active tickets looks like the same issue.
    """
    text = f"{subject} {description}"

    duplicate = await find_open_duplicate(db, user_id, text)
    if duplicate:
        raise HTTPException(status_code=409, detail={
            "error": "A similar ticket is already open",
            "duplicateTicket": {
                "id": duplicate.id,
                "subject": duplicate.subject,
                "status": duplicate.status.value,
            },
        })

    ticket = SupportTicket(
        user_id=user_id,
        subject=subject,
        description=description,
        category=TicketCategory(ai.classify(text)),
        status=TicketStatus.open,
        history=[TicketHistory(status=TicketStatus.open, note="Ticket created", updated_by=user_id)],
    )
    db.add(ticket)
    await db.commit()
    return ticket


async def list_user_tickets(db: AsyncSession, user_id: int):
    result = await db.execute(
        select(SupportTicket)
        .filter(SupportTicket.user_id == user_id)
        .order_by(SupportTicket.created_at.desc())
    )
    return [ticket_to_dict(t) for t in result.scalars().all()]


async def list_tickets(db: AsyncSession, status: str = None):
    query = select(SupportTicket).order_by(SupportTicket.created_at.desc())
    if status:
        query = query.filter(SupportTicket.status == _parse_status(status))
    result = await db.execute(query)
    return [ticket_to_dict(t) for t in result.scalars().all()]


async def get_ticket(db: AsyncSession, ticket_id: str, user=None) -> SupportTicket:
    """Load a ticket with history; non-admin users only see their own."""
    result = await db.execute(
        select(SupportTicket)
        .filter(SupportTicket.id == ticket_id)
        .options(selectinload(SupportTicket.history))
    )
    ticket = result.scalar_one_or_none()
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    if user is not None and user.role != RoleEnum.admin and ticket.user_id != user.id:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


def _parse_status(status: str) -> TicketStatus:
    try:
        return TicketStatus(status)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail="Invalid status. Must be one of: open, in_progress, resolved, closed",
        )


async def update_ticket_status(db: AsyncSession, ticket_id: str, status: str, note: str, updated_by: int) -> SupportTicket:
    new_status = _parse_status(status)
    ticket = await get_ticket(db, ticket_id)
    ticket.status = new_status
    ticket.history.append(TicketHistory(status=new_status, note=note, updated_by=updated_by))
    await db.commit()
    return ticket


async def get_assist_session(db: AsyncSession, session_id: str, user_id: int) -> ChatSession:
    """The user's support chat session, created when `session_id` is new."""
    chat_session = await get_or_create_session(db, session_id, user_id)
    if chat_session.user_id != user_id:
        raise HTTPException(status_code=404, detail="Chat session not found")
    return chat_session


async def get_assist_history(db: AsyncSession, session_id: str, user_id: int) -> dict:
    """Messages of a support chat, oldest first; an unknown session has none."""
    result = await db.execute(
        select(ChatSession)
        .filter(ChatSession.session_id == session_id)
        .options(selectinload(ChatSession.messages))
    )
    chat_session = result.scalar_one_or_none()
    if chat_session is None:
        return {"sessionId": session_id, "messages": []}
    if chat_session.user_id != user_id:
        raise HTTPException(status_code=404, detail="Chat session not found")
    messages = sorted(chat_session.messages, key=lambda m: (m.created_at, m.id))
    return {
        "sessionId": chat_session.session_id,
        "messages": [ChatMessageResponse.model_validate(m).model_dump() for m in messages],
    }
