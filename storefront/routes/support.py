# storefront/routes/support.py
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storefront import ai
from storefront.audit import write_audit
from storefront.auth_utils import admin_required, get_current_user
from storefront.db.database import get_db
from storefront.db.functions.support import (
    create_ticket,
    get_ticket,
    list_tickets,
    list_user_tickets,
    ticket_to_dict,
    update_ticket_status,
)
from storefront.db.functions.users import get_user_by_id
from storefront.db.models import User
from storefront.db.schemas import SuggestionRequest, TicketCreate, TicketUpdate
from storefront.notifications import notify

router = APIRouter(prefix="/support", tags=["support"])


@router.post("", status_code=201)
async def open_ticket(
    payload: TicketCreate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not payload.subject or not payload.description:
        raise HTTPException(status_code=400, detail="Subject and description are required")

    ticket = await create_ticket(db, user.id, payload.subject, payload.description)
    data = ticket_to_dict(ticket, with_history=True)
    await write_audit(user.id, "create", "support_tickets", ticket.id, {"category": data["category"]})
    background_tasks.add_task(notify, "ticket_created", to=user.email, ticket=data)
    return {"success": True, "data": {"ticket": data}}


@router.get("/mine")
async def my_tickets(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": {"tickets": await list_user_tickets(db, user.id)}}


@router.post("/suggestions")
async def suggestions(payload: SuggestionRequest):
    category = ai.classify(payload.text)
    return {"success": True, "data": {"category": category, "solutions": ai.suggested_solutions(category)}}


@router.get("")
async def all_tickets(
    status: Optional[str] = None,
    admin: User = Depends(admin_required),
    db: AsyncSession = Depends(get_db),
):
    return {"success": True, "data": {"tickets": await list_tickets(db, status)}}


@router.get("/{ticket_id}")
async def ticket_detail(ticket_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    ticket = await get_ticket(db, ticket_id, user=user)
    return {"success": True, "data": {"ticket": ticket_to_dict(ticket, with_history=True)}}


@router.patch("/{ticket_id}")
async def change_ticket_status(
    ticket_id: str,
    payload: TicketUpdate,
    background_tasks: BackgroundTasks,
    admin: User = Depends(admin_required),
    db: AsyncSession = Depends(get_db),
):
    ticket = await update_ticket_status(db, ticket_id, payload.status, payload.note, admin.id)
    data = ticket_to_dict(ticket, with_history=True)
    await write_audit(admin.id, "update_status", "support_tickets", ticket.id,
                      {"status": data["status"], "note": payload.note})

    owner = await get_user_by_id(db, ticket.user_id)
    if owner is not None:
        background_tasks.add_task(notify, "ticket_updated", to=owner.email, ticket=data, note=payload.note)
    return {"success": True, "data": {"ticket": data}}
