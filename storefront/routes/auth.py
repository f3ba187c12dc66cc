# storefront/routes/auth.py
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.audit import write_audit
from storefront.auth_utils import create_access_token, get_current_user
from storefront.config import COOKIE_SECURE, FRONTEND_URL, ACCESS_TOKEN_EXPIRE_MINUTES
from storefront.db.database import get_db
from storefront.db.functions.users import authenticate_user, register_user, verify_email_token
from storefront.db.models import User
from storefront.db.schemas import UserCreate, UserLogin
from storefront.notifications import notify

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201)
async def register(payload: UserCreate, background_tasks: BackgroundTasks, db: AsyncSession = Depends(get_db)):
    if not payload.name or not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Missing fields")

    user, token = await register_user(db, payload.name, payload.email, payload.password)
    background_tasks.add_task(notify, "verification_email", to=user.email, token=token)
    await write_audit(user.id, "register", "users", user.id)
    return {"success": True, "data": {"id": user.id, "email": user.email}}


@router.post("/login")
async def login(payload: UserLogin, response: Response, db: AsyncSession = Depends(get_db)):
    user = await authenticate_user(db, payload.email, payload.password)
    token = create_access_token({"id": user.id, "role": user.role.value})
    response.set_cookie(
        "token",
        token,
        httponly=True,
        samesite="lax",
        secure=COOKIE_SECURE,
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    await write_audit(user.id, "login", "users", user.id)
    return {
        "success": True,
        "data": {
            "user": {"id": user.id, "name": user.name, "role": user.role.value},
            "token": token,
        },
    }


@router.get("/verify-email")
async def verify_email(token: str = None, db: AsyncSession = Depends(get_db)):
    if not token:
        raise HTTPException(status_code=400, detail="Missing token")
    user = await verify_email_token(db, token)
    await write_audit(user.id, "verify_email", "users", user.id)
    return RedirectResponse(f"{FRONTEND_URL}/verified", status_code=302)


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return {
        "success": True,
        "data": {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "role": user.role.value,
            "emailVerified": user.email_verified,
        },
    }


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie("token")
    return {"success": True, "data": None}
