# storefront/db/functions/users.py
from datetime import datetime, timedelta

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from storefront.auth_utils import generate_token, hash_password, verify_password
from storefront.db.models import RoleEnum, User, VerificationToken

VERIFICATION_TTL = timedelta(hours=24)


async def get_user_by_email(db: AsyncSession, email: str):
    result = await db.execute(select(User).filter(User.email == email))
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: int):
    result = await db.execute(select(User).filter(User.id == user_id))
    return result.scalar_one_or_none()


async def register_user(db: AsyncSession, name: str, email: str, password: str):
    """Create an unverified user plus a 24h email verification token.

    Returns `(user, token)`.
    """
    if await get_user_by_email(db, email):
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(
        name=name,
        email=email,
        hashed_password=hash_password(password),
        role=RoleEnum.user,
        email_verified=False,
    )
    db.add(user)
    await db.flush()

    token = generate_token()
    db.add(VerificationToken(
        user_id=user.id,
        token=token,
        type="email_verify",
        expires_at=datetime.utcnow() + VERIFICATION_TTL,
    ))
    await db.commit()
    return user, token


async def authenticate_user(db: AsyncSession, email: str, password: str):
    user = await get_user_by_email(db, email) if email else None
    if not user or not verify_password(password or "", user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.email_verified:
        raise HTTPException(status_code=403, detail="Please verify your email")
    user.last_login = datetime.utcnow()
    await db.commit()
    return user


async def verify_email_token(db: AsyncSession, token: str):
    result = await db.execute(
        select(VerificationToken).filter(
            VerificationToken.token == token,
            VerificationToken.type == "email_verify",
        )
    )
    vt = result.scalar_one_or_none()
    if not vt or vt.expires_at < datetime.utcnow():
        raise HTTPException(status_code=400, detail="Invalid token")

    user = await get_user_by_id(db, vt.user_id)
    user.email_verified = True
    await db.delete(vt)
    await db.commit()
    return user
