# storefront/auth_utils.py
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from storefront.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from storefront.db.database import get_db
from storefront.db.models import RoleEnum, Seller, User

PBKDF2_ITERATIONS = 260000

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def hash_password(password: str) -> str:
    """Salted PBKDF2-SHA256 hash stored as `salt$hexdigest`."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"{salt}${digest.hex()}"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        salt, expected = hashed_password.split("$", 1)
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", plain_password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return hmac.compare_digest(digest.hex(), expected)


def create_access_token(data: dict):
    to_encode = data.copy()
    expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if payload.get("id") is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return payload


def _token_from_request(request: Request, bearer: Optional[str]) -> Optional[str]:
    return request.cookies.get("token") or bearer


async def get_current_user(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    token = _token_from_request(request, bearer)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    payload = verify_token(token)
    result = await db.execute(select(User).filter(User.id == payload["id"]))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


async def get_optional_user(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    token = _token_from_request(request, bearer)
    if not token:
        return None
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None
    result = await db.execute(select(User).filter(User.id == payload.get("id")))
    return result.scalar_one_or_none()


async def admin_required(user: User = Depends(get_current_user)) -> User:
    if user.role != RoleEnum.admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    return user


async def seller_api_key(
    x_api_key: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> Seller:
    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key required")
    result = await db.execute(
        select(Seller).filter(Seller.api_key == x_api_key, Seller.status == "active")
    )
    seller = result.scalar_one_or_none()
    if not seller:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return seller


def generate_token(nbytes: int = 32) -> str:
    return secrets.token_hex(nbytes)
