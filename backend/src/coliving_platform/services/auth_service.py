"""Authentication service: password hashing and JWT token management."""

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.app.config import get_settings
from coliving_platform.domain.enums import UserRole
from coliving_platform.domain.models import User, utcnow

logger = logging.getLogger(__name__)
settings = get_settings()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(user_id: str, role: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expiration_minutes)
    payload = {"sub": user_id, "role": role, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User | None:
    """Return the active user for these credentials and stamp the login time."""
    user = await get_user_by_email(db, email)
    if user is None or not user.is_active or not verify_password(password, user.password_hash):
        return None
    user.last_login_at = utcnow()
    await db.commit()
    return user


async def create_user(
    db: AsyncSession,
    email: str,
    password: str,
    name: str,
    role: str = UserRole.PROPERTY_MANAGER.value,
    phone: str | None = None,
) -> User:
    user = User(
        email=email.lower(),
        password_hash=hash_password(password),
        name=name,
        role=UserRole(role).value,
        phone=phone,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Created %s account %s", user.role, user.id)
    return user
