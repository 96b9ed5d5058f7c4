"""
FastAPI dependencies — database session, authenticated principal,
admin guard and the per-app service instances kept on ``app.state``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, Query, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from qmstats.core.config import settings
from qmstats.core.security import decode_access_token
from qmstats.db.session import async_session_factory
from qmstats.models.user import User
from qmstats.services.live_updates import LiveUpdateRegistry
from qmstats.services.mailer import Mailer

# auto_error=False so the cookie can be tried when the header is missing
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


@dataclass(frozen=True)
class Principal:
    id: int
    email: str
    first_name: str
    surname: str
    is_admin: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.surname}".strip()

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            surname=user.surname,
            is_admin=is_admin_email(user.email),
        )


def is_admin_email(email: str | None) -> bool:
    return (email or "").strip().lower() in settings.ADMIN_EMAILS


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Auth dependencies ───────────────────────────────────────────────
def _strip_bearer(value: str | None) -> str | None:
    if value and value.startswith("Bearer "):
        return value.split(" ", 1)[1]
    return value or None


async def _load_user(db: AsyncSession, token: str | None) -> User:
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exc

    payload = decode_access_token(token)
    if payload is None or payload.get("sub") is None:
        raise credentials_exc

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise credentials_exc from None

    user = await db.get(User, user_id)
    if user is None:
        raise credentials_exc
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return user


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the caller from the Bearer header, falling back to the cookie."""
    return await _load_user(db, token or _strip_bearer(access_token))


async def get_current_principal(
    user: User = Depends(get_current_user),
) -> Principal:
    return Principal.from_user(user)


async def require_admin(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return principal


async def require_stream_admin(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),
    query_token: Optional[str] = Query(default=None, alias="token"),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Admin guard for EventSource clients, which cannot send headers."""
    user = await _load_user(db, token or query_token or _strip_bearer(access_token))
    principal = Principal.from_user(user)
    if not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return principal


# ── App-scoped services ─────────────────────────────────────────────
def get_live_updates(request: Request) -> LiveUpdateRegistry:
    return request.app.state.live_updates


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer
