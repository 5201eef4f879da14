"""Authentication for the web site: password hashing, session cookies, capability checks."""
from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import Response
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import config
from shop.models import User, get_async_session
from shop.permissions import AuthorizationDenied, Capability, can_perform
from web.sessions import SessionStore

logger = logging.getLogger("fengshui.auth")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def _prepare_password(password: str) -> str:
    """Bcrypt has a 72-byte limit. Pre-hash longer passwords with SHA256."""
    encoded = password.encode("utf-8")
    if len(encoded) > 72:
        return hashlib.sha256(encoded).hexdigest()
    return password


def hash_password(password: str) -> str:
    return pwd_context.hash(_prepare_password(password))


def verify_password(plain: str, hashed: str) -> bool:
    if not plain or not hashed:
        return False
    return pwd_context.verify(_prepare_password(plain), hashed)


def create_session_token(sid: str, user_id: int) -> str:
    """Signed cookie value naming a server-held session. Carries no credentials."""
    expire = datetime.now(timezone.utc) + timedelta(days=config.SESSION_EXPIRE_DAYS)
    payload = {"sid": sid, "sub": str(user_id), "exp": expire}
    return jwt.encode(payload, config.SESSION_SECRET, algorithm=config.SESSION_ALGORITHM)


def decode_session_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, config.SESSION_SECRET, algorithms=[config.SESSION_ALGORITHM])
    except jwt.InvalidTokenError:
        return None


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.sessions


def _session_id(request: Request) -> Optional[str]:
    token = request.cookies.get(config.SESSION_COOKIE_NAME)
    if not token:
        return None
    payload = decode_session_token(token)
    if not payload:
        return None
    sid = payload.get("sid")
    return sid if isinstance(sid, str) and sid else None


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_async_session),
    sessions: SessionStore = Depends(get_session_store),
) -> Optional[User]:
    """Return the logged-in user, or None for anonymous. Bad or stale cookies are anonymous."""
    sid = _session_id(request)
    if not sid:
        return None
    user_id = sessions.get(sid)
    if user_id is None:
        return None
    return await session.get(User, user_id)


def start_session(request: Request, response: Response, sessions: SessionStore, user: User) -> None:
    """Log the user in: store only the user id server-side, hand the client a signed session id.

    Any session the browser already holds is destroyed first, so its old cookie stops working.
    """
    sessions.destroy(_session_id(request))
    sid = sessions.create(user.id)
    response.set_cookie(
        config.SESSION_COOKIE_NAME,
        create_session_token(sid, user.id),
        max_age=config.SESSION_EXPIRE_DAYS * 24 * 3600,
        httponly=True,
        samesite="lax",
        secure=config.COOKIE_SECURE,
    )


def end_session(request: Request, response: Response, sessions: SessionStore) -> None:
    sid = _session_id(request)
    if sid:
        sessions.destroy(sid)
    response.delete_cookie(config.SESSION_COOKIE_NAME)


async def require_user(
    user: Optional[User] = Depends(get_current_user),
) -> User:
    """Require authenticated user. Raises 401 if not logged in."""
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user


def require_capability(capability: Capability):
    """Dependency factory: the logged-in user must hold ``capability``; anonymous is denied too.

    Runs before the route body, so a denied request never reaches form parsing or the store.
    """

    async def _dep(
        request: Request,
        user: Optional[User] = Depends(get_current_user),
    ) -> User:
        if not can_perform(user, capability):
            logger.warning(
                "Denied %s %s: %s lacks %s",
                request.method,
                request.url.path,
                user.email if user else "anonymous",
                capability.value,
            )
            raise AuthorizationDenied("Forbidden")
        return user

    return _dep
