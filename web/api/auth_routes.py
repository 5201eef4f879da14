"""Account routes: register, login, logout, account page, favorites."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import config
from shop.models import Product, User, get_async_session
from shop.permissions import Role
from web.api.utils import FormError, blank_to_none, parse_form
from web.auth import (
    end_session,
    get_current_user,
    get_session_store,
    get_user_by_email,
    hash_password,
    require_user,
    start_session,
    verify_password,
)
from web.sessions import SessionStore
from web.templating import render

logger = logging.getLogger("fengshui.auth")

router = APIRouter(tags=["auth"])


class RegisterForm(BaseModel):
    name: str = ""
    email: Optional[str] = None
    password: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        v = blank_to_none(v)
        return v.lower() if isinstance(v, str) else v

    @field_validator("password", mode="before")
    @classmethod
    def blank_password(cls, v):
        return v or None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return (v or "").strip()


class LoginForm(RegisterForm):
    pass


class FavoriteToggle(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(alias="productId")


@router.get("/register", response_class=HTMLResponse)
async def register_form(request: Request, user: Optional[User] = Depends(get_current_user)):
    return render(request, "auth/register.html", user=user)


@router.post("/register")
async def register(
    request: Request,
    session: AsyncSession = Depends(get_async_session),
    sessions: SessionStore = Depends(get_session_store),
):
    """Create a subscriber account and log it in. The role is never taken from the form."""
    try:
        form = await parse_form(request, RegisterForm)
        if not form.email or not form.password:
            raise FormError("Email and password required")
        if await get_user_by_email(session, form.email):
            raise FormError("Email already registered")
    except FormError as e:
        return render(request, "auth/register.html", {"error": e.message}, status_code=400)

    user = User(
        name=form.name,
        email=form.email,
        password_hash=hash_password(form.password),
        role=Role.SUBSCRIBER.value,
        favorites=[],
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        return render(
            request, "auth/register.html", {"error": "Email already registered"}, status_code=400
        )
    await session.refresh(user)
    logger.info("Registered user %s (id=%s)", user.email, user.id)

    response = RedirectResponse(url="/account", status_code=303)
    start_session(request, response, sessions, user)
    return response


@router.get("/login", response_class=HTMLResponse)
async def login_form(request: Request, user: Optional[User] = Depends(get_current_user)):
    return render(request, "auth/login.html", user=user)


async def _bootstrap_admin(session: AsyncSession, email: str, password: str) -> Optional[User]:
    """Create the first admin when INITIAL_ADMIN_PASSWORD is set and the login matches it."""
    if not (
        config.INITIAL_ADMIN_PASSWORD
        and email == config.INITIAL_ADMIN_EMAIL.lower()
        and password == config.INITIAL_ADMIN_PASSWORD
    ):
        return None
    user = User(
        name="Site Admin",
        email=email,
        password_hash=hash_password(password),
        role=Role.ADMIN.value,
        favorites=[],
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    logger.info("Bootstrapped initial admin %s", email)
    return user


@router.post("/login")
async def login(
    request: Request,
    session: AsyncSession = Depends(get_async_session),
    sessions: SessionStore = Depends(get_session_store),
):
    try:
        form = await parse_form(request, LoginForm)
    except FormError as e:
        return render(request, "auth/login.html", {"error": e.message}, status_code=400)
    if not form.email or not form.password:
        return render(
            request, "auth/login.html", {"error": "Email and password required"}, status_code=400
        )

    user = await get_user_by_email(session, form.email)
    if not user:
        user = await _bootstrap_admin(session, form.email, form.password)
    elif not verify_password(form.password, user.password_hash):
        user = None
    if not user:
        logger.info("Failed login for %s", form.email)
        return render(request, "auth/login.html", {"error": "Invalid credentials"}, status_code=401)

    logger.info("Login %s (role=%s)", user.email, user.role)
    response = RedirectResponse(url="/account", status_code=303)
    start_session(request, response, sessions, user)
    return response


@router.post("/logout")
async def logout(request: Request, sessions: SessionStore = Depends(get_session_store)):
    response = RedirectResponse(url="/", status_code=303)
    end_session(request, response, sessions)
    return response


@router.get("/account", response_class=HTMLResponse)
async def account(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    """Logged-in user's profile and favorite products."""
    if not user:
        return RedirectResponse(url="/login", status_code=303)
    favorites = list(user.favorites or [])
    products = []
    if favorites:
        result = await session.execute(select(Product).where(Product.id.in_(favorites)))
        products = result.scalars().all()
    return render(
        request, "account.html", {"products": products, "favorites": favorites}, user=user
    )


@router.post("/favorites/toggle")
async def toggle_favorite(
    request: Request,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_async_session),
):
    """Add the product to the user's favorites if absent, remove it if present.

    JSON callers get the new list back; a plain form post from the catalog is sent back there.
    """
    try:
        body = await parse_form(request, FavoriteToggle)
    except FormError as e:
        raise HTTPException(400, e.message) from e

    favorites = list(user.favorites or [])
    if body.product_id in favorites:
        favorites = [pid for pid in favorites if pid != body.product_id]
    else:
        favorites.append(body.product_id)
    user.favorites = favorites
    await session.commit()
    if not request.headers.get("content-type", "").startswith("application/json"):
        return RedirectResponse(url="/products", status_code=303)
    return {"ok": True, "favorites": favorites}
