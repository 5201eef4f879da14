"""User management CMS (manageUsers). Admin accounts are guarded beyond the capability table."""
from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shop.models import User, get_async_session
from shop.permissions import (
    Capability,
    Role,
    check_can_delete,
    check_can_modify,
    check_not_self_delete,
    check_not_self_demotion,
    check_role_assignment,
)
from web.api.utils import FormError, blank_to_none, parse_form
from web.auth import get_session_store, get_user_by_email, hash_password, require_capability
from web.sessions import SessionStore
from web.templating import render

logger = logging.getLogger("fengshui.admin")

router = APIRouter(prefix="/admin/users", tags=["users"])

require_users = require_capability(Capability.MANAGE_USERS)


def _blank_password(v):
    """Passwords are kept verbatim; only an all-whitespace value counts as missing."""
    if isinstance(v, str) and not v.strip():
        return None
    return v


class CreateUserForm(BaseModel):
    name: str = ""
    email: str
    password: Optional[str] = None
    role: Role

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        v = blank_to_none(v)
        return v.lower() if isinstance(v, str) else v

    @field_validator("role", mode="before")
    @classmethod
    def blank_role(cls, v):
        return blank_to_none(v)

    @field_validator("password", mode="before")
    @classmethod
    def blank_password(cls, v):
        return _blank_password(v)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return (v or "").strip()


class UpdateUserForm(BaseModel):
    """Fields left out keep their current value."""

    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[Role] = None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        v = blank_to_none(v)
        return v.lower() if isinstance(v, str) else v

    @field_validator("name", "role", mode="before")
    @classmethod
    def blank(cls, v):
        return blank_to_none(v)

    @field_validator("password", mode="before")
    @classmethod
    def blank_password(cls, v):
        return _blank_password(v)


async def list_users(session: AsyncSession) -> list[User]:
    return list((await session.execute(select(User).order_by(User.id.desc()))).scalars().all())


async def _render_list(request: Request, session: AsyncSession, user: User, error: str):
    return render(
        request,
        "admin/users.html",
        {"users": await list_users(session), "roles": list(Role), "error": error},
        user=user,
        status_code=400,
    )


@router.get("", response_class=HTMLResponse)
async def users_page(
    request: Request,
    user: User = Depends(require_users),
    session: AsyncSession = Depends(get_async_session),
):
    return render(
        request,
        "admin/users.html",
        {"users": await list_users(session), "roles": list(Role)},
        user=user,
    )


@router.post("")
async def create_user(
    request: Request,
    user: User = Depends(require_users),
    session: AsyncSession = Depends(get_async_session),
):
    """Create an account with any role the actor may assign. Without a password a random one is set."""
    try:
        form = await parse_form(request, CreateUserForm)
    except FormError as e:
        return await _render_list(request, session, user, e.message)
    check_role_assignment(user, form.role)
    if await get_user_by_email(session, form.email):
        return await _render_list(request, session, user, "Email already in use")

    created = User(
        name=form.name,
        email=form.email,
        password_hash=hash_password(form.password or secrets.token_urlsafe(16)),
        role=form.role.value,
        favorites=[],
    )
    session.add(created)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        await session.refresh(user)
        return await _render_list(request, session, user, "Email already in use")
    logger.info("User %s (role=%s) created by %s", created.email, created.role, user.email)
    return RedirectResponse(url="/admin/users", status_code=303)


@router.post("/{user_id}/update")
async def update_user(
    user_id: int,
    request: Request,
    user: User = Depends(require_users),
    session: AsyncSession = Depends(get_async_session),
):
    """Update profile, password or role. Admin accounts and the admin role stay with admins."""
    target = await session.get(User, user_id)
    if not target:
        raise HTTPException(404, "User not found")
    try:
        form = await parse_form(request, UpdateUserForm)
    except FormError as e:
        return await _render_list(request, session, user, e.message)

    check_can_modify(user, target)
    if form.role is not None:
        check_role_assignment(user, form.role)
        check_not_self_demotion(user, target.id, form.role)
    if form.email and form.email != target.email:
        other = await get_user_by_email(session, form.email)
        if other and other.id != target.id:
            return await _render_list(request, session, user, "Email already in use")

    if form.name is not None:
        target.name = form.name.strip()
    if form.email:
        target.email = form.email
    if form.password:
        target.password_hash = hash_password(form.password)
    if form.role is not None:
        target.role = form.role.value
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        await session.refresh(user)
        return await _render_list(request, session, user, "Email already in use")
    logger.info("User %d updated by %s (role=%s)", target.id, user.email, target.role)
    return RedirectResponse(url="/admin/users", status_code=303)


@router.post("/{user_id}/delete")
async def delete_user(
    user_id: int,
    user: User = Depends(require_users),
    session: AsyncSession = Depends(get_async_session),
    sessions: SessionStore = Depends(get_session_store),
):
    """Delete an account. Nobody deletes themself; only admins delete admins."""
    check_not_self_delete(user, user_id)
    target = await session.get(User, user_id)
    if not target:
        raise HTTPException(404, "User not found")
    check_can_delete(user, target)
    await session.delete(target)
    await session.commit()
    sessions.destroy_user(user_id)
    logger.info("User %d (%s) deleted by %s", user_id, target.email, user.email)
    return RedirectResponse(url="/admin/users", status_code=303)
