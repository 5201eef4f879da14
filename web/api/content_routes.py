"""Content CMS: daily tips and pages (manageContent), plus the admin dashboard (viewAdmin)."""
from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import BaseModel, field_validator
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shop.models import Appointment, Page, Product, Tip, User, get_async_session
from shop.permissions import Capability
from web.api.utils import FormError, blank_to_none, parse_form
from web.auth import require_capability
from web.templating import render

logger = logging.getLogger("fengshui.admin")

router = APIRouter(prefix="/admin", tags=["content"])

require_content = require_capability(Capability.MANAGE_CONTENT)
require_view_admin = require_capability(Capability.VIEW_ADMIN)

RECENT_APPOINTMENTS = 10


class TipForm(BaseModel):
    title: str
    body: Optional[str] = None
    date: dt.date
    video_url: Optional[str] = None

    @field_validator("title", "body", "date", "video_url", mode="before")
    @classmethod
    def strip_blank(cls, v):
        return blank_to_none(v)


class PageForm(BaseModel):
    slug: str
    title: str
    body: Optional[str] = None

    @field_validator("slug", "title", "body", mode="before")
    @classmethod
    def strip_blank(cls, v):
        return blank_to_none(v)


# --- Dashboard ---


@router.get("", response_class=HTMLResponse)
async def dashboard(
    request: Request,
    user: User = Depends(require_view_admin),
    session: AsyncSession = Depends(get_async_session),
):
    """Entity counts and the latest booking requests."""
    counts = {}
    for label, model in (("products", Product), ("tips", Tip), ("pages", Page), ("users", User)):
        counts[label] = (await session.execute(select(func.count()).select_from(model))).scalar_one()
    appointments = (
        await session.execute(
            select(Appointment).order_by(Appointment.id.desc()).limit(RECENT_APPOINTMENTS)
        )
    ).scalars().all()
    return render(
        request, "admin/index.html", {"counts": counts, "appointments": appointments}, user=user
    )


# --- Tips ---


async def list_tips(session: AsyncSession) -> list[Tip]:
    return list((await session.execute(select(Tip).order_by(Tip.date.desc()))).scalars().all())


async def _tip_date_taken(session: AsyncSession, date: dt.date, exclude_id: Optional[int] = None) -> bool:
    stmt = select(Tip.id).where(Tip.date == date)
    if exclude_id is not None:
        stmt = stmt.where(Tip.id != exclude_id)
    return (await session.execute(stmt)).first() is not None


async def _render_tips(request: Request, session: AsyncSession, user: User, error: str):
    return render(
        request,
        "admin/tips.html",
        {"tips": await list_tips(session), "error": error},
        user=user,
        status_code=400,
    )


@router.get("/tips", response_class=HTMLResponse)
async def tips_page(
    request: Request,
    user: User = Depends(require_content),
    session: AsyncSession = Depends(get_async_session),
):
    return render(request, "admin/tips.html", {"tips": await list_tips(session)}, user=user)


@router.post("/tips")
async def create_tip(
    request: Request,
    user: User = Depends(require_content),
    session: AsyncSession = Depends(get_async_session),
):
    """Add a tip. Dates are unique: one tip per day."""
    try:
        form = await parse_form(request, TipForm)
        if await _tip_date_taken(session, form.date):
            raise FormError(f"A tip already exists for {form.date.isoformat()}")
    except FormError as e:
        return await _render_tips(request, session, user, e.message)
    session.add(Tip(**form.model_dump()))
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        await session.refresh(user)
        return await _render_tips(
            request, session, user, f"A tip already exists for {form.date.isoformat()}"
        )
    return RedirectResponse(url="/admin/tips", status_code=303)


@router.post("/tips/{tip_id}/update")
async def update_tip(
    tip_id: int,
    request: Request,
    user: User = Depends(require_content),
    session: AsyncSession = Depends(get_async_session),
):
    tip = await session.get(Tip, tip_id)
    if not tip:
        raise HTTPException(404, "Tip not found")
    try:
        form = await parse_form(request, TipForm)
        if await _tip_date_taken(session, form.date, exclude_id=tip_id):
            raise FormError(f"A tip already exists for {form.date.isoformat()}")
    except FormError as e:
        return await _render_tips(request, session, user, e.message)
    for field, value in form.model_dump().items():
        setattr(tip, field, value)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        await session.refresh(user)
        return await _render_tips(
            request, session, user, f"A tip already exists for {form.date.isoformat()}"
        )
    return RedirectResponse(url="/admin/tips", status_code=303)


@router.post("/tips/{tip_id}/delete")
async def delete_tip(
    tip_id: int,
    user: User = Depends(require_content),
    session: AsyncSession = Depends(get_async_session),
):
    tip = await session.get(Tip, tip_id)
    if not tip:
        raise HTTPException(404, "Tip not found")
    await session.delete(tip)
    await session.commit()
    logger.info("Tip %d deleted by %s", tip_id, user.email)
    return RedirectResponse(url="/admin/tips", status_code=303)


# --- Pages ---


async def list_pages(session: AsyncSession) -> list[Page]:
    return list((await session.execute(select(Page).order_by(Page.id.desc()))).scalars().all())


async def _slug_taken(session: AsyncSession, slug: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(Page.id).where(Page.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(Page.id != exclude_id)
    return (await session.execute(stmt)).first() is not None


async def _render_pages(request: Request, session: AsyncSession, user: User, error: str):
    return render(
        request,
        "admin/pages.html",
        {"pages": await list_pages(session), "error": error},
        user=user,
        status_code=400,
    )


@router.get("/pages", response_class=HTMLResponse)
async def pages_page(
    request: Request,
    user: User = Depends(require_content),
    session: AsyncSession = Depends(get_async_session),
):
    return render(request, "admin/pages.html", {"pages": await list_pages(session)}, user=user)


@router.post("/pages")
async def create_page(
    request: Request,
    user: User = Depends(require_content),
    session: AsyncSession = Depends(get_async_session),
):
    try:
        form = await parse_form(request, PageForm)
        if await _slug_taken(session, form.slug):
            raise FormError(f"Slug '{form.slug}' is already in use")
    except FormError as e:
        return await _render_pages(request, session, user, e.message)
    session.add(Page(**form.model_dump()))
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        await session.refresh(user)
        return await _render_pages(request, session, user, f"Slug '{form.slug}' is already in use")
    return RedirectResponse(url="/admin/pages", status_code=303)


@router.post("/pages/{page_id}/update")
async def update_page(
    page_id: int,
    request: Request,
    user: User = Depends(require_content),
    session: AsyncSession = Depends(get_async_session),
):
    page = await session.get(Page, page_id)
    if not page:
        raise HTTPException(404, "Page not found")
    try:
        form = await parse_form(request, PageForm)
        if await _slug_taken(session, form.slug, exclude_id=page_id):
            raise FormError(f"Slug '{form.slug}' is already in use")
    except FormError as e:
        return await _render_pages(request, session, user, e.message)
    for field, value in form.model_dump().items():
        setattr(page, field, value)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        await session.refresh(user)
        return await _render_pages(request, session, user, f"Slug '{form.slug}' is already in use")
    return RedirectResponse(url="/admin/pages", status_code=303)


@router.post("/pages/{page_id}/delete")
async def delete_page(
    page_id: int,
    user: User = Depends(require_content),
    session: AsyncSession = Depends(get_async_session),
):
    page = await session.get(Page, page_id)
    if not page:
        raise HTTPException(404, "Page not found")
    await session.delete(page)
    await session.commit()
    logger.info("Page %d deleted by %s", page_id, user.email)
    return RedirectResponse(url="/admin/pages", status_code=303)
