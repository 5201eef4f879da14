"""Public pages: home, catalog, tips, content pages, booking."""
from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shop.models import Appointment, NavigationEntry, Page, Product, Tip, User, get_async_session
from web.api.settings_routes import load_settings
from web.api.utils import FormError, blank_to_none, parse_form
from web.auth import get_current_user
from web.templating import render

logger = logging.getLogger("fengshui.public")

router = APIRouter(tags=["public"])

HOME_PRODUCT_LIMIT = 6


class BookingForm(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    service: str
    date: dt.date
    time: str = Field(pattern=r"^\d{2}:\d{2}$")
    message: Optional[str] = None

    @field_validator("name", "email", "service", "time", "message", mode="before")
    @classmethod
    def strip_blank(cls, v):
        return blank_to_none(v)


@router.get("/api/health")
async def health():
    return {"status": "ok"}


@router.get("/", response_class=HTMLResponse)
async def home(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    """Today's tip, navigation and the newest products."""
    tip = (
        await session.execute(select(Tip).where(Tip.date == dt.date.today()))
    ).scalar_one_or_none()
    nav = (
        await session.execute(select(NavigationEntry).order_by(NavigationEntry.order_index))
    ).scalars().all()
    products = (
        await session.execute(select(Product).order_by(Product.id.desc()).limit(HOME_PRODUCT_LIMIT))
    ).scalars().all()
    settings = await load_settings(session)
    return render(
        request,
        "index.html",
        {"tip": tip, "nav": nav, "products": products, "settings": settings},
        user=user,
    )


@router.get("/products", response_class=HTMLResponse)
async def products(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    rows = (await session.execute(select(Product).order_by(Product.id.desc()))).scalars().all()
    favorites = set(user.favorites or []) if user else set()
    return render(request, "products.html", {"products": rows, "favorites": favorites}, user=user)


@router.get("/tips", response_class=HTMLResponse)
async def tips(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    rows = (await session.execute(select(Tip).order_by(Tip.date.desc()))).scalars().all()
    return render(request, "tips.html", {"tips": rows}, user=user)


@router.get("/services", response_class=HTMLResponse)
async def services(request: Request, user: Optional[User] = Depends(get_current_user)):
    return render(request, "services.html", user=user)


@router.get("/p/{slug}", response_class=HTMLResponse)
async def page(
    slug: str,
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    row = (await session.execute(select(Page).where(Page.slug == slug))).scalar_one_or_none()
    if not row:
        raise HTTPException(404, "Page not found")
    return render(request, "page.html", {"page": row}, user=user)


@router.get("/book", response_class=HTMLResponse)
async def book_form(request: Request, user: Optional[User] = Depends(get_current_user)):
    return render(request, "book.html", user=user)


@router.post("/book", response_class=HTMLResponse)
async def book(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    """Store a pending appointment. Anyone may book; logged-in users are linked to it."""
    try:
        form = await parse_form(request, BookingForm)
        name = form.name or (user.name if user else "")
        email = form.email or (user.email if user else None)
        if not email:
            raise FormError("Contact email required")
    except FormError as e:
        return render(request, "book.html", {"error": e.message}, user=user, status_code=400)

    appointment = Appointment(
        user_id=user.id if user else None,
        name=name or "",
        email=email,
        service=form.service,
        date=form.date.isoformat(),
        time=form.time,
        message=form.message,
        status="pending",
    )
    session.add(appointment)
    await session.commit()
    logger.info("Appointment %s booked for %s %s", appointment.id, appointment.date, appointment.time)
    return render(request, "book_success.html", {"appointment": appointment}, user=user)
