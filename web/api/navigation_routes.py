"""Navigation menu CMS (manageSystem)."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shop.models import NavigationEntry, User, get_async_session
from shop.permissions import Capability
from web.api.utils import FormError, blank_to_none, parse_form
from web.auth import require_capability
from web.templating import render

logger = logging.getLogger("fengshui.admin")

router = APIRouter(prefix="/admin/navigation", tags=["navigation"])

require_system = require_capability(Capability.MANAGE_SYSTEM)


class NavigationForm(BaseModel):
    label: str
    url: str
    order_index: Optional[int] = Field(default=None, ge=0)

    @field_validator("label", "url", "order_index", mode="before")
    @classmethod
    def strip_blank(cls, v):
        return blank_to_none(v)


async def list_navigation(session: AsyncSession) -> list[NavigationEntry]:
    result = await session.execute(
        select(NavigationEntry).order_by(NavigationEntry.order_index, NavigationEntry.id)
    )
    return list(result.scalars().all())


async def next_order_index(session: AsyncSession) -> int:
    """One past the current maximum, 0 for an empty menu."""
    current = (await session.execute(select(func.max(NavigationEntry.order_index)))).scalar()
    return 0 if current is None else current + 1


async def _render_list(request: Request, session: AsyncSession, user: User, error: str, status_code: int):
    return render(
        request,
        "admin/navigation.html",
        {"nav": await list_navigation(session), "error": error},
        user=user,
        status_code=status_code,
    )


@router.get("", response_class=HTMLResponse)
async def navigation_page(
    request: Request,
    user: User = Depends(require_system),
    session: AsyncSession = Depends(get_async_session),
):
    return render(request, "admin/navigation.html", {"nav": await list_navigation(session)}, user=user)


@router.post("")
async def create_navigation(
    request: Request,
    user: User = Depends(require_system),
    session: AsyncSession = Depends(get_async_session),
):
    """Append a menu entry after the current last one."""
    try:
        form = await parse_form(request, NavigationForm)
    except FormError as e:
        return await _render_list(request, session, user, e.message, 400)
    entry = NavigationEntry(
        label=form.label,
        url=form.url,
        order_index=await next_order_index(session),
    )
    session.add(entry)
    await session.commit()
    logger.info("Navigation entry %r added at %d by %s", entry.label, entry.order_index, user.email)
    return RedirectResponse(url="/admin/navigation", status_code=303)


@router.post("/{entry_id}/update")
async def update_navigation(
    entry_id: int,
    request: Request,
    user: User = Depends(require_system),
    session: AsyncSession = Depends(get_async_session),
):
    entry = await session.get(NavigationEntry, entry_id)
    if not entry:
        raise HTTPException(404, "Navigation entry not found")
    try:
        form = await parse_form(request, NavigationForm)
    except FormError as e:
        return await _render_list(request, session, user, e.message, 400)
    entry.label = form.label
    entry.url = form.url
    if form.order_index is not None:
        entry.order_index = form.order_index
    await session.commit()
    return RedirectResponse(url="/admin/navigation", status_code=303)


@router.post("/{entry_id}/delete")
async def delete_navigation(
    entry_id: int,
    user: User = Depends(require_system),
    session: AsyncSession = Depends(get_async_session),
):
    entry = await session.get(NavigationEntry, entry_id)
    if not entry:
        raise HTTPException(404, "Navigation entry not found")
    await session.delete(entry)
    await session.commit()
    logger.info("Navigation entry %d deleted by %s", entry_id, user.email)
    return RedirectResponse(url="/admin/navigation", status_code=303)
