"""Site settings CMS: contact info, social links, outbound mail (manageSystem)."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shop.models import SiteSettings, User, get_async_session
from shop.permissions import Capability
from web.auth import require_capability
from web.templating import render

logger = logging.getLogger("fengshui.admin")

router = APIRouter(prefix="/admin/settings", tags=["settings"])

# The only keys the CMS may write; anything else in a submitted form is dropped
DEFAULTS = {
    "contact_address": "123 Nova Central",
    "contact_email": "info@fengshuifortuneshop.com",
    "social_facebook": "https://facebook.com",
    "social_instagram": "https://instagram.com",
    "social_pinterest": "https://pinterest.com",
    "smtp_host": "",
    "smtp_port": "587",
    "smtp_user": "",
    "smtp_pass": "",
}
SETTING_KEYS = tuple(DEFAULTS)

require_system = require_capability(Capability.MANAGE_SYSTEM)


async def load_settings(session: AsyncSession) -> dict[str, str]:
    """All known settings, stored values over defaults."""
    result = await session.execute(select(SiteSettings).where(SiteSettings.key.in_(SETTING_KEYS)))
    stored = {row.key: row.value for row in result.scalars().all()}
    return {key: stored.get(key, default) for key, default in DEFAULTS.items()}


async def save_settings(session: AsyncSession, values: dict[str, str]) -> None:
    """Upsert every known key in one transaction. Missing keys become ''; unknown keys are ignored."""
    result = await session.execute(select(SiteSettings).where(SiteSettings.key.in_(SETTING_KEYS)))
    existing = {row.key: row for row in result.scalars().all()}
    for key in SETTING_KEYS:
        value = str(values.get(key) or "")
        if key in existing:
            existing[key].value = value
        else:
            session.add(SiteSettings(key=key, value=value))
    await session.commit()


@router.get("", response_class=HTMLResponse)
async def settings_page(
    request: Request,
    user: User = Depends(require_system),
    session: AsyncSession = Depends(get_async_session),
):
    return render(request, "admin/settings.html", {"settings": await load_settings(session)}, user=user)


@router.post("")
async def update_settings(
    request: Request,
    user: User = Depends(require_system),
    session: AsyncSession = Depends(get_async_session),
):
    form = await request.form()
    values = {k: v for k, v in form.items() if isinstance(v, str)}
    await save_settings(session, values)
    logger.info("Settings updated by %s", user.email)
    return RedirectResponse(url="/admin/settings", status_code=303)
