"""Product catalog CMS (manageProducts)."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shop.models import Product, User, get_async_session
from shop.permissions import Capability
from web.api.utils import FormError, blank_to_none, parse_form
from web.auth import require_capability
from web.templating import render

logger = logging.getLogger("fengshui.admin")

router = APIRouter(prefix="/admin/products", tags=["products"])

require_products = require_capability(Capability.MANAGE_PRODUCTS)


class ProductForm(BaseModel):
    name: str
    description: Optional[str] = None
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    stock: int = Field(default=0, ge=0)
    image_url: Optional[str] = None

    @field_validator("name", "description", "price", "image_url", mode="before")
    @classmethod
    def strip_blank(cls, v):
        return blank_to_none(v)

    @field_validator("stock", mode="before")
    @classmethod
    def blank_stock(cls, v):
        v = blank_to_none(v)
        return 0 if v is None else v


async def list_products(session: AsyncSession) -> list[Product]:
    result = await session.execute(select(Product).order_by(Product.id.desc()))
    return list(result.scalars().all())


async def _render_list(request: Request, session: AsyncSession, user: User, error: str):
    return render(
        request,
        "admin/products.html",
        {"products": await list_products(session), "error": error},
        user=user,
        status_code=400,
    )


@router.get("", response_class=HTMLResponse)
async def products_page(
    request: Request,
    user: User = Depends(require_products),
    session: AsyncSession = Depends(get_async_session),
):
    return render(request, "admin/products.html", {"products": await list_products(session)}, user=user)


@router.post("")
async def create_product(
    request: Request,
    user: User = Depends(require_products),
    session: AsyncSession = Depends(get_async_session),
):
    try:
        form = await parse_form(request, ProductForm)
    except FormError as e:
        return await _render_list(request, session, user, e.message)
    product = Product(**form.model_dump())
    session.add(product)
    await session.commit()
    logger.info("Product %d (%s) created by %s", product.id, product.name, user.email)
    return RedirectResponse(url="/admin/products", status_code=303)


@router.post("/{product_id}/update")
async def update_product(
    product_id: int,
    request: Request,
    user: User = Depends(require_products),
    session: AsyncSession = Depends(get_async_session),
):
    product = await session.get(Product, product_id)
    if not product:
        raise HTTPException(404, "Product not found")
    try:
        form = await parse_form(request, ProductForm)
    except FormError as e:
        return await _render_list(request, session, user, e.message)
    for field, value in form.model_dump().items():
        setattr(product, field, value)
    await session.commit()
    return RedirectResponse(url="/admin/products", status_code=303)


@router.post("/{product_id}/delete")
async def delete_product(
    product_id: int,
    user: User = Depends(require_products),
    session: AsyncSession = Depends(get_async_session),
):
    product = await session.get(Product, product_id)
    if not product:
        raise HTTPException(404, "Product not found")
    await session.delete(product)
    await session.commit()
    logger.info("Product %d deleted by %s", product_id, user.email)
    return RedirectResponse(url="/admin/products", status_code=303)
