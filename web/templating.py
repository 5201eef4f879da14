"""Server-side rendering: hand a view name and a context to Jinja2."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from fastapi import Request
from fastapi.templating import Jinja2Templates

from shop.permissions import can_perform

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def render(
    request: Request,
    template_name: str,
    context: Optional[dict[str, Any]] = None,
    *,
    user=None,
    status_code: int = 200,
):
    merged: dict[str, Any] = {"user": user, "error": None}
    merged.update(context or {})
    # Templates call can("manageProducts") to decide which CMS links to show
    merged["can"] = lambda capability: can_perform(merged["user"], capability)
    return templates.TemplateResponse(request, template_name, merged, status_code=status_code)
