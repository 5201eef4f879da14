"""Shared helpers for form-driven routes."""
from __future__ import annotations

from typing import TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

FormModel = TypeVar("FormModel", bound=BaseModel)


class FormError(Exception):
    """Submitted form failed validation; message is shown inline on the re-rendered form."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def validation_message(exc: ValidationError) -> str:
    """First readable message from a pydantic error, e.g. 'price: Input should be greater than or equal to 0'."""
    errors = exc.errors()
    if not errors:
        return "Invalid input"
    err = errors[0]
    field = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
    msg = err.get("msg", "Invalid value")
    return f"{field}: {msg}" if field else msg


async def parse_form(request: Request, model: type[FormModel]) -> FormModel:
    """Validate the request's form (or JSON) body against ``model``. Raises FormError."""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            raw = await request.json()
        except ValueError as e:
            raise FormError("Malformed JSON body") from e
        data = raw if isinstance(raw, dict) else {}
    else:
        form = await request.form()
        data = {k: v for k, v in form.items() if isinstance(v, str)}
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise FormError(validation_message(e)) from e


def blank_to_none(v):
    """Treat empty/whitespace form fields as missing."""
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v
