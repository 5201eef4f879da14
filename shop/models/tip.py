"""Daily feng shui tip model."""
from __future__ import annotations

import datetime as dt
from typing import Optional

from sqlalchemy import Date, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from shop.models.base import Base


class Tip(Base):
    """One tip per calendar date."""

    __tablename__ = "tips"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    date: Mapped[dt.date] = mapped_column(Date, unique=True, nullable=False, index=True)
    video_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
