"""Database models."""
from shop.models.base import Base, get_async_session, init_db
from shop.models.user import User
from shop.models.product import Product
from shop.models.tip import Tip
from shop.models.appointment import Appointment
from shop.models.page import Page
from shop.models.navigation import NavigationEntry
from shop.models.site_settings import SiteSettings  # noqa: F401 - for metadata

__all__ = [
    "Base",
    "User",
    "Product",
    "Tip",
    "Appointment",
    "Page",
    "NavigationEntry",
    "SiteSettings",
    "get_async_session",
    "init_db",
]
