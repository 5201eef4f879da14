"""FastAPI site: public shop pages, accounts and the role-gated CMS."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shop.models import init_db
from shop.permissions import AuthorizationDenied
from web.sessions import SessionStore
from web.templating import render

from web.api.auth_routes import router as auth_router
from web.api.catalog_routes import router as catalog_router
from web.api.content_routes import router as content_router
from web.api.navigation_routes import router as navigation_router
from web.api.public_routes import router as public_router
from web.api.settings_routes import router as settings_router
from web.api.user_routes import router as user_router

logger = logging.getLogger("fengshui")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(title="Feng Shui Fortune Shop", lifespan=lifespan)
app.state.sessions = SessionStore()


@app.exception_handler(AuthorizationDenied)
async def authorization_denied_handler(request: Request, exc: AuthorizationDenied):
    """403 with no mutation: guards run before any store write."""
    logger.info("403 %s %s: %s", request.method, request.url.path, exc.detail)
    return PlainTextResponse(exc.detail, status_code=403)


@app.exception_handler(StarletteHTTPException)
async def not_found_page_handler(request: Request, exc: StarletteHTTPException):
    """Render the HTML 404 view for browser routes; everything else gets the default handling."""
    if exc.status_code == 404 and not request.url.path.startswith("/api"):
        return render(request, "404.html", {"message": exc.detail}, status_code=404)
    return await http_exception_handler(request, exc)


app.include_router(public_router)
app.include_router(auth_router)
app.include_router(content_router)
app.include_router(catalog_router)
app.include_router(navigation_router)
app.include_router(settings_router)
app.include_router(user_router)
