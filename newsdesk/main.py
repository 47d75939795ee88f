"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from newsdesk import __version__
from newsdesk.config import Settings, get_settings
from newsdesk.errors import NewsdeskError
from newsdesk.middleware import AdminAuthMiddleware, TokenSigner
from newsdesk.routers import admin, auth, drafts, public
from newsdesk.services.pagination import ListingViews
from newsdesk.storage import PersistenceGateway, select_backend

logger = logging.getLogger(__name__)


async def handle_newsdesk_error(request: Request, exc: NewsdeskError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"detail": problems or "Invalid request"})


def create_app(
    gateway: Optional[PersistenceGateway] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the application.

    Args:
        gateway: Gateway to serve from; chosen from settings when None.
        settings: Configuration; read from the environment when None.

    Returns:
        The configured FastAPI application.
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if gateway is None:
        gateway = PersistenceGateway(select_backend(settings))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        await gateway.ensure_ready()
        logger.info("Serving content from the %s backend", gateway.kind().value)
        yield
        await gateway.close()

    app = FastAPI(
        title="Newsdesk",
        description="Content persistence and admin API for a news site",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.signer = TokenSigner(
        settings.token_secret, max_age=timedelta(hours=settings.token_max_age_hours)
    )
    app.state.views = ListingViews(gateway, page_size=settings.page_size)

    app.add_exception_handler(NewsdeskError, handle_newsdesk_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)

    app.add_middleware(AdminAuthMiddleware)

    app.include_router(auth.router)
    # Before the admin router, whose /{collection}/{id} would also match
    app.include_router(drafts.router)
    app.include_router(admin.router)
    app.include_router(public.router)
    return app


app = create_app()
