"""FastAPI dependencies."""

from fastapi import Request

from newsdesk.config import Settings, get_settings
from newsdesk.middleware.auth import TokenSigner
from newsdesk.services.pagination import ListingViews
from newsdesk.storage.gateway import PersistenceGateway


def get_gateway(request: Request) -> PersistenceGateway:
    """The gateway bound at start-up."""
    return request.app.state.gateway


def get_signer(request: Request) -> TokenSigner:
    return request.app.state.signer


def get_views(request: Request) -> ListingViews:
    return request.app.state.views


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def admin_session(request: Request) -> str:
    """Session key of the authenticated admin (its token)."""
    return request.state.admin_token


def client_fingerprint(request: Request) -> str:
    """Identify a public client by IP address.

    Uses X-Forwarded-For header if behind a proxy, otherwise uses
    the direct client IP address.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP (original client)
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"
