"""Middleware components."""

from newsdesk.middleware.auth import AdminAuthMiddleware, TokenSigner, check_password

__all__ = ["AdminAuthMiddleware", "TokenSigner", "check_password"]
