"""HTTP routers."""

from newsdesk.routers import admin, auth, drafts, public

__all__ = ["admin", "auth", "drafts", "public"]
