"""Error taxonomy shared by the storage layer, the engines and the HTTP edge.

A missing record is not an error: adapters return ``None`` (or ``False`` for
deletes) and the HTTP layer turns that into a 404.
"""

from typing import Optional


class NewsdeskError(Exception):
    """Base class for all newsdesk errors."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""


class ValidationFailure(NewsdeskError):
    """Caller-supplied data violates a precondition."""

    status_code = 400


class BackendUnavailable(NewsdeskError):
    """The active storage backend could not be reached."""

    status_code = 503

    def __init__(self, message: str = "", backend: Optional[str] = None):
        super().__init__(message)
        self.backend = backend


class Unauthorized(NewsdeskError):
    """Missing, expired or forged admin token."""

    status_code = 401


class PartialBulkFailure(NewsdeskError):
    """A bulk write was attempted and rolled back; no record changed."""

    status_code = 409

    def __init__(self, message: str = "", ids: Optional[list] = None):
        super().__init__(message)
        self.ids = list(ids or [])
