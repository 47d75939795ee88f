"""Admin token authentication for FastAPI.

Tokens have the form ``<issued-at-ms>.<hex HMAC-SHA256 of issued-at-ms>``.
They carry no user identity: any holder of a valid token is an admin.
Every request under the admin prefix must present one as a bearer token.
"""

import hashlib
import hmac
import logging
import time
from datetime import timedelta
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from newsdesk.errors import Unauthorized

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = timedelta(hours=24)
ADMIN_PREFIX = "/api/admin"


class TokenSigner:
    """Issues and verifies time-limited admin tokens.

    Attributes:
        secret: Shared HMAC key.
        max_age: How long a token stays valid after it is issued.
        clock: Returns the current time in seconds (``time.time`` by default).
    """

    def __init__(
        self,
        secret: str,
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._key = secret.encode("utf-8")
        self.max_age = max_age
        self.clock = clock

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _sign(self, timestamp: str) -> str:
        return hmac.new(self._key, timestamp.encode("utf-8"), hashlib.sha256).hexdigest()

    def issue(self) -> str:
        """Create a token stamped with the current time."""
        timestamp = str(self._now_ms())
        return f"{timestamp}.{self._sign(timestamp)}"

    def verify(self, token: Optional[str]) -> bool:
        """Check a token's signature and age.

        Tokens stamped in the future are rejected as well as expired ones.
        """
        if not token or token.count(".") != 1:
            return False
        timestamp, signature = token.split(".")
        if not (timestamp.isascii() and timestamp.isdigit()):
            return False
        age_ms = self._now_ms() - int(timestamp)
        if age_ms < 0 or age_ms > self.max_age.total_seconds() * 1000:
            return False
        expected = self._sign(timestamp)
        return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))

    def require(self, token: Optional[str]) -> str:
        """Return ``token`` if valid, raise :class:`Unauthorized` otherwise."""
        if not self.verify(token):
            raise Unauthorized("Unauthorized")
        return token


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def check_password(candidate: Optional[str], expected: str) -> bool:
    """Constant-time comparison of the login password."""
    if candidate is None:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


class AdminAuthMiddleware(BaseHTTPMiddleware):
    """Reject admin requests that do not carry a valid bearer token.

    The verified token is stored on ``request.state.admin_token`` and doubles
    as the admin session key for listing state.
    """

    def __init__(
        self,
        app,
        signer: Optional[TokenSigner] = None,
        prefix: str = ADMIN_PREFIX,
    ):
        """Initialize the auth middleware.

        Args:
            app: The ASGI application.
            signer: Token signer; when None it is read from ``app.state.signer``
                on each request.
            prefix: Path prefix that requires authentication.
        """
        super().__init__(app)
        self.signer = signer
        self.prefix = prefix.rstrip("/")

    def _guards(self, path: str) -> bool:
        return path == self.prefix or path.startswith(self.prefix + "/")

    def _unauthorized(self) -> Response:
        response = JSONResponse(status_code=401, content={"detail": "Unauthorized"})
        response.headers["WWW-Authenticate"] = "Bearer"
        return response

    async def dispatch(self, request: Request, call_next) -> Response:
        """Check the bearer token before the request reaches an admin route."""
        if not self._guards(request.url.path):
            return await call_next(request)

        signer = self.signer or request.app.state.signer
        token = bearer_token(request.headers.get("Authorization"))
        if not signer.verify(token):
            logger.warning("Rejected admin request to %s", request.url.path)
            return self._unauthorized()

        request.state.admin_token = token
        return await call_next(request)
