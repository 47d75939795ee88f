"""Admin login."""

from fastapi import APIRouter, Depends

from newsdesk.config import Settings
from newsdesk.dependencies import get_app_settings, get_signer
from newsdesk.errors import Unauthorized
from newsdesk.middleware.auth import TokenSigner, check_password
from newsdesk.schemas import LoginRequest

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/admin-login")
async def admin_login(
    body: LoginRequest,
    settings: Settings = Depends(get_app_settings),
    signer: TokenSigner = Depends(get_signer),
):
    """Exchange the admin password for a bearer token."""
    if not check_password(body.password.strip(), settings.admin_password):
        raise Unauthorized("Wrong password")
    return {"token": signer.issue()}
