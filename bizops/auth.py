import logging
import secrets

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from . import config

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def require_admin_token(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> None:
    """
    Guard for internal operations endpoints

    The expected token comes from ADMIN_API_TOKEN; when it is not configured
    the endpoints are closed entirely.
    """
    expected = config.ADMIN_API_TOKEN
    if not expected:
        logger.warning("⚠️ Admin endpoint called but ADMIN_API_TOKEN is not configured")
        raise HTTPException(status_code=503, detail="Admin endpoints are not configured")

    if not credentials or not secrets.compare_digest(
        credentials.credentials.encode(), expected.encode()
    ):
        logger.warning("Authentication failed for admin endpoint: invalid or missing bearer token")
        raise HTTPException(status_code=401, detail="Not authenticated")
