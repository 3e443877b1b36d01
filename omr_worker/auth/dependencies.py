"""
FastAPI Authentication Dependencies

The worker is called by a single trusted backend that presents a shared
API key as ``Authorization: Bearer <key>``. The expected key comes from the
application's ``Settings`` (``OMR_WORKER_API_KEY``).
"""
from __future__ import annotations

import hmac
import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)

# HTTPBearer extracts the token from "Authorization: Bearer <token>" header
# auto_error=False allows us to provide custom error messages
security = HTTPBearer(auto_error=False)


async def require_api_key(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> None:
    """
    FastAPI dependency that checks the bearer token against the API key.

    Raises:
        HTTPException 401: If the header is missing, not a Bearer header,
            or carries the wrong key.
    """
    if credentials is None:
        logger.warning("Processing attempt without bearer token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    expected = request.app.state.settings.api_key
    if not hmac.compare_digest(credentials.credentials.encode(), expected.encode()):
        logger.warning("Processing attempt with invalid API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "Bearer"},
        )
