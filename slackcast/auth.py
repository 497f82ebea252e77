"""Shared-secret Bearer authentication dependency."""

from __future__ import annotations

import hmac

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from slackcast.config import settings

bearer_scheme = HTTPBearer(auto_error=False)


def require_api_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> None:
    """FastAPI dependency: the Bearer token must equal ``API_SECRET``.

    With no secret configured the check is a no-op (local development).
    """
    secret = settings.API_SECRET
    if not secret:
        return
    token = credentials.credentials if credentials else ""
    if not hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API secret.",
        )
