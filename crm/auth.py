"""Shared-secret authentication for admin endpoints."""
from __future__ import annotations

import hmac

from fastapi import Header, HTTPException, status

from .config import settings


async def require_admin(x_admin_key: str | None = Header(default=None)) -> str:
    """Validate the ``X-Admin-Key`` header against SECURITY_ADMIN_API_KEY.

    Returns:
        The caller label recorded on audit rows
    """
    expected = settings.security.admin_api_key
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API key is not configured",
        )
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin key",
        )
    return "admin"
