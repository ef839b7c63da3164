"""Admin authentication for operator endpoints (shared X-Admin-Key)."""

import logging
import secrets

from fastapi import Header, HTTPException, status

from survivor.config import settings

logger = logging.getLogger("survivor.auth")

ADMIN_ACTOR = "admin"


async def get_admin_actor(
    x_admin_key: str = Header(default="", alias="X-Admin-Key"),
    x_admin_actor: str = Header(default="", alias="X-Admin-Actor"),
) -> str:
    """FastAPI dependency: requires the configured admin key; returns the actor id for audit logs."""
    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is disabled.",
        )
    if not x_admin_key or not secrets.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        logger.warning("Rejected admin request with invalid key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required.",
        )
    return x_admin_actor.strip() or ADMIN_ACTOR
