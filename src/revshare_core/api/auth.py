"""API key authentication for the revshare API.

Two shared secrets map to two roles:
- REVSHARE_API_KEY: submit sync batches and read stats snapshots
- REVSHARE_ADMIN_KEY: everything above plus ownership directory writes
  (owner shares and channel bindings decide who gets paid)

Directory writes are refused outright when no admin key is configured.
"""
import logging
import os
import secrets
from enum import Enum
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader


logger = logging.getLogger(__name__)


api_key_header = APIKeyHeader(name="X-REVSHARE-API-KEY", auto_error=False)


class ApiRole(str, Enum):
    SYNC = "sync"
    ADMIN = "admin"


def _matches(candidate: str, expected: Optional[str]) -> bool:
    if not expected:
        return False
    return secrets.compare_digest(candidate.encode(), expected.encode())


async def require_api_key(
    api_key: Annotated[str | None, Security(api_key_header)] = None
) -> ApiRole:
    """Resolve the caller's role from the X-REVSHARE-API-KEY header.

    Raises:
        RuntimeError: If REVSHARE_API_KEY is not configured
        HTTPException: 401 if the key matches neither configured secret
    """
    sync_key = os.getenv("REVSHARE_API_KEY")
    admin_key = os.getenv("REVSHARE_ADMIN_KEY")

    if not sync_key:
        raise RuntimeError("REVSHARE_API_KEY environment variable not configured")

    if api_key:
        if _matches(api_key, admin_key):
            return ApiRole.ADMIN
        if _matches(api_key, sync_key):
            return ApiRole.SYNC

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid API key",
        headers={"WWW-Authenticate": "API-Key"},
    )


async def require_admin(
    role: Annotated[ApiRole, Depends(require_api_key)]
) -> ApiRole:
    """Allow only admin callers through to ownership directory writes."""
    if not os.getenv("REVSHARE_ADMIN_KEY"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Directory administration disabled (REVSHARE_ADMIN_KEY not set)",
        )

    if role is not ApiRole.ADMIN:
        logger.warning("Rejected directory write with a sync-only API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin API key required for directory changes",
        )

    return role
