"""Minimal auth dependency.

Extracts the owner id from a bearer token or falls back to a development
default. Token verification is delegated to the gateway in front of the API.
"""

import uuid
from typing import Annotated

from fastapi import Header, HTTPException, status

from backend.app.db.context import RequestContext

DEFAULT_OWNER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")


async def get_current_context(
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext:
    """Extract request context from authorization header.

    Accepts either:
    - No header: the development owner
    - "Bearer <owner_id>" where owner_id is a UUID

    Args:
        authorization: Authorization header (e.g., "Bearer <token>")

    Returns:
        RequestContext with owner_id

    Raises:
        HTTPException: If authorization is invalid
    """
    if not authorization:
        return RequestContext(owner_id=DEFAULT_OWNER_ID)

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization[7:].strip()  # Strip "Bearer "

    try:
        return RequestContext(owner_id=uuid.UUID(token))
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid bearer token (expected owner id)",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
