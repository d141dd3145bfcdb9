"""
Request-scoped dependencies shared by the routers.

Authentication happens upstream; the gateway forwards the authenticated
caller in the X-User-ID header.
"""

from typing import Optional

from fastapi import Header, status

from testseries.errors import UnauthorizedError
from testseries.services.lifecycle import utcnow


def get_caller(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError("Missing caller identity", status_code=status.HTTP_401_UNAUTHORIZED)
    return x_user_id.strip()


def get_clock():
    """Clock used for expiry decisions; overridden in tests."""
    return utcnow
