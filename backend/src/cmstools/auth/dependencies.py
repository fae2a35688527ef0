"""FastAPI dependencies for authentication."""

from fastapi import HTTPException, Request

from cmstools.auth.middleware import get_user_context
from cmstools.auth.types import UserContext


def require_authenticated(request: Request) -> UserContext:
    """Dependency that requires an authenticated user.

    Raises:
        HTTPException 401 if not authenticated
    """
    user_context = get_user_context(request)
    if not user_context or not user_context.is_authenticated:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_context


def require_admin(request: Request) -> UserContext:
    """Dependency that requires the super-admin role.

    Raises:
        HTTPException 401 if not authenticated
        HTTPException 403 if authenticated but not an admin
    """
    user_context = require_authenticated(request)
    if not user_context.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return user_context
