"""Request authentication.

The API's HTTP middleware calls ``authenticate_request`` for every
request. It never rejects anything; endpoint dependencies decide what an
unauthenticated request may do.
"""

import logging

from starlette.requests import Request

from cmstools.auth.jwt_service import JWTError, JWTService
from cmstools.auth.types import ADMIN_ROLE, UserContext

logger = logging.getLogger(__name__)

DEV_USER_HEADER = "X-CMS-User-Id"
DEV_ROLE_HEADER = "X-CMS-Role"

SKIP_PATHS = ("/docs", "/openapi.json", "/redoc", "/api/health/live")


def should_skip_auth(path: str) -> bool:
    return any(path.startswith(p) for p in SKIP_PATHS)


def authenticate_request(
    request: Request,
    jwt_service: JWTService | None,
    disable_auth: bool = False,
) -> None:
    """Set ``request.state.user_context``.

    With a JWT service, the Bearer token is decoded into TokenClaims and a
    UserContext. With ``disable_auth`` the user comes from the X-CMS-User-Id
    header (and X-CMS-Role) instead, for local development.
    """
    request.state.user_context = None

    if should_skip_auth(request.url.path):
        return

    if disable_auth:
        request.state.user_context = _dev_user(request)
        return

    if jwt_service is None:
        return

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header[7:]  # Remove "Bearer " prefix
        try:
            claims = jwt_service.decode_token(token)
        except JWTError as e:
            logger.debug("Rejected bearer token: %s", e)
            return
        request.state.user_context = UserContext.from_claims(claims)


def _dev_user(request: Request) -> UserContext | None:
    raw = request.headers.get(DEV_USER_HEADER, "").strip()
    if not raw.isdigit():
        return None
    role = request.headers.get(DEV_ROLE_HEADER, "").strip().lower()
    return UserContext(user_id=int(raw), is_admin=role == ADMIN_ROLE)


def get_user_context(request: Request) -> UserContext | None:
    """UserContext set for this request, None if unauthenticated."""
    return getattr(request.state, "user_context", None)
