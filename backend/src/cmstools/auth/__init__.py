"""Authentication and table permissions."""

from cmstools.auth.types import ADMIN_ROLE, TokenClaims, UserContext
from cmstools.auth.jwt_service import JWTService
from cmstools.auth.permissions import PermissionResolver, TablePermission

__all__ = [
    "ADMIN_ROLE",
    "TokenClaims",
    "UserContext",
    "JWTService",
    "PermissionResolver",
    "TablePermission",
]
