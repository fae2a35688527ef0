"""Type definitions for authentication."""

from dataclasses import dataclass
from typing import Any

ADMIN_ROLE = "admin"


@dataclass
class TokenClaims:
    """Claims embedded in a JWT access token.

    Attributes:
        user_id: The authenticated user's ID (``sub``)
        username: Login name, carried for display and audit
        role: "admin" marks a super-admin
        exp: Token expiration timestamp
        iat: Token issued-at timestamp
    """

    user_id: int
    username: str | None = None
    role: str | None = None
    exp: int = 0
    iat: int = 0


@dataclass
class UserContext:
    """The acting user, resolved by the auth layer and passed explicitly.

    Attributes:
        user_id: CMS user ID; None for an unauthenticated caller
        username: Login name, if known
        is_admin: Super-admin; every table permission is granted
    """

    user_id: int | None
    username: str | None = None
    is_admin: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @classmethod
    def from_claims(cls, claims: TokenClaims) -> "UserContext":
        return cls(
            user_id=claims.user_id,
            username=claims.username,
            is_admin=claims.role == ADMIN_ROLE,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "username": self.username,
            "isAdmin": self.is_admin,
        }
