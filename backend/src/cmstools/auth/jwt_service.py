"""JWT access token generation and validation."""

import time

import jwt

from cmstools.auth.types import TokenClaims


class JWTError(Exception):
    """Base exception for JWT-related errors."""

    pass


class TokenExpiredError(JWTError):
    """Raised when a token has expired."""

    pass


class InvalidTokenError(JWTError):
    """Raised when a token is invalid or malformed."""

    pass


class JWTService:
    """Issues and validates HS256 access tokens.

    Tokens are normally issued by the external sign-in service sharing the
    secret; ``generate_access_token`` exists for tooling and tests.
    """

    ACCESS_TOKEN_TTL = 60 * 60  # 1 hour

    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        """Initialize the JWT service.

        Args:
            secret_key: Secret key for signing tokens (should be at least 32 chars)
            algorithm: JWT algorithm (default HS256)
        """
        self._secret_key = secret_key
        self._algorithm = algorithm

    def generate_access_token(
        self,
        user_id: int,
        username: str | None = None,
        role: str | None = None,
        ttl: int | None = None,
    ) -> str:
        """Generate an access token.

        Args:
            user_id: CMS user ID, stored as the ``sub`` claim
            username: Optional login name
            role: Optional role; "admin" marks a super-admin
            ttl: Lifetime in seconds, defaults to ACCESS_TOKEN_TTL
        """
        now = int(time.time())
        claims: dict = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + (self.ACCESS_TOKEN_TTL if ttl is None else ttl),
        }
        if username:
            claims["username"] = username
        if role:
            claims["role"] = role

        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)

    def decode_token(self, token: str) -> TokenClaims:
        """Decode and validate a JWT token.

        Raises:
            TokenExpiredError: If the token has expired
            InvalidTokenError: If the token is invalid, malformed, or its
                subject is not a numeric user ID
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e}")

        try:
            user_id = int(payload.get("sub", ""))
        except (TypeError, ValueError):
            raise InvalidTokenError("Token subject is not a user ID")

        return TokenClaims(
            user_id=user_id,
            username=payload.get("username"),
            role=payload.get("role"),
            exp=payload.get("exp", 0),
            iat=payload.get("iat", 0),
        )
