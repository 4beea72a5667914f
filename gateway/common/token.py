from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

import jwt

from gateway.common.exceptions import invalid_token
from gateway.core.config import settings


class TokenTypeError(jwt.InvalidTokenError):
    """Raised when a well-formed token carries the wrong ``typ`` claim."""


class JWTService:
    """
    Signs and verifies every token the gateway hands out.

    Token kinds, told apart by the ``typ`` claim:
    - ``access``: bearer credential, ``jti`` is the access-token row id
    - ``refresh``: renewal credential, ``jti`` is the refresh-token row id
    - ``consent``: pending authorization request awaiting the owner's decision
    - ``session``: host login session cookie

    Signature and ``exp`` are enforced here; revocation and the stored expiry
    are the repositories' concern.
    """

    ALGORITHM: str = settings.JWT_ALGORITHM

    ACCESS = "access"
    REFRESH = "refresh"
    CONSENT = "consent"
    SESSION = "session"

    def __init__(self, secret: Optional[str] = None, issuer: Optional[str] = None):
        self.secret = secret or settings.JWT_SECRET
        self.issuer = issuer or settings.JWT_ISSUER

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _utc_now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _to_timestamp(dt: datetime) -> int:
        return int(dt.timestamp())

    def encode(
        self,
        payload: Dict[str, Any],
        token_type: str,
        ttl_seconds: int,
    ) -> str:
        """
        Encode and sign a JWT.

        Args:
            payload: Claims to embed in the token.
            token_type: One of the ``typ`` values above.
            ttl_seconds: Token lifetime in seconds.

        Returns:
            A signed JWT string.
        """
        now: datetime = self._utc_now()

        claims: Dict[str, Any] = {
            **payload,
            "iss": self.issuer,
            "iat": self._to_timestamp(now),
            "exp": self._to_timestamp(now + timedelta(seconds=ttl_seconds)),
            "typ": token_type,
        }

        return jwt.encode(
            claims,
            self.secret,
            algorithm=self.ALGORITHM,
        )

    def decode(
        self,
        token: str,
        expected_type: str,
    ) -> Dict[str, Any]:
        """
        Decode and verify a JWT.

        Raises:
            jwt.ExpiredSignatureError: If the token has expired.
            jwt.InvalidTokenError: If the token is malformed, forged or of another type.
        """
        claims: Dict[str, Any] = jwt.decode(
            token,
            self.secret,
            algorithms=[self.ALGORITHM],
            issuer=self.issuer,
            options={"require": ["exp", "iat", "typ"]},
        )

        if claims.get("typ") != expected_type:
            raise TokenTypeError("Invalid token type")

        return claims

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_access_token(
        self,
        token_id: str,
        client_id: str,
        user_id: int,
        scopes: list[str],
        expires_in: Optional[int] = None,
    ) -> str:
        ttl: int = expires_in if expires_in is not None else settings.ACCESS_TOKEN_TTL
        return self.encode(
            {
                "jti": token_id,
                "sub": str(user_id),
                "aud": client_id,
                "scope": " ".join(scopes),
            },
            token_type=self.ACCESS,
            ttl_seconds=ttl,
        )

    def generate_refresh_token(
        self,
        token_id: str,
        client_id: str,
        expires_in: Optional[int] = None,
    ) -> str:
        ttl: int = expires_in if expires_in is not None else settings.REFRESH_TOKEN_TTL
        return self.encode(
            {"jti": token_id, "client_id": client_id},
            token_type=self.REFRESH,
            ttl_seconds=ttl,
        )

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        """
        Verify an access token's signature and claims.

        Raises:
            OAuthException: ``invalid_token`` (401) on any failure.
        """
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.ALGORITHM],
                issuer=self.issuer,
                options={"require": ["exp", "iat", "typ", "jti"], "verify_aud": False},
            )
        except jwt.ExpiredSignatureError:
            raise invalid_token("Access token expired")
        except jwt.InvalidTokenError:
            raise invalid_token("Invalid access token")

        if claims.get("typ") != self.ACCESS:
            raise invalid_token("Invalid token type")

        return claims

    def verify_refresh_token(self, token: str) -> Dict[str, Any]:
        """
        Verify a refresh token.

        Raises:
            jwt.InvalidTokenError: callers map this to ``invalid_grant``.
        """
        return self.decode(token, expected_type=self.REFRESH)
