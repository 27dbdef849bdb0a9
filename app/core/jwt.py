"""Supabase access-token verification with PyJWT.

HS256 tokens are checked against the project's shared secret; RS256 and
ES256 tokens against the JWKS key named by the token's ``kid``. Every
verification failure is raised as ``AuthenticationError``.
"""

from typing import Optional

import jwt

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.core.jwks import JWKSService, jwks_service
from app.schemas.auth import JWTClaims
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

AUDIENCE = "authenticated"
_ASYMMETRIC = ("RS256", "ES256")


class JWTVerifier:
    """Verifier for Supabase access tokens."""

    def __init__(self, supabase_url: str, jwt_secret: str = "", keys: Optional[JWKSService] = None):
        self.expected_issuer = f"{supabase_url.rstrip('/')}/auth/v1"
        self.jwt_secret = jwt_secret
        self.keys = keys or jwks_service

    async def verify_token(self, token: str) -> JWTClaims:
        """Verify ``token`` and return its claims.

        Raises:
            AuthenticationError: If the token is malformed, expired, signed
                with an unknown key or issued for another project
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            raise AuthenticationError("Malformed access token", original_error=e) from e

        alg = header.get("alg")
        if alg == "HS256":
            if not self.jwt_secret:
                raise AuthenticationError("HS256 tokens are not accepted: SUPABASE_JWT_SECRET is not set")
            key = self.jwt_secret
        elif alg in _ASYMMETRIC:
            kid = header.get("kid")
            jwk = await self.keys.get_key(kid) if kid else None
            if jwk is None:
                raise AuthenticationError(f"No signing key found for kid {kid!r}")
            key = jwk.public_key()
        else:
            raise AuthenticationError(f"Unsupported token algorithm: {alg}")

        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=[alg],
                audience=AUDIENCE,
                issuer=self.expected_issuer,
                options={"require": ["sub", "exp", "iat", "iss"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Access token has expired", original_error=e) from e
        except jwt.InvalidTokenError as e:
            LOGGER.warning(f"Rejected access token: {e}")
            raise AuthenticationError("Invalid access token", original_error=e) from e

        return JWTClaims(**payload)


jwt_verifier = JWTVerifier(
    supabase_url=settings.supabase_url,
    jwt_secret=settings.supabase_jwt_secret,
)
