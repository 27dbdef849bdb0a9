"""FastAPI dependency resolving the authenticated caller."""

from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.exceptions import AuthenticationError
from app.core.jwt import jwt_verifier
from app.schemas.auth import CurrentUser
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> CurrentUser:
    """Verify the bearer token and return the caller.

    Raises:
        AuthenticationError: If no token is sent or it fails verification
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authorization header missing")

    claims = await jwt_verifier.verify_token(credentials.credentials)
    LOGGER.debug(f"Authenticated user {claims.sub}")
    return CurrentUser.from_claims(claims)
