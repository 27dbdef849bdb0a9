"""Authentication schemas for Supabase access tokens."""

from typing import Optional, Dict, Any

from pydantic import BaseModel, Field, EmailStr


class JWTClaims(BaseModel):
    """Claims of a verified Supabase access token."""

    sub: str = Field(..., description="Subject (user ID)")
    email: Optional[EmailStr] = Field(None, description="User email")
    role: str = Field(default="authenticated", description="User role")
    exp: int = Field(..., description="Expiration timestamp")
    iat: int = Field(..., description="Issued at timestamp")
    iss: str = Field(..., description="Token issuer")

    aud: Optional[str] = Field(None, description="Audience")
    app_metadata: Optional[Dict[str, Any]] = Field(None, description="Application metadata")
    user_metadata: Optional[Dict[str, Any]] = Field(None, description="User metadata")
    session_id: Optional[str] = Field(None, description="Session ID")


class CurrentUser(BaseModel):
    """The verified caller; ``id`` is compared with ``Project.owner_id``."""

    id: str = Field(..., description="Supabase user ID")
    email: Optional[EmailStr] = Field(None, description="User email")
    role: str = Field(default="authenticated", description="User role")
    user_metadata: Optional[Dict[str, Any]] = Field(None, description="User metadata")

    @classmethod
    def from_claims(cls, claims: JWTClaims) -> "CurrentUser":
        return cls(
            id=claims.sub,
            email=claims.email,
            role=claims.role,
            user_metadata=claims.user_metadata,
        )
