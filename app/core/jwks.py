"""JWKS (JSON Web Key Set) cache for Supabase token verification.

Keys are fetched from the project's well-known JWKS endpoint and cached for
``cache_ttl`` seconds. An unknown key id forces one refresh so rotated keys
are picked up before their cache entry would expire.
"""

import asyncio
import base64
import time
from typing import Dict, List, Optional

import aiohttp
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from pydantic import BaseModel

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

_CURVES = {
    "P-256": ec.SECP256R1,
    "P-384": ec.SECP384R1,
    "P-521": ec.SECP521R1,
}


def _b64url_int(value: str) -> int:
    padded = value + "=" * (-len(value) % 4)
    return int.from_bytes(base64.urlsafe_b64decode(padded), byteorder="big")


class JWKKey(BaseModel):
    """One public key of the set. RSA keys carry n/e, EC keys carry crv/x/y."""

    kid: str
    kty: str
    alg: Optional[str] = None
    use: Optional[str] = None
    n: Optional[str] = None
    e: Optional[str] = None
    crv: Optional[str] = None
    x: Optional[str] = None
    y: Optional[str] = None

    def public_key(self):
        """Build a ``cryptography`` public key usable by PyJWT."""
        if self.kty == "RSA" and self.n and self.e:
            return rsa.RSAPublicNumbers(_b64url_int(self.e), _b64url_int(self.n)).public_key()
        if self.kty == "EC" and self.crv in _CURVES and self.x and self.y:
            return ec.EllipticCurvePublicNumbers(
                x=_b64url_int(self.x),
                y=_b64url_int(self.y),
                curve=_CURVES[self.crv](),
            ).public_key()
        raise AuthenticationError(f"Unsupported signing key {self.kid} ({self.kty})")


class JWKSResponse(BaseModel):
    keys: List[JWKKey]


class JWKSService:
    """Fetch and cache the signing keys of a Supabase project."""

    def __init__(self, supabase_url: str, cache_ttl: int = 3600, timeout: int = 10):
        self.jwks_url = f"{supabase_url.rstrip('/')}/auth/v1/.well-known/jwks.json"
        self.cache_ttl = cache_ttl
        self.timeout = timeout

        self._keys: Dict[str, JWKKey] = {}
        self._fetched_at: Optional[float] = None
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return self._fetched_at is not None and time.time() - self._fetched_at < self.cache_ttl

    async def get_key(self, kid: str) -> Optional[JWKKey]:
        """Signing key for ``kid``, refreshing the cache at most once."""
        async with self._lock:
            if not self._is_fresh() or kid not in self._keys:
                await self._refresh()
            return self._keys.get(kid)

    async def _refresh(self) -> None:
        LOGGER.info(f"Fetching JWKS from {self.jwks_url}")
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.jwks_url) as response:
                    if response.status != 200:
                        raise AuthenticationError(f"JWKS endpoint returned {response.status}")
                    data = await response.json()
        except aiohttp.ClientError as e:
            LOGGER.error(f"Network error fetching JWKS: {e}")
            raise AuthenticationError("Signing keys are unavailable", original_error=e) from e

        self._keys = {key.kid: key for key in JWKSResponse(**data).keys}
        self._fetched_at = time.time()
        LOGGER.debug(f"Cached {len(self._keys)} JWKS keys")


jwks_service = JWKSService(
    supabase_url=settings.supabase_url,
    cache_ttl=settings.supabase_jwks_cache_ttl,
)
