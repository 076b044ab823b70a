from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx
from jose import jwt
from jose.exceptions import JWTError

from backoffice.core.logging import get_logger

logger = get_logger(__name__)


class SupabaseTokenVerifier:
    """
    Verifies access tokens minted by Supabase Auth.

    - Projects still on the legacy shared secret sign with HS256; pass
      `jwt_secret` and no network call is made.
    - Projects with asymmetric signing keys publish them as a JWKS at
      <SUPABASE_URL>/auth/v1/.well-known/jwks.json; keys are cached for
      `jwks_cache_seconds`.
    """

    def __init__(
        self,
        jwks_url: str,
        *,
        jwt_secret: Optional[str] = None,
        jwks_cache_seconds: int = 300,
        timeout: float = 10.0,
    ) -> None:
        self._jwks_url = jwks_url
        self._jwt_secret = jwt_secret or None
        self._jwks_cache: Optional[Dict[str, Any]] = None
        self._jwks_cache_ts: float = 0.0
        self._jwks_cache_ttl_seconds = jwks_cache_seconds
        self._timeout = timeout

    async def _get_jwks(self) -> Dict[str, Any]:
        now = time.time()
        if self._jwks_cache and (now - self._jwks_cache_ts) < self._jwks_cache_ttl_seconds:
            return self._jwks_cache

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            r = await client.get(self._jwks_url)
            r.raise_for_status()
            jwks = r.json()

        if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
            raise JWTError("Invalid JWKS response")

        self._jwks_cache = jwks
        self._jwks_cache_ts = now
        return jwks

    @staticmethod
    def _pick_key(jwks: Dict[str, Any], kid: Optional[str]) -> Dict[str, Any]:
        for k in jwks.get("keys", []):
            if isinstance(k, dict) and k.get("kid") == kid:
                return k
        raise JWTError(f"Signing key not found for kid={kid!r}")

    async def _signing_key(self, header: Dict[str, Any]) -> Any:
        if header.get("alg") == "HS256":
            if not self._jwt_secret:
                raise JWTError("HS256 token but no SUPABASE_JWT_SECRET configured")
            return self._jwt_secret
        return self._pick_key(await self._get_jwks(), header.get("kid"))

    async def decode_and_verify(
        self,
        token: str,
        *,
        audience_expected: str,
        algorithms: list[str],
    ) -> Dict[str, Any]:
        """
        Decode and verify an access token, returning its claims.

        Raises jose.exceptions.JWTError (or a subclass) on any validation error.
        """
        token = (token or "").strip()
        if not token:
            raise JWTError("Empty token")

        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise JWTError("Invalid JWT header") from e

        if header.get("alg") not in algorithms:
            raise JWTError(f"Algorithm {header.get('alg')!r} not allowed")

        key = await self._signing_key(header)

        claims = jwt.decode(token, key, algorithms=algorithms, audience=audience_expected)

        if not claims.get("sub"):
            raise JWTError("Token has no subject")
        return claims
