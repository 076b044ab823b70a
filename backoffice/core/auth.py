from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from fastapi import Depends, HTTPException, Request, status
from jose.exceptions import JWTError

from backoffice.core.config import settings
from backoffice.core.logging import get_logger
from backoffice.core.security import SupabaseTokenVerifier

logger = get_logger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: Optional[str]
    access_token: str
    claims: Dict[str, Any]


_verifier = SupabaseTokenVerifier(
    settings.jwks_url,
    jwt_secret=settings.supabase_jwt_secret,
    jwks_cache_seconds=settings.jwks_cache_seconds,
    timeout=settings.http_timeout_seconds,
)


def get_verifier() -> SupabaseTokenVerifier:
    return _verifier


def _parse_bearer(auth_header: Optional[str]) -> Optional[str]:
    """
    Extract the bearer token from the Authorization header.

    Accepts any casing for the scheme ("Bearer", "bearer", ...).
    """
    if not auth_header:
        return None

    parts = auth_header.strip().split(None, 1)
    if len(parts) != 2:
        return None

    scheme, token = parts[0], parts[1]
    if scheme.lower() != "bearer":
        return None

    token = token.strip()
    return token or None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_bearer_token(request: Request) -> str:
    token = _parse_bearer(request.headers.get("Authorization"))
    if not token:
        raise _unauthorized("Missing bearer token")
    return token


async def get_current_user(
    token: str = Depends(get_bearer_token),
    verifier: SupabaseTokenVerifier = Depends(get_verifier),
) -> CurrentUser:
    """
    Validate the Supabase access token and return the signed-in user.
    """
    try:
        claims = await verifier.decode_and_verify(
            token,
            audience_expected=settings.jwt_audience,
            algorithms=settings.jwt_algorithms_list,
        )
    except JWTError as e:
        # Keep response generic; details are for operators only.
        logger.info("Token validation failed: %s", e)
        raise _unauthorized("Invalid token") from e
    except httpx.HTTPError as e:
        logger.error("Could not fetch signing keys from %s: %s", settings.jwks_url, e)
        raise _unauthorized("Invalid token") from e

    return CurrentUser(
        id=str(claims["sub"]),
        email=claims.get("email"),
        access_token=token,
        claims=claims,
    )
