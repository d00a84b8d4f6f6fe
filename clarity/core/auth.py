from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from uuid import UUID

import requests
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from clarity.core.config import settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

ASYMMETRIC_ALGORITHMS = ["RS256", "ES256"]


@dataclass(slots=True)
class AuthContext:
    user_id: UUID
    email: str | None = None
    claims: dict = field(default_factory=dict)


class JwksCache:
    def __init__(self, ttl_seconds: int = 300) -> None:
        self.ttl_seconds = ttl_seconds
        self._jwks: dict | None = None
        self._fetched_at = 0.0

    def get(self, url: str) -> dict:
        now = time.time()
        if self._jwks is None or (now - self._fetched_at) > self.ttl_seconds:
            response = requests.get(url, timeout=5)
            response.raise_for_status()
            self._jwks = response.json()
            self._fetched_at = now
        return self._jwks


jwks_cache = JwksCache()


def _get_signing_key(token: str) -> dict:
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication header",
        ) from exc

    kid = unverified_header.get("kid")
    if not kid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="JWT is missing key id",
        )

    jwks = jwks_cache.get(settings.supabase_jwks_url())
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No matching signing key found",
    )


def _decode_supabase_jwt(token: str) -> dict:
    if not settings.supabase_jwt_secret and not settings.supabase_url:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Supabase authentication is not configured",
        )

    # Projects on the legacy shared secret sign with HS256; newer ones publish a JWKS.
    if settings.supabase_jwt_secret:
        key: dict | str = settings.supabase_jwt_secret
        algorithms = ["HS256"]
    else:
        key = _get_signing_key(token)
        algorithms = ASYMMETRIC_ALGORITHMS

    audience = settings.supabase_jwt_audience or None
    try:
        return jwt.decode(
            token,
            key,
            algorithms=algorithms,
            audience=audience,
            issuer=settings.supabase_issuer() if settings.supabase_url else None,
            options={"verify_aud": audience is not None},
        )
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        ) from exc


def _context_from_claims(claims: dict) -> AuthContext:
    subject = claims.get("sub")
    try:
        user_id = UUID(str(subject))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is missing a valid subject",
        ) from exc
    return AuthContext(user_id=user_id, email=claims.get("email"), claims=claims)


def authenticate_token(token: str) -> AuthContext:
    return _context_from_claims(_decode_supabase_jwt(token))


async def require_auth_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthContext:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No authorization token provided",
        )
    return authenticate_token(credentials.credentials)


async def resolve_optional_caller(
    authorization: str | None = Header(default=None),
) -> AuthContext | None:
    """Best-effort identity for endpoints that also serve anonymous callers.

    Any verification problem degrades to anonymous instead of failing.
    """
    if not authorization or not authorization.startswith("Bearer "):
        return None

    token = authorization[len("Bearer "):].strip()
    if not token:
        return None

    try:
        return authenticate_token(token)
    except HTTPException as exc:
        logger.info("Bearer token rejected, continuing as anonymous: %s", exc.detail)
    except (requests.RequestException, ValueError):
        logger.warning("Token verification unavailable, continuing as anonymous", exc_info=True)
    return None
