"""
security.py — Bearer token verification.

Sign-up, login and token issuance belong to the external auth provider.
This API only verifies the provider's HS256 JWTs with python-jose and
reads the caller's id and role from the claims.

Configuration is read from wardwatch.core.config.settings so the signing
secret lives in environment variables / .env files, never in code.
"""

from typing import Annotated, Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from wardwatch.core.config import settings

# Reusable bearer extractor (does NOT auto-raise on missing token)
_bearer = HTTPBearer(auto_error=False)
CredDep = Annotated[Optional[HTTPAuthorizationCredentials], Depends(_bearer)]


class Principal(BaseModel):
    """The authenticated caller, as described by the token claims."""

    id: str
    role: Optional[str] = None
    email: Optional[str] = None


def decode_access_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and validate a JWT.

    Returns the claims on success, or None if the token is missing,
    expired, or otherwise invalid.
    """
    try:
        return jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            # Provider tokens carry an audience we don't pin down here.
            options={"verify_aud": False},
        )
    except JWTError:
        return None


def principal_from_claims(claims: dict[str, Any]) -> Optional[Principal]:
    """
    Build a Principal from token claims.

    The application role lives in app_metadata.role when the provider
    sets one; the top-level "role" claim is the fallback.
    """
    subject = claims.get("sub")
    if not subject:
        return None
    app_metadata = claims.get("app_metadata") or {}
    role = app_metadata.get("role") or claims.get("role")
    return Principal(id=str(subject), role=role, email=claims.get("email"))


async def get_current_principal(credentials: CredDep) -> Principal:
    """
    FastAPI dependency — extracts and validates the Bearer token.

    Raises 401 if the token is missing or invalid.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    claims = decode_access_token(credentials.credentials)
    principal = principal_from_claims(claims) if claims else None
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


async def require_official(principal: CurrentPrincipal) -> Principal:
    """FastAPI dependency — only municipal officials may change ward data."""
    if principal.role not in settings.official_roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Official access required",
        )
    return principal


OfficialPrincipal = Annotated[Principal, Depends(require_official)]
