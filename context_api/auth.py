"""
Bearer token validation for the Context API.
Callers (the callback service) present client credentials access tokens; we verify the
signature via the issuer's JWKS, check iss/aud/exp, then the required scope.
"""
import logging
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from context_api.config import API_AUDIENCE, ISSUER, JWKS_URI, SCOPE_READ, SCOPE_WRITE

logger = logging.getLogger(__name__)

# Single shared client; PyJWKClient caches the JWK set and keys
_jwks_client: PyJWKClient | None = None


def get_jwks_client() -> PyJWKClient:
    global _jwks_client
    if _jwks_client is None:
        _jwks_client = PyJWKClient(
            uri=JWKS_URI,
            cache_jwk_set=True,
            lifespan=300,
        )
    return _jwks_client


security = HTTPBearer(auto_error=False)


def _unauthorized(error: str, description: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "error_description": description},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """Extract Bearer token from Authorization header. Raises 401 if missing or not Bearer."""
    if credentials is None:
        raise _unauthorized("invalid_request", "Authorization header missing")
    if credentials.scheme.lower() != "bearer":
        raise _unauthorized("invalid_request", "Bearer scheme required")
    return credentials.credentials


def verify_access_token(token: str) -> dict:
    """
    Verify JWT signature via JWKS and validate iss, aud, exp.
    Returns decoded claims. Raises HTTPException on invalid token.
    """
    try:
        signing_key = get_jwks_client().get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=API_AUDIENCE,
            issuer=ISSUER,
            options={"verify_exp": True, "verify_aud": True, "verify_iss": True},
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("invalid_token", "Token expired")
    except jwt.InvalidAudienceError:
        raise _unauthorized("invalid_token", "Invalid audience")
    except jwt.InvalidIssuerError:
        raise _unauthorized("invalid_token", "Invalid issuer")
    except jwt.PyJWTError as e:
        logger.debug("JWT verification failed: %s", e)
        raise _unauthorized("invalid_token", "Token verification failed")


def get_claims(
    token: Annotated[str, Depends(get_bearer_token)],
) -> dict:
    """Dependency: valid Bearer token -> decoded claims."""
    return verify_access_token(token)


def _parse_scope(scope_value: str | list | None) -> set[str]:
    """Normalize scope claim to a set of scope strings."""
    if scope_value is None:
        return set()
    if isinstance(scope_value, list):
        return set(str(s) for s in scope_value)
    return set(scope_value.split())


def require_scope(required: str):
    """Dependency factory: require the given scope in the access token."""

    def _check(claims: Annotated[dict, Depends(get_claims)]) -> dict:
        # Some issuers put client credentials scopes in "scp" instead of "scope"
        scopes = _parse_scope(claims.get("scope")) | _parse_scope(claims.get("scp"))
        if required not in scopes:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "insufficient_scope",
                    "error_description": f"Scope '{required}' required",
                },
            )
        return claims

    return Depends(_check)


RequireRead = require_scope(SCOPE_READ)
RequireWrite = require_scope(SCOPE_WRITE)
