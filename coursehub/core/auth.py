"""Bearer token verification for FastAPI.

Tokens are issued by the platform's identity service and signed with a
shared secret. This module only verifies them and exposes the caller.
"""

from dataclasses import dataclass

import jwt as pyjwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from coursehub.core.config import get_settings
from coursehub.core.logging import bind_billing_context

_bearer_scheme = HTTPBearer(auto_error=False)

ADMIN_ROLE = "ADMIN"


@dataclass(frozen=True)
class AuthUser:
    """Authenticated caller extracted from a verified token."""

    user_id: str
    role: str
    claims: dict

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def decode_access_token(token: str) -> AuthUser:
    """Verify and decode an access token.

    Raises ``HTTPException(401)`` on any validation failure.
    """
    settings = get_settings()
    if not settings.jwt_secret:
        raise HTTPException(status_code=500, detail="Authentication is misconfigured")

    try:
        payload = pyjwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_exp": True, "require": ["sub", "exp"]},
        )
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except pyjwt.MissingRequiredClaimError as exc:
        raise HTTPException(status_code=401, detail=f"Missing required claim: {exc}")
    except pyjwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Token missing sub claim")

    return AuthUser(user_id=str(sub), role=str(payload.get("role", "USER")).upper(), claims=payload)


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthUser:
    """FastAPI dependency that extracts and validates the bearer token.

    Usage::

        @router.get("/protected")
        async def protected(user: AuthUser = Depends(require_auth)):
            ...
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="You are not authorized")

    user = decode_access_token(credentials.credentials)

    # Downstream use: error handlers, audit logging
    request.state.user_id = user.user_id
    bind_billing_context(user_id=user.user_id)

    return user


async def require_admin(user: AuthUser = Depends(require_auth)) -> AuthUser:
    """FastAPI dependency that requires the ADMIN role claim."""
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
