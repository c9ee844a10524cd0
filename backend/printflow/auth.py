"""Authentication and authorization.

Tokens are issued by the external identity provider; this service only
verifies them and reads the ``sub``, ``role`` and ``name`` claims.
"""
from dataclasses import dataclass
from typing import Optional
import logging
import time
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from .config import settings

logger = logging.getLogger(__name__)

# Bearer token scheme
security = HTTPBearer()

ROLES = ("sales", "design", "production", "admin")


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated caller as described by the identity provider."""
    id: str
    role: str
    name: Optional[str] = None


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str) -> dict:
    """Decode JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        raise _unauthorized()

    now = int(time.time())
    try:
        exp_int = int(payload["exp"])
    except (KeyError, TypeError, ValueError):
        raise _unauthorized()
    if now > exp_int + int(settings.JWT_LEEWAY_SECONDS):
        raise _unauthorized("Token expired")

    iat = payload.get("iat")
    if iat is not None:
        try:
            iat_int = int(iat)
        except (TypeError, ValueError):
            raise _unauthorized()
        # Reject tokens issued far in the future (clock skew / malicious tokens).
        if iat_int > now + int(settings.JWT_LEEWAY_SECONDS):
            raise _unauthorized()
    return payload


def user_from_token(token: str) -> CurrentUser:
    payload = decode_token(token)
    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or role not in ROLES:
        raise _unauthorized()
    return CurrentUser(id=str(subject), role=role, name=payload.get("name"))


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """Get current user from the bearer token."""
    return user_from_token(credentials.credentials)


# Permission checks
class PermissionChecker:
    """Check user permissions based on role."""

    def __init__(self, required_permission: str):
        self.required_permission = required_permission

    def __call__(self, current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        """Check if user has required permission."""
        if not check_permission(current_user, self.required_permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {self.required_permission} required"
            )
        return current_user


# Role permissions matrix
ROLE_PERMISSIONS = {
    "admin": {
        "canViewOrders": True,
        "canCreateOrders": True,
        "canEditOrders": True,
        "canDesign": True,
        "canManageProduction": True,
        "canManageIntegrations": True,
    },
    "sales": {
        "canViewOrders": True,
        "canCreateOrders": True,
        "canEditOrders": True,
        "canDesign": False,
        "canManageProduction": False,
        "canManageIntegrations": False,
    },
    "design": {
        "canViewOrders": True,
        "canCreateOrders": False,
        "canEditOrders": False,
        "canDesign": True,
        "canManageProduction": False,
        "canManageIntegrations": False,
    },
    "production": {
        "canViewOrders": True,
        "canCreateOrders": False,
        "canEditOrders": False,
        "canDesign": False,
        "canManageProduction": True,
        "canManageIntegrations": False,
    },
}


def check_permission(user: CurrentUser, permission: str) -> bool:
    """Check if user has specific permission."""
    permissions = ROLE_PERMISSIONS.get(user.role, {})
    return permissions.get(permission, False)
