from __future__ import annotations

import logging
from functools import wraps
from typing import Iterable

from flask import request, g

from api.errors import auth_error_response
from api.extensions import auth_service
from models.role import is_allowed
from utils.result import AuthError, Err, Ok, Result
from utils.security import AccessClaims

logger = logging.getLogger(__name__)

AUTHENTICATION_REQUIRED = AuthError(401, "UNAUTHORIZED", "Authentication required")
INSUFFICIENT_PERMISSIONS = AuthError(403, "FORBIDDEN", "Insufficient permissions")


def authenticate():
    """
    Require a valid bearer access token. On success the claims are available
    as g.current_user; the database is not touched.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            result = auth_service().authenticate_header(request.headers.get("Authorization"))
            if not result.ok:
                return auth_error_response(result.error)
            g.current_user = result.value
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def check_role(claims: AccessClaims | None, allowed_roles: Iterable) -> Result[AccessClaims, AuthError]:
    """Allow-list membership only; no role outranks another."""
    if claims is None:
        return Err(AUTHENTICATION_REQUIRED)
    if not is_allowed(claims.role, allowed_roles):
        return Err(INSUFFICIENT_PERMISSIONS)
    return Ok(claims)


def authorize(allowed_roles: list):
    """
    Allow access only if the authenticated role is in allowed_roles.
    Must sit below @authenticate(); without an identity the answer is 401.
    """
    allowed = list(allowed_roles or [])

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            claims = getattr(g, "current_user", None)
            result = check_role(claims, allowed)
            if not result.ok:
                if claims is not None:
                    logger.warning(
                        "Access denied for user %s with role %s, required one of: %s",
                        claims.user_id,
                        claims.role.value,
                        ", ".join(getattr(r, "value", str(r)) for r in allowed),
                    )
                return auth_error_response(result.error)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
