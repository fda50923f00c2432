"""
security helpers:
- Argon2 password hashing via argon2-cffi
- JWT creation/verification via PyJWT
- JTI generation for token identifiers

Everything here is a pure function of its arguments; secrets and lifetimes
are passed in by the caller (see services.auth_service).
"""
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from models.base_model import utc_now
from models.role import Role
from utils.result import Err, Ok, Result

ph = PasswordHasher()

ACCESS = "access"
REFRESH = "refresh"

_dummy_hash: Optional[str] = None


class ConfigurationError(RuntimeError):
    """Fatal misconfiguration (e.g. a missing signing secret). Never retried."""


class TokenError(enum.Enum):
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass(frozen=True)
class AccessClaims:
    user_id: str
    email: str
    role: Role
    issued_at: datetime
    expires_at: datetime


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """ Verify a plaintext password using argon2; any failure is False
    """
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def burn_password_check(password: str) -> None:
    """Run one verification against a throwaway hash.

    Used when the account does not exist so that the response time does
    not reveal it.
    """
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = ph.hash(uuid.uuid4().hex)
    verify_password(password, _dummy_hash)


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def require_secret(secret: Optional[str], name: str) -> str:
    if not secret:
        raise ConfigurationError(f"{name} is not defined")
    return secret


def create_token(
    user_id: str,
    email: str,
    role,
    *,
    token_type: str,
    secret: str,
    ttl: timedelta,
    algorithm: str = "HS256",
    issuer: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[str, datetime]:
    """
    Sign a token for the given identity. Returns (token, expires_at) where
    expires_at is the naive UTC instant embedded in the token.
    """
    issued = now or utc_now()
    expires = issued + ttl
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": Role(role).value,
        "type": token_type,
        "jti": generate_jti(),
        "iat": _epoch(issued),
        "exp": _epoch(expires),
    }
    if issuer:
        payload["iss"] = issuer
    return jwt.encode(payload, secret, algorithm=algorithm), expires


def decode_token(
    token: str,
    *,
    secret: str,
    expected_type: str,
    algorithm: str = "HS256",
    issuer: Optional[str] = None,
) -> Result[AccessClaims, TokenError]:
    """
    Decode and validate a JWT.
    Err(TokenError.EXPIRED) when only the expiry is wrong, Err(TokenError.INVALID)
    for anything else (signature, structure, token type, unknown role).
    """
    options = {"require": ["exp", "iat", "sub"]}
    try:
        decoded = jwt.decode(token, secret, algorithms=[algorithm], issuer=issuer, options=options)
    except jwt.ExpiredSignatureError:
        return Err(TokenError.EXPIRED)
    except jwt.InvalidTokenError:
        return Err(TokenError.INVALID)

    role = Role.parse(decoded.get("role"))
    if decoded.get("type") != expected_type or role is None or not decoded.get("email"):
        return Err(TokenError.INVALID)
    return Ok(
        AccessClaims(
            user_id=decoded["sub"],
            email=decoded["email"],
            role=role,
            issued_at=_from_epoch(decoded["iat"]),
            expires_at=_from_epoch(decoded["exp"]),
        )
    )


def _epoch(value: datetime) -> int:
    return int(value.replace(tzinfo=timezone.utc).timestamp())


def _from_epoch(value) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)
