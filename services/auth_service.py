"""
Authentication and session lifecycle.

- verify_credentials: email/password check, one generic failure for every cause
- issue_tokens: short-lived access token + persisted refresh token
- rotate: single-use exchange of a refresh token for a new pair
- revoke: idempotent logout
- revoke_all_for_user: ends every session of a user (password or role change)
- authenticate_header: stateless bearer-token check used by the request guard

Refresh tokens move through issued -> rotated (row deleted) | expired
(row kept until purged) | unknown (no row, or a bad signature).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from models.base_model import utc_now
from models.db_storage import DBStorage
from models.refresh_token import RefreshToken
from models.role import Role
from models.user import User
from utils.result import AuthError, Err, Ok, Result
from utils.security import (
    ACCESS,
    REFRESH,
    AccessClaims,
    TokenError,
    burn_password_check,
    create_token,
    decode_token,
    require_secret,
    verify_password,
)
from services.user_service import UserService

logger = logging.getLogger(__name__)

DEFAULT_ACCESS_TTL = timedelta(minutes=15)
DEFAULT_REFRESH_TTL = timedelta(days=7)

INVALID_CREDENTIALS = AuthError(401, "UNAUTHORIZED", "Invalid email or password")
INVALID_REFRESH_TOKEN = AuthError(401, "UNAUTHORIZED", "Invalid or expired refresh token")
NO_AUTH_HEADER = AuthError(401, "UNAUTHORIZED", "No authorization header provided")
BAD_TOKEN_FORMAT = AuthError(401, "UNAUTHORIZED", "Token format should be: Bearer <token>")
INVALID_TOKEN = AuthError(401, "UNAUTHORIZED", "Invalid token")
TOKEN_EXPIRED = AuthError(401, "UNAUTHORIZED", "Token expired")
SERVER_MISCONFIGURED = AuthError(500, "INTERNAL_ERROR", "Internal server error")


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


@dataclass(frozen=True)
class AuthSession:
    user: User
    tokens: TokenPair


class AuthService:
    def __init__(self, storage: DBStorage, config: Mapping, users: Optional[UserService] = None):
        self.storage = storage
        self.config = config
        self.users = users or UserService(storage)

    # -- configuration -------------------------------------------------

    @property
    def access_ttl(self) -> timedelta:
        return self.config.get("ACCESS_TOKEN_EXPIRES") or DEFAULT_ACCESS_TTL

    @property
    def refresh_ttl(self) -> timedelta:
        return self.config.get("REFRESH_TOKEN_EXPIRES") or DEFAULT_REFRESH_TTL

    def _access_secret(self) -> str:
        return require_secret(self.config.get("JWT_SECRET"), "JWT_SECRET")

    def _refresh_secret(self) -> str:
        return require_secret(self.config.get("REFRESH_TOKEN_SECRET"), "REFRESH_TOKEN_SECRET")

    def _signing(self) -> dict:
        return {
            "algorithm": self.config.get("JWT_ALGORITHM", "HS256"),
            "issuer": self.config.get("JWT_ISSUER"),
        }

    # -- credential verifier ------------------------------------------

    def verify_credentials(self, email: str, password: str) -> Result[User, AuthError]:
        user = self.users.find_by_email(email)
        if user is None:
            burn_password_check(password)
            return Err(INVALID_CREDENTIALS)
        if not verify_password(password, user.password_hash):
            return Err(INVALID_CREDENTIALS)
        return Ok(user)

    # -- token issuer --------------------------------------------------

    def issue_tokens(self, user_id: str, email: str, role: Role, commit: bool = True) -> TokenPair:
        """
        Sign a new access/refresh pair and store the refresh token.
        Raises ConfigurationError when a signing secret is missing.
        """
        access_secret = self._access_secret()
        refresh_secret = self._refresh_secret()
        signing = self._signing()

        # Whole seconds, so the stored expiry equals the one inside the token
        now = utc_now().replace(microsecond=0)
        access_token, _ = create_token(
            user_id, email, role, token_type=ACCESS, secret=access_secret, ttl=self.access_ttl, now=now, **signing
        )
        refresh_token, refresh_expires_at = create_token(
            user_id, email, role, token_type=REFRESH, secret=refresh_secret, ttl=self.refresh_ttl, now=now, **signing
        )

        self.storage.new(
            RefreshToken(token=refresh_token, user_id=user_id, created_at=now, expires_at=refresh_expires_at)
        )
        if commit:
            self.storage.save()
        return TokenPair(access_token, refresh_token, refresh_expires_at)

    # -- flows ---------------------------------------------------------

    def register(self, email: str, password: str, first_name: str, last_name: str) -> Result[AuthSession, AuthError]:
        # Fail on a missing secret before anything is written
        self._access_secret()
        self._refresh_secret()

        created = self.users.create_user(email, password, first_name, last_name, commit=False)
        if not created.ok:
            logger.info("Registration refused: email already in use")
            return created
        user = created.value
        tokens = self.issue_tokens(user.id, user.email, user.role)
        logger.info("User %s registered", user.id)
        return Ok(AuthSession(user, tokens))

    def login(self, email: str, password: str) -> Result[AuthSession, AuthError]:
        verified = self.verify_credentials(email, password)
        if not verified.ok:
            logger.warning("Failed login attempt")
            return verified
        user = verified.value
        tokens = self.issue_tokens(user.id, user.email, user.role)
        logger.info("User %s logged in", user.id)
        return Ok(AuthSession(user, tokens))

    # -- token rotator -------------------------------------------------

    def rotate(self, refresh_token: str) -> Result[TokenPair, AuthError]:
        """
        Exchange a refresh token for a new pair. Succeeds at most once per token.
        """
        self._access_secret()
        refresh_secret = self._refresh_secret()
        session = self.storage.get_session()

        stored = session.query(RefreshToken).filter(RefreshToken.token == refresh_token).first()
        if stored is None:
            logger.warning("Refresh attempted with an unknown or already used token")
            return Err(INVALID_REFRESH_TOKEN)
        stored_id = stored.id

        if stored.is_expired(utc_now()):
            # Expired rows stay until purge_expired() sweeps them
            logger.warning("Refresh attempted with expired token %s", stored_id)
            return Err(INVALID_REFRESH_TOKEN)

        decoded = decode_token(refresh_token, secret=refresh_secret, expected_type=REFRESH, **self._signing())
        if not decoded.ok:
            logger.warning("Refresh token %s failed verification (%s)", stored_id, decoded.error.value)
            return Err(INVALID_REFRESH_TOKEN)
        claims = decoded.value

        # The delete is the serialization point: only one caller can remove the row
        deleted = (
            session.query(RefreshToken)
            .filter(RefreshToken.id == stored_id)
            .delete(synchronize_session=False)
        )
        if deleted != 1:
            self.storage.rollback()
            logger.warning("Refresh token %s was rotated concurrently", stored_id)
            return Err(INVALID_REFRESH_TOKEN)
        session.expunge(stored)

        try:
            tokens = self.issue_tokens(claims.user_id, claims.email, claims.role, commit=False)
            self.storage.save()
        except Exception:
            self.storage.rollback()
            raise
        logger.info("Rotated refresh token for user %s", claims.user_id)
        return Ok(tokens)

    # -- session revoker -----------------------------------------------

    def revoke(self, refresh_token: str) -> bool:
        """Delete every stored row for the token. True unless the store failed."""
        session = self.storage.get_session()
        try:
            deleted = (
                session.query(RefreshToken)
                .filter(RefreshToken.token == refresh_token)
                .delete(synchronize_session=False)
            )
            self.storage.save()
        except SQLAlchemyError:
            self.storage.rollback()
            logger.exception("Could not revoke refresh token")
            return False
        logger.info("Logout revoked %d refresh token row(s)", deleted)
        return True

    def revoke_all_for_user(self, user_id: str, commit: bool = True) -> int:
        """Delete every refresh token held by the user. Returns the row count."""
        session = self.storage.get_session()
        deleted = (
            session.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id)
            .delete(synchronize_session=False)
        )
        if commit:
            self.storage.save()
        logger.info("Revoked %d refresh token(s) of user %s", deleted, user_id)
        return deleted

    def change_password(self, user_id: str, current_password: str, new_password: str) -> Result[User, AuthError]:
        """New password and the end of every open session, in one commit."""
        changed = self.users.change_password(user_id, current_password, new_password, commit=False)
        if not changed.ok:
            return changed
        self.revoke_all_for_user(user_id, commit=False)
        self.storage.save()
        return changed

    def change_role(self, user_id: str, role: Role) -> Result[User, AuthError]:
        # Rotation copies the role out of the old token, so old tokens must go
        changed = self.users.set_role(user_id, role, commit=False)
        if not changed.ok:
            return changed
        self.revoke_all_for_user(user_id, commit=False)
        self.storage.save()
        return changed

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete refresh-token rows whose expiry has passed."""
        session = self.storage.get_session()
        deleted = (
            session.query(RefreshToken)
            .filter(RefreshToken.expires_at < (now or utc_now()))
            .delete(synchronize_session=False)
        )
        self.storage.save()
        logger.info("Purged %d expired refresh token(s)", deleted)
        return deleted

    # -- request authenticator -----------------------------------------

    def authenticate_header(self, header: Optional[str]) -> Result[AccessClaims, AuthError]:
        """Validate an Authorization header value. No database access."""
        if not header:
            return Err(NO_AUTH_HEADER)

        parts = header.split(" ")
        if len(parts) != 2 or parts[0] != "Bearer":
            return Err(BAD_TOKEN_FORMAT)

        secret = self.config.get("JWT_SECRET")
        if not secret:
            logger.error("JWT_SECRET is not defined")
            return Err(SERVER_MISCONFIGURED)

        decoded = decode_token(parts[1], secret=secret, expected_type=ACCESS, **self._signing())
        if not decoded.ok:
            return Err(TOKEN_EXPIRED if decoded.error is TokenError.EXPIRED else INVALID_TOKEN)
        return decoded
