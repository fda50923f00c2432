"""Unit tests for the session lifecycle.

Tests for:
- Credential verification
- Token issuance and the stored refresh-token row
- Single-use rotation, expiry and concurrent rotation
- Idempotent revocation, and sessions ending on password or role change
- Fatal handling of missing signing secrets
"""
from datetime import timedelta

import pytest

from models.base_model import utc_now
from models.refresh_token import RefreshToken
from models.role import Role
from services import auth_service as auth_module
from services.auth_service import INVALID_CREDENTIALS, INVALID_REFRESH_TOKEN, AuthService
from utils.security import ACCESS, REFRESH, ConfigurationError, create_token, decode_token

from conftest import PASSWORD


def _rows(storage, token=None):
    query = storage.get_session().query(RefreshToken)
    if token is not None:
        query = query.filter(RefreshToken.token == token)
    return query.all()


class TestCredentialVerifier:
    def test_accepts_correct_password(self, auth, make_user):
        user = make_user("alice@example.com")

        result = auth.verify_credentials("alice@example.com", PASSWORD)

        assert result.ok
        assert result.value.id == user.id

    def test_wrong_password_and_unknown_email_fail_identically(self, auth, make_user):
        make_user("alice@example.com")

        wrong_password = auth.verify_credentials("alice@example.com", "not-the-password")
        unknown_email = auth.verify_credentials("nobody@example.com", PASSWORD)

        assert wrong_password.error == unknown_email.error == INVALID_CREDENTIALS

    def test_email_match_is_exact(self, auth, make_user):
        make_user("alice@example.com")

        assert not auth.verify_credentials("Alice@example.com", PASSWORD).ok


class TestTokenIssuer:
    def test_login_stores_refresh_row_with_configured_ttl(self, auth, storage, make_user):
        make_user("alice@example.com")

        session = auth.login("alice@example.com", PASSWORD).value
        row = _rows(storage, session.tokens.refresh_token)[0]

        assert row.expires_at - row.created_at == timedelta(days=7)
        assert row.expires_at == session.tokens.refresh_expires_at

    def test_stored_expiry_matches_token_expiry(self, auth, config, storage, make_user):
        make_user("alice@example.com")

        tokens = auth.login("alice@example.com", PASSWORD).value.tokens
        claims = decode_token(
            tokens.refresh_token,
            secret=config["REFRESH_TOKEN_SECRET"],
            expected_type=REFRESH,
            issuer=config["JWT_ISSUER"],
        ).value

        assert claims.expires_at == _rows(storage, tokens.refresh_token)[0].expires_at

    def test_access_and_refresh_use_separate_secrets(self, auth, config, make_user):
        make_user("alice@example.com")
        tokens = auth.login("alice@example.com", PASSWORD).value.tokens

        assert decode_token(
            tokens.access_token, secret=config["JWT_SECRET"], expected_type=ACCESS, issuer=config["JWT_ISSUER"]
        ).ok
        assert not decode_token(
            tokens.refresh_token, secret=config["JWT_SECRET"], expected_type=REFRESH, issuer=config["JWT_ISSUER"]
        ).ok

    def test_every_login_gets_its_own_row(self, auth, storage, make_user):
        make_user("alice@example.com")

        first = auth.login("alice@example.com", PASSWORD).value.tokens
        second = auth.login("alice@example.com", PASSWORD).value.tokens

        assert first.refresh_token != second.refresh_token
        assert len(_rows(storage)) == 2

    @pytest.mark.parametrize("key", ["JWT_SECRET", "REFRESH_TOKEN_SECRET"])
    def test_missing_secret_is_fatal(self, storage, config, users, key):
        config[key] = None
        service = AuthService(storage, config, users=users)

        with pytest.raises(ConfigurationError):
            service.issue_tokens("user-1", "a@example.com", Role.USER)
        assert _rows(storage) == []

    def test_register_with_missing_secret_writes_nothing(self, storage, config, users):
        config["REFRESH_TOKEN_SECRET"] = ""
        service = AuthService(storage, config, users=users)

        with pytest.raises(ConfigurationError):
            service.register("alice@example.com", PASSWORD, "Alice", "Smith")
        assert users.find_by_email("alice@example.com") is None


class TestTokenRotator:
    def test_rotation_replaces_the_row(self, auth, storage, make_user):
        make_user("alice@example.com")
        old = auth.login("alice@example.com", PASSWORD).value.tokens

        result = auth.rotate(old.refresh_token)

        assert result.ok
        new = result.value
        assert new.refresh_token != old.refresh_token
        assert _rows(storage, old.refresh_token) == []
        assert len(_rows(storage, new.refresh_token)) == 1

    def test_rotation_succeeds_at_most_once(self, auth, make_user):
        make_user("alice@example.com")
        tokens = auth.login("alice@example.com", PASSWORD).value.tokens

        assert auth.rotate(tokens.refresh_token).ok
        second = auth.rotate(tokens.refresh_token)

        assert not second.ok
        assert second.error == INVALID_REFRESH_TOKEN

    def test_rotated_pair_keeps_identity(self, auth, config, make_user):
        user = make_user("alice@example.com", role=Role.AGENT)
        tokens = auth.login("alice@example.com", PASSWORD).value.tokens

        new = auth.rotate(tokens.refresh_token).value
        claims = decode_token(
            new.access_token, secret=config["JWT_SECRET"], expected_type=ACCESS, issuer=config["JWT_ISSUER"]
        ).value

        assert (claims.user_id, claims.email, claims.role) == (user.id, "alice@example.com", Role.AGENT)

    def test_expired_row_fails_and_is_kept(self, auth, storage, make_user):
        make_user("alice@example.com")
        tokens = auth.login("alice@example.com", PASSWORD).value.tokens
        row = _rows(storage, tokens.refresh_token)[0]
        row.expires_at = utc_now() - timedelta(seconds=1)
        storage.save()

        result = auth.rotate(tokens.refresh_token)

        assert not result.ok
        assert len(_rows(storage, tokens.refresh_token)) == 1

    def test_never_issued_token_fails(self, auth, config):
        token, _ = create_token(
            "user-1",
            "a@example.com",
            Role.USER,
            token_type=REFRESH,
            secret=config["REFRESH_TOKEN_SECRET"],
            ttl=timedelta(days=7),
            issuer=config["JWT_ISSUER"],
        )

        assert auth.rotate(token).error == INVALID_REFRESH_TOKEN

    def test_stored_row_with_bad_signature_fails(self, auth, storage, make_user):
        user = make_user("alice@example.com")
        forged, expires_at = create_token(
            user.id,
            user.email,
            Role.ADMIN,
            token_type=REFRESH,
            secret="someone-elses-secret-0123456789abcdef0123",
            ttl=timedelta(days=7),
        )
        storage.new(RefreshToken(token=forged, user_id=user.id, expires_at=expires_at))
        storage.save()

        assert not auth.rotate(forged).ok

    def test_concurrent_rotation_has_one_winner(self, auth, storage, make_user, monkeypatch):
        make_user("alice@example.com")
        tokens = auth.login("alice@example.com", PASSWORD).value.tokens
        real_decode = auth_module.decode_token

        def decode_while_someone_else_rotates(token, **kwargs):
            # The competing request deletes the row between lookup and delete
            storage.get_session().query(RefreshToken).filter(RefreshToken.token == token).delete(
                synchronize_session=False
            )
            storage.save()
            return real_decode(token, **kwargs)

        monkeypatch.setattr(auth_module, "decode_token", decode_while_someone_else_rotates)

        result = auth.rotate(tokens.refresh_token)

        assert not result.ok
        assert _rows(storage) == []

    def test_rotation_requires_refresh_secret(self, storage, config, users):
        config["REFRESH_TOKEN_SECRET"] = None

        with pytest.raises(ConfigurationError):
            AuthService(storage, config, users=users).rotate("anything")


class TestSessionRevoker:
    def test_logout_then_rotate_fails(self, auth, make_user):
        make_user("alice@example.com")
        tokens = auth.login("alice@example.com", PASSWORD).value.tokens

        assert auth.revoke(tokens.refresh_token) is True
        assert not auth.rotate(tokens.refresh_token).ok

    def test_logout_is_idempotent(self, auth, make_user):
        make_user("alice@example.com")
        tokens = auth.login("alice@example.com", PASSWORD).value.tokens

        assert auth.revoke(tokens.refresh_token) is True
        assert auth.revoke(tokens.refresh_token) is True

    def test_logout_leaves_other_sessions_alone(self, auth, storage, make_user):
        make_user("alice@example.com")
        first = auth.login("alice@example.com", PASSWORD).value.tokens
        second = auth.login("alice@example.com", PASSWORD).value.tokens

        auth.revoke(first.refresh_token)

        assert auth.rotate(second.refresh_token).ok

    def test_purge_removes_only_expired_rows(self, auth, storage, make_user):
        make_user("alice@example.com")
        stale = auth.login("alice@example.com", PASSWORD).value.tokens
        fresh = auth.login("alice@example.com", PASSWORD).value.tokens
        _rows(storage, stale.refresh_token)[0].expires_at = utc_now() - timedelta(days=1)
        storage.save()

        assert auth.purge_expired() == 1
        assert [row.token for row in _rows(storage)] == [fresh.refresh_token]


class TestRegister:
    def test_register_creates_user_and_session(self, auth, storage):
        result = auth.register("alice@example.com", PASSWORD, "Alice", "Smith")

        assert result.ok
        assert result.value.user.role is Role.USER
        assert len(_rows(storage, result.value.tokens.refresh_token)) == 1

    def test_duplicate_email_is_refused(self, auth):
        auth.register("alice@example.com", PASSWORD, "Alice", "Smith")

        result = auth.register("alice@example.com", PASSWORD, "Other", "Person")

        assert not result.ok
        assert result.error.status == 400

    def test_registration_race_on_the_unique_index_is_refused(self, auth, users, storage, monkeypatch):
        auth.register("alice@example.com", PASSWORD, "Alice", "Smith")
        # The other request committed after our existence check ran
        monkeypatch.setattr(users, "find_by_email", lambda email: None)

        result = auth.register("alice@example.com", PASSWORD, "Other", "Person")

        assert not result.ok
        assert result.error.status == 400
        assert len(_rows(storage)) == 1


class TestSessionsEndOnAccountChange:
    def test_role_change_revokes_refresh_tokens(self, auth, storage, make_user):
        admin = make_user("admin@example.com", role=Role.ADMIN)
        tokens = auth.login("admin@example.com", PASSWORD).value.tokens

        assert auth.change_role(admin.id, Role.USER).ok

        assert not auth.rotate(tokens.refresh_token).ok
        assert _rows(storage) == []
        relogin = auth.login("admin@example.com", PASSWORD).value
        assert relogin.user.role is Role.USER

    def test_password_change_revokes_refresh_tokens(self, auth, storage, make_user):
        user = make_user("alice@example.com")
        first = auth.login("alice@example.com", PASSWORD).value.tokens
        second = auth.login("alice@example.com", PASSWORD).value.tokens

        assert auth.change_password(user.id, PASSWORD, "N3wPassword!").ok

        assert not auth.rotate(first.refresh_token).ok
        assert not auth.rotate(second.refresh_token).ok
        assert _rows(storage) == []

    def test_wrong_current_password_keeps_sessions(self, auth, make_user):
        user = make_user("alice@example.com")
        tokens = auth.login("alice@example.com", PASSWORD).value.tokens

        result = auth.change_password(user.id, "not-my-password", "N3wPassword!")

        assert not result.ok
        assert result.error.status == 401
        assert auth.rotate(tokens.refresh_token).ok

    def test_revoke_all_leaves_other_users_alone(self, auth, storage, make_user):
        alice = make_user("alice@example.com")
        make_user("bob@example.com")
        auth.login("alice@example.com", PASSWORD)
        auth.login("alice@example.com", PASSWORD)
        bob = auth.login("bob@example.com", PASSWORD).value.tokens

        assert auth.revoke_all_for_user(alice.id) == 2
        assert [row.token for row in _rows(storage)] == [bob.refresh_token]
