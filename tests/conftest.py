import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from api import create_app  # noqa: E402
from api.config import TestingConfig  # noqa: E402
from models.db_storage import DBStorage  # noqa: E402
from models.role import Role  # noqa: E402
from services.auth_service import AuthService  # noqa: E402
from services.user_service import UserService  # noqa: E402
from utils.security import ACCESS, create_token  # noqa: E402

PASSWORD = "Passw0rd!"


def config_dict(config_cls=TestingConfig) -> dict:
    return {key: getattr(config_cls, key) for key in dir(config_cls) if key.isupper()}


@pytest.fixture
def storage():
    """Fresh in-memory database per test."""
    storage = DBStorage("sqlite:///:memory:")
    storage.reload()
    yield storage
    storage.dispose()


@pytest.fixture
def config():
    return config_dict()


@pytest.fixture
def users(storage):
    return UserService(storage)


@pytest.fixture
def auth(storage, config, users):
    return AuthService(storage, config, users=users)


@pytest.fixture
def app(storage):
    app = create_app("testing", storage=storage)
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(users):
    def _make(email="user@example.com", password=PASSWORD, role=Role.USER, first_name="Test", last_name="User"):
        result = users.create_user(email, password, first_name, last_name, role=role)
        assert result.ok
        return result.value

    return _make


@pytest.fixture
def access_token_for(app):
    """Sign an access token directly, bypassing login."""
    def _token(role=Role.USER, user_id="user-1", email="user@example.com", ttl=None, now=None):
        token, _ = create_token(
            user_id,
            email,
            role,
            token_type=ACCESS,
            secret=app.config["JWT_SECRET"],
            ttl=ttl or app.config["ACCESS_TOKEN_EXPIRES"],
            algorithm=app.config["JWT_ALGORITHM"],
            issuer=app.config["JWT_ISSUER"],
            now=now,
        )
        return token

    return _token


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
