"""
Per-app handles. The DBStorage is built by create_app() (or injected by
tests) and parked in app.extensions; services are cheap wrappers around it.
"""
from flask import current_app

from models.db_storage import DBStorage
from services.auth_service import AuthService
from services.user_service import UserService

STORAGE_KEY = "storage"


def init_storage(app, storage: DBStorage | None = None) -> DBStorage:
    if storage is None:
        storage = DBStorage(app.config["DATABASE_URL"], echo=app.config.get("SQL_ECHO", False))
    app.extensions[STORAGE_KEY] = storage

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        storage.close()

    return storage


def get_storage() -> DBStorage:
    return current_app.extensions[STORAGE_KEY]


def user_service() -> UserService:
    return UserService(get_storage())


def auth_service() -> AuthService:
    storage = get_storage()
    return AuthService(storage, current_app.config, users=UserService(storage))
