import logging

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from models.base_model import Base
from models.refresh_token import RefreshToken
from models.user import User

logger = logging.getLogger(__name__)

# Map model names for easy lookups
classes = {
    "User": User,
    "RefreshToken": RefreshToken,
}


class DBStorage:
    """
    Database handle: one engine plus a thread-scoped session factory.

    Constructed once at process start (by the app factory or a test fixture),
    handed to whoever needs it, and torn down with dispose() at shutdown.
    """

    def __init__(self, database_url: str, echo: bool = False):
        """Initialize engine for database_url"""
        if not database_url:
            raise ValueError("database_url is required")
        kwargs = {"echo": echo}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
                # A single shared connection keeps the in-memory database alive
                kwargs["poolclass"] = StaticPool
        else:
            kwargs["pool_pre_ping"] = True
        self.__engine = create_engine(database_url, **kwargs)

        if self.__engine.url.get_backend_name() == "sqlite":
            # Enable SQLite foreign keys (needed for ON DELETE CASCADE)
            @event.listens_for(self.__engine, "connect")
            def _set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        session_factory = sessionmaker(bind=self.__engine, expire_on_commit=False)
        self.__session = scoped_session(session_factory)

    def reload(self):
        """Create tables"""
        Base.metadata.create_all(self.__engine)

    def new(self, obj):
        """Add object to session"""
        self.__session.add(obj)

    def save(self):
        """Commit session"""
        try:
            self.__session.commit()
        except SQLAlchemyError:
            self.__session.rollback()
            raise

    def rollback(self):
        self.__session.rollback()

    def get(self, cls, id):
        """Fetch one object by class and ID"""
        if cls in classes.values():
            return self.__session.get(cls, id)
        return None

    def close(self):
        """Remove session (for API teardown)"""
        self.__session.remove()

    def dispose(self):
        """Release pooled connections (process shutdown)"""
        self.__session.remove()
        self.__engine.dispose()
        logger.debug("Database engine disposed")

    # expose the SQLAlchemy session for advanced querying (joins, filters, etc.)
    def get_session(self):
        return self.__session
