"""
Database Session Management - Gestión de sesiones
Provides the Database handle injected into services.
"""

from contextlib import contextmanager
from typing import Optional, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from .models import Base


class Database:
    """
    Owns an engine and its session factory.

    Services receive an instance through their constructor instead of
    reaching for a module-level client.
    """

    def __init__(self, database_url: str, echo: bool = False):
        connect_args = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False  # Streamlit reruns on worker threads

        self.engine: Engine = create_engine(database_url, echo=echo, connect_args=connect_args)

        if database_url.startswith("sqlite"):
            @event.listens_for(self.engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    @classmethod
    def sqlite(cls, db_path: str, echo: bool = False) -> "Database":
        """Open a SQLite database file."""
        return cls(f"sqlite:///{db_path}", echo=echo)

    def create_all(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        """Drop all database tables (use with caution!)."""
        Base.metadata.drop_all(bind=self.engine)

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Usage:
            with db.session_scope() as session:
                session.add(event)
                # Commits on success, rolls back on exception

        Yields:
            SQLAlchemy Session instance
        """
        session = self._session_factory()

        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        """Close the engine and release pooled connections."""
        self.engine.dispose()


def init_database(db_path: Optional[str] = None, echo: bool = False) -> Database:
    """
    Open the configured database and make sure the tables exist.

    Args:
        db_path: Optional path to the database file (defaults to settings)
        echo: Log emitted SQL

    Returns:
        Database instance
    """
    if db_path is None:
        from workforce.core.config import get_settings
        settings = get_settings()
        db_path = settings.database_path
        echo = echo or settings.sql_debug

    db = Database.sqlite(db_path, echo=echo)
    db.create_all()
    return db
