"""
Database session management for the Library Desk backend.

A ``DatabaseManager`` is the explicit datastore handle: it is constructed once
by the entry point and injected into the desk, never reached through a global.
Every desk operation runs inside one ``session_scope()``:

1. Atomicity: the whole read-modify-write commits or rolls back together
2. Cleanup: the session is closed on every exit path, errors included
3. Error mapping: driver failures surface as ``Unavailable``, constraint
   failures that escape the components as ``IntegrityViolation``
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..errors import IntegrityViolation, LibraryError, Unavailable
from .schema import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DatabaseManager:
    """
    Owns the engine and session factory for one datastore.

    SQLite gets special handling:
    - ``:memory:`` databases share a single connection (``StaticPool``)
    - file databases keep a real pool plus a busy timeout, so concurrent
      writers queue on the database lock instead of failing immediately
    - foreign key enforcement is switched on for every connection
    """

    def __init__(self, database_url: str, sqlite_busy_timeout: float = 30.0, echo: bool = False):
        self.database_url = database_url
        self.sqlite_busy_timeout = sqlite_busy_timeout
        self.echo = echo
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            if self.is_sqlite:
                if ":memory:" in self.database_url or self.database_url == "sqlite://":
                    self._engine = create_engine(
                        self.database_url,
                        poolclass=StaticPool,
                        connect_args={"check_same_thread": False},
                        echo=self.echo,
                    )
                else:
                    self._engine = create_engine(
                        self.database_url,
                        connect_args={
                            "check_same_thread": False,
                            "timeout": self.sqlite_busy_timeout,
                        },
                        echo=self.echo,
                    )

                @event.listens_for(self._engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()
            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=self.echo,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    def create_session(self) -> Session:
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide one transactional unit of work.

        Domain errors raised inside the block roll back and propagate
        unchanged. Leftover constraint failures become ``IntegrityViolation``;
        any other SQLAlchemy failure becomes ``Unavailable``.
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except LibraryError as e:
            session.rollback()
            logger.debug("Transaction rolled back: %s", e.kind)
            raise
        except IntegrityError as e:
            session.rollback()
            logger.error("Constraint violated, rolling back: %s", e.orig)
            raise IntegrityViolation("Stored data violates a library invariant") from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Database error, rolling back")
            raise Unavailable("Datastore is unavailable") from e
        except Exception:
            session.rollback()
            logger.exception("Unexpected error, rolling back")
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """Create the schema. Production deployments should use migrations."""
        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=self.engine)

        Base.metadata.create_all(bind=self.engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


def safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Run a query, mapping driver failures to ``Unavailable``.

    Constraint errors are left alone so the calling component can translate
    them into the matching conflict.
    """
    try:
        return query_func(session)
    except IntegrityError:
        raise
    except SQLAlchemyError as e:
        logger.exception("Query failed: %s", error_msg)
        raise Unavailable(f"{error_msg}: datastore query failed") from e


def safe_flush(session: Session, operation: str) -> None:
    """Flush pending writes so constraint failures surface inside the component."""
    try:
        session.flush()
    except IntegrityError:
        raise
    except SQLAlchemyError as e:
        logger.exception("Flush failed during %s", operation)
        raise Unavailable(f"Database operation '{operation}' failed") from e
