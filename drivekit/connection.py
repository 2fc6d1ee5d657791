# drivekit/connection.py
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Sequence, Type

from sqlalchemy import create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, MultipleResultsFound, NoResultFound, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from drivekit.exceptions import DatabaseError, DriveError, DuplicateKeyError, NotFound
from drivekit.models.tables import Base
from drivekit.profile import DatabaseProfile
from drivekit.query import BackendKind
import logging

logger = logging.getLogger(__name__)


def _enable_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores REFERENCES clauses unless asked per connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatastoreConnection:
    def __init__(self, profile: DatabaseProfile, echo: bool = False):
        """Initialize a connection to the relational store described by the profile."""
        self.profile = profile
        self.echo = echo
        self.engine = self._create_sqlalchemy_engine()
        self.session_factory = self._create_session()
        self.backend = BackendKind.from_name(self.engine.dialect.name)
        logger.info(f"Connected to {self.backend.value} datastore")

    def _create_sqlalchemy_engine(self) -> Engine:
        """Private: Create a SQLAlchemy engine based on the profile."""
        if not self.profile.connection_string:
            raise DatabaseError("database profile has no connection string")
        try:
            if self.profile.db_type == "sqlite":
                kwargs = {"connect_args": {"check_same_thread": False}}
                if self.profile.connection_string.endswith(":memory:"):
                    kwargs["poolclass"] = StaticPool
                engine = create_engine(self.profile.connection_string, echo=self.echo, **kwargs)
                event.listen(engine, "connect", _enable_foreign_keys)
                return engine
            return create_engine(self.profile.connection_string, echo=self.echo, pool_pre_ping=True)
        except Exception as e:
            logger.error(f"Failed to create SQLAlchemy engine: {e}")
            raise DatabaseError(f"Failed to create SQLAlchemy engine: {e}") from e

    def _create_session(self) -> sessionmaker:
        """Private: Create a SQLAlchemy session factory."""
        return sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_tables(self):
        """Create the drivekit tables if they don't exist."""
        with self.translate_errors("create tables"):
            Base.metadata.create_all(self.engine)

    @contextmanager
    def translate_errors(self, operation: str) -> Iterator[None]:
        """Map SQLAlchemy errors raised inside the block to drivekit errors."""
        try:
            yield
        except DriveError:
            raise
        except NoResultFound as e:
            raise NotFound("error getting the requested resource from database") from e
        except MultipleResultsFound as e:
            raise DatabaseError(f"Multiple rows returned during {operation}") from e
        except IntegrityError as e:
            error_message = str(e.orig).lower()
            if "duplicate" in error_message or "unique" in error_message:
                raise DuplicateKeyError(f"Duplicate key error during {operation}: {e.orig}") from e
            raise DatabaseError(f"Integrity error during {operation}: {e.orig}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error during {operation}: {e}")
            raise DatabaseError(f"Error during {operation}: {e}") from e

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """Session that commits on success and rolls back on any error."""
        session = self.session_factory()
        try:
            with self.translate_errors("commit"):
                yield session
                session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def _session_scope(self, session: Optional[Session]) -> Iterator[Session]:
        if session is not None:
            yield session
            return
        session = self.session_factory()
        try:
            yield session
        finally:
            session.close()

    def _typed(self, entity: Type[Any], sql: str, params: Sequence[Any]):
        """Bind a SELECT of whole `entity` rows, typed by the mapped table columns."""
        stmt, values = self.backend.bind(sql, params)
        return stmt.columns(*entity.__table__.columns), values

    def fetch_one(self, entity: Type[Any], sql: str, params: Sequence[Any] = (),
                  session: Optional[Session] = None) -> Any:
        """Run a SELECT built with backend placeholders and load exactly one `entity`.

        Raises:
            NotFound: If no row matches.
        """
        stmt, values = self._typed(entity, sql, params)
        with self._session_scope(session) as s, self.translate_errors(f"fetch {entity.__name__}"):
            return s.execute(select(entity).from_statement(stmt), values).scalar_one()

    def fetch_all(self, entity: Type[Any], sql: str, params: Sequence[Any] = (),
                  session: Optional[Session] = None) -> List[Any]:
        stmt, values = self._typed(entity, sql, params)
        with self._session_scope(session) as s, self.translate_errors(f"fetch {entity.__name__}"):
            return list(s.execute(select(entity).from_statement(stmt), values).scalars().all())

    def scalar(self, sql: str, params: Sequence[Any] = (), session: Optional[Session] = None) -> Any:
        stmt, values = self.backend.bind(sql, params)
        with self._session_scope(session) as s, self.translate_errors("scalar query"):
            return s.execute(stmt, values).scalar()

    def execute(self, sql: str, params: Sequence[Any] = (), session: Optional[Session] = None) -> int:
        """Run a write statement; commits unless an outer session is supplied. Returns the rowcount."""
        stmt, values = self.backend.bind(sql, params)
        if session is not None:
            with self.translate_errors("execute"):
                return session.execute(stmt, values).rowcount
        with self.get_session() as s:
            return s.execute(stmt, values).rowcount

    def stop(self):
        """Dispose of the engine's connection pool."""
        self.engine.dispose()
