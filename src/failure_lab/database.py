"""Embedded database management for the test entity store."""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for ORM models."""


class Database:
    """Own the SQLAlchemy engine and hand out sessions."""

    def __init__(self, url: str) -> None:
        """Initialize the database manager.

        Args:
            url: SQLAlchemy database URL. In-memory SQLite is shared across
                threads through a single static connection.
        """
        self.url = url
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine:
        """Get SQLAlchemy engine with lazy initialization."""
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    def _create_engine(self) -> Engine:
        url = make_url(self.url)
        if url.get_backend_name() == "sqlite":
            kwargs: dict[str, object] = {"connect_args": {"check_same_thread": False}}
            if url.database in {None, "", ":memory:"}:
                kwargs["poolclass"] = StaticPool
            return create_engine(url, **kwargs)
        return create_engine(url, pool_pre_ping=True, pool_recycle=3600)

    def create_schema(self) -> None:
        """Create tables for every registered model."""
        # Import registers the models on Base.metadata
        from .entities import models  # noqa: F401

        Base.metadata.create_all(self.engine)
        logger.info("database.schema_ready", url=self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def session(self) -> Generator[Session]:
        """Yield a session that commits on success and rolls back on error."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(self.engine, expire_on_commit=False)
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
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
