# commission_sync/db.py
"""Engine and session scope for the commission tables"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, Optional, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from commission_sync.config import settings, Settings
from commission_sync.models.db import Base
from commission_sync.db_config import DatabaseManager

logger = logging.getLogger(__name__)

T = TypeVar('T')

def engine_options(url: str) -> Dict[str, Any]:
    """
    Pool options per backend.

    An in-memory SQLite database lives inside one connection, so every
    session has to share it. PostgreSQL connections are pinged before
    reuse because crawls run hours apart.
    """
    if url.startswith('sqlite'):
        options: Dict[str, Any] = {'connect_args': {'check_same_thread': False}}
        if url in ('sqlite://', 'sqlite:///:memory:'):
            options['poolclass'] = StaticPool
        return options
    return {'pool_pre_ping': True}

class Database:
    """Owns the engine and hands out sessions to crawl runs"""

    def __init__(self):
        self._engine: Optional[Engine] = None
        self._sessions: Optional[sessionmaker] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._engine

    def init(self, url: Optional[str] = None, config: Settings = settings) -> None:
        """
        Connect and create any missing tables.

        The URL defaults to DATABASE_URL or the DB_* settings. Calling
        init() again replaces the previous engine.

        Raises:
            ValueError: If the database settings are incomplete
            SQLAlchemyError: If the database cannot be reached
        """
        if url is None:
            try:
                url = DatabaseManager.initialize_from_env(config)
            except ValueError as e:
                logger.error(f"Invalid database configuration: {e}")
                raise

        self.dispose()
        try:
            self._engine = create_engine(url, **engine_options(url))
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            logger.error(f"Database initialization failed: {e}")
            self.dispose()
            raise
        self._sessions = sessionmaker(bind=self._engine)
        logger.info(f"Database initialized ({self._engine.dialect.name})")

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Session for one crawl run.

        Services commit per record; whatever is still pending when the
        block exits is committed, or rolled back if it raised.
        """
        if self._sessions is None:
            raise RuntimeError("Database not initialized. Call init() first.")

        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def run(self, operation: Callable[..., T], *args, **kwargs) -> T:
        """Call operation(session, *args, **kwargs) inside its own session"""
        with self.session() as session:
            return operation(session, *args, **kwargs)

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._sessions = None

db = Database()
