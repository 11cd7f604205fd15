"""
Engine and session factory construction.

Every session the service opens comes from :func:`make_engine_and_session`
or :func:`create_session_factory`, so all of them share the same flushing
rules: no autoflush (the workflow flushes explicitly to catch version
conflicts at a known point) and no expiry on commit (transition results are
read after the unit of work closes).
"""

from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError, NoSuchModuleError
from sqlalchemy.orm import sessionmaker

from .config import DatabaseConfig, get_settings
from .exceptions import ConfigurationError
from .logging import get_logger

logger = get_logger(__name__)


def _redact(url: str) -> str:
    scheme, sep, rest = url.partition("://")
    if "@" not in rest:
        return url
    return f"{scheme}{sep}***@{rest.split('@', 1)[1]}"


def _enforce_sqlite_foreign_keys(engine: Engine) -> None:
    # SQLite leaves FK enforcement off per connection; the RESTRICT on
    # assessments.employee_id relies on it.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _build_engine(url: str, **options) -> Engine:
    try:
        engine = create_engine(url, **options)
    except (ArgumentError, NoSuchModuleError) as e:
        raise ConfigurationError(
            f"Cannot create a database engine for {_redact(url)}: {e}",
            config_key="database",
        ) from e
    if engine.dialect.name == "sqlite":
        _enforce_sqlite_foreign_keys(engine)
    logger.info(f"Database engine ready ({engine.dialect.name}: {_redact(url)})")
    return engine


def create_database_engine(config: DatabaseConfig | None = None) -> Engine:
    """Engine for a database section; ``None`` means the configured one."""
    config = config or get_settings().database
    return _build_engine(config.get_connection_url(), **config.get_engine_options())


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


def make_engine_and_session(connection_url: str | None = None) -> tuple[Engine, sessionmaker]:
    """
    Engine and session factory for an explicit URL, or for the configured database.

    Example:
        >>> engine, SessionLocal = make_engine_and_session("sqlite:///:memory:")
    """
    if connection_url:
        engine = _build_engine(connection_url, future=True, pool_pre_ping=True)
    else:
        engine = create_database_engine()
    return engine, create_session_factory(engine)


def get_database_url() -> str:
    return get_settings().database.get_connection_url()
