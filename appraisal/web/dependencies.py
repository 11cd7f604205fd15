from __future__ import annotations

from collections.abc import Generator

from fastapi import Header, Request
from sqlalchemy.orm import Session, sessionmaker

from appraisal.infrastructure.config import DatabaseConfig, get_settings
from appraisal.infrastructure.db import create_database_engine, create_session_factory
from appraisal.infrastructure.exceptions import AuthenticationError
from appraisal.infrastructure.notifications import (
    DatabaseNotificationEmitter,
    NotificationEmitter,
)


def get_db_config(request: Request) -> DatabaseConfig:
    config = getattr(request.app.state, "db_config", None)
    if config is None:
        config = get_settings().database
        request.app.state.db_config = config
    return config


def get_session_factory(request: Request) -> sessionmaker[Session]:
    cached_factory = getattr(request.app.state, "session_factory", None)
    if cached_factory is not None:
        return cached_factory

    engine = create_database_engine(get_db_config(request))
    session_factory = create_session_factory(engine)
    request.app.state.session_factory = session_factory
    return session_factory


def get_db_session(request: Request) -> Generator[Session, None, None]:
    session_factory = get_session_factory(request)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def get_emitter(request: Request) -> NotificationEmitter:
    emitter = getattr(request.app.state, "notification_emitter", None)
    if emitter is None:
        emitter = DatabaseNotificationEmitter(get_session_factory(request))
        request.app.state.notification_emitter = emitter
    return emitter


def get_actor(x_actor: str | None = Header(default=None)) -> str:
    """Acting employee code, passed explicitly by the caller."""
    if x_actor is None or not x_actor.strip():
        raise AuthenticationError("X-Actor header is required")
    return x_actor.strip()
