"""
Database configuration and session management.

Sets up the SQLAlchemy engine, the session factory and the declarative base
shared by the reservation and processed-message tables. SQLite is the
default; any SQLAlchemy URL works.
"""

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from tablebot.config import settings

Base = declarative_base()


def create_db_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """Create an engine; in-memory SQLite is pinned to one shared connection."""
    url = url or settings.database.url
    echo = settings.database.echo if echo is None else echo
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)
    return create_engine(url, echo=echo, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    """Create the tables if they do not exist yet."""
    # models must be imported so their tables are registered on Base
    from tablebot.storage import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def create_session_factory(url: Optional[str] = None, echo: Optional[bool] = None) -> sessionmaker:
    """Build a session factory bound to a fresh engine with the schema in place."""
    engine = create_db_engine(url, echo)
    init_db(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
