"""
Database Session Management
Engine construction and unit-of-work sessions for the relational store
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


def create_engine_from_url(database_url: str, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine for the configured database

    Args:
        database_url: SQLAlchemy database URL
        echo: Log emitted SQL

    Returns:
        Configured engine
    """

    try:
        if database_url.startswith("sqlite"):
            kwargs = {"connect_args": {"check_same_thread": False}}
            # In-memory databases must share a single connection
            if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
                kwargs["poolclass"] = StaticPool
            return create_engine(database_url, echo=echo, **kwargs)

        return create_engine(
            database_url,
            pool_pre_ping=True,  # Verify connections before using
            pool_recycle=1800,
            echo=echo,
        )
    except Exception as e:
        logger.error(f"Failed to create database engine: {e}")
        raise


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet"""
    Base.metadata.create_all(engine)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory whose objects stay readable after commit"""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """Transactional scope: commit on success, roll back on error"""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
