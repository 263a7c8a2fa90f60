"""
Database engine and session factory for SQLAlchemy.
"""
from typing import Any, Dict, Optional

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from orderkaro.models import Base


def engine_options(database_url: str, query_timeout: Optional[float] = None) -> Dict[str, Any]:
    """
    Keyword arguments for create_engine.

    SQLite connections are shared across the request thread pool; an
    in-memory SQLite database is pinned to a single connection so every
    session sees the same data. The query timeout becomes SQLite's lock
    wait, or a PostgreSQL statement_timeout plus the pool checkout limit.
    """
    if database_url.startswith("sqlite"):
        connect_args: Dict[str, Any] = {"check_same_thread": False}
        if query_timeout is not None:
            connect_args["timeout"] = query_timeout
        kwargs: Dict[str, Any] = {"connect_args": connect_args}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return kwargs

    kwargs = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": False,
    }
    if query_timeout is not None:
        kwargs["pool_timeout"] = query_timeout
        if database_url.startswith("postgresql"):
            kwargs["connect_args"] = {"options": f"-c statement_timeout={int(query_timeout * 1000)}"}
    return kwargs


def create_db_engine(database_url: str, query_timeout: Optional[float] = None) -> Engine:
    return create_engine(database_url, **engine_options(database_url, query_timeout))


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_schema(engine: Engine) -> None:
    """Create any missing tables."""
    Base.metadata.create_all(bind=engine)


def existing_tables(engine: Engine) -> set:
    return set(inspect(engine).get_table_names())
