import os
import sqlite3
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import click
from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from tutoring_cli.models import Base
from tutoring_cli.utils.logging_config import get_logger

logger = get_logger(__name__)

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///local.db")
DATABASE_AUTH_TOKEN = os.getenv("DATABASE_AUTH_TOKEN")

TIMEOUT_SECONDS = int(os.getenv("DB_TIMEOUT_SECONDS", "120"))


def _register_hrana_exit(engine: Engine) -> None:
    """Exit program when a hosted libSQL connection drops (HRANA WebSocket error)."""

    @event.listens_for(engine, "handle_error")
    def _exit_on_hrana(exc_ctx):
        err = getattr(exc_ctx, "original_exception", None)
        if isinstance(err, sqlite3.DatabaseError) and "HRANA_WEBSOCKET_ERROR" in str(
            err
        ):
            click.secho("Fatal HRANA WebSocket error detected. Exiting...", fg="red")
            sys.exit(1)


def enable_sqlite_foreign_keys(engine: Engine) -> None:
    """SQLite only enforces ON DELETE CASCADE when the pragma is on for each connection."""

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _with_auth_token(url: str) -> str:
    if not DATABASE_AUTH_TOKEN or url.startswith("sqlite:///"):
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}authToken={DATABASE_AUTH_TOKEN}"


def get_engine(url: Optional[str] = None) -> Engine:
    url = url or DATABASE_URL
    is_sqlite = url.startswith("sqlite")

    if is_sqlite:
        url = _with_auth_token(url)
        connect_args = {"check_same_thread": False, "timeout": TIMEOUT_SECONDS}
    elif url.startswith("postgresql"):
        connect_args = {"connect_timeout": TIMEOUT_SECONDS}
    else:
        connect_args = {}

    logger.debug(f"Creating engine for {url.split('?')[0]}")
    engine = create_engine(
        url,
        connect_args=connect_args,
        echo=False,
        pool_pre_ping=True,
        poolclass=NullPool,
    )
    if is_sqlite:
        enable_sqlite_foreign_keys(engine)
        _register_hrana_exit(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create every table that does not exist yet."""
    Base.metadata.create_all(engine)


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Run a block as one unit of work.

    Commits when the block finishes and rolls back everything done inside it
    when any exception escapes, so multi-row changes are never half applied.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
