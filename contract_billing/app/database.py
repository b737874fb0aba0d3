"""Engine and session setup for the billing database."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

LOGGER = logging.getLogger(__name__)

DATABASE_URL_ENV = "DATABASE_URL"
REQUIRE_POSTGRES_ENV = "REQUIRE_POSTGRES"
SQLITE_FOREIGN_KEYS_ENV = "SQLITE_FOREIGN_KEYS"

_POOL_SETTINGS = (
    # (engine option, environment variable, default)
    ("pool_size", "DATABASE_POOL_SIZE", 5),
    ("max_overflow", "DATABASE_MAX_OVERFLOW", 10),
    ("pool_timeout", "DATABASE_POOL_TIMEOUT", 30),
    ("pool_recycle", "DATABASE_POOL_RECYCLE", 1800),
)

_DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent / "var" / "contract_billing.db"


def _read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return value


def _read_bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def resolve_database_url(raw_url: Optional[str] = None) -> str:
    """Return the configured URL, falling back to a local SQLite file.

    PostgreSQL can be enforced with ``REQUIRE_POSTGRES=1`` so a production
    deployment never silently writes invoices to SQLite.
    """

    require_postgres = _read_bool_env(REQUIRE_POSTGRES_ENV, False)
    if not raw_url:
        if require_postgres:
            raise RuntimeError(
                f"{DATABASE_URL_ENV} must point to PostgreSQL when {REQUIRE_POSTGRES_ENV}=1"
            )
        _DEFAULT_DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{_DEFAULT_DB_PATH.as_posix()}"

    url = make_url(raw_url)
    is_sqlite = url.drivername.startswith("sqlite")
    if is_sqlite and require_postgres:
        raise RuntimeError(f"SQLite is not permitted when {REQUIRE_POSTGRES_ENV}=1")
    if is_sqlite and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return url.render_as_string(hide_password=False)


def engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    options: Dict[str, Any] = {"pool_pre_ping": True}
    for option, env_name, default in _POOL_SETTINGS:
        options[option] = _read_int_env(env_name, default)
    return options


def _enable_sqlite_foreign_keys(target: Engine) -> None:
    # SQLite ignores ON DELETE clauses unless the pragma is set per connection.
    @event.listens_for(target, "connect")
    def _set_pragma(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_billing_engine(url: Optional[str] = None) -> Engine:
    final_url = url or SQLALCHEMY_DATABASE_URL
    billing_engine = create_engine(final_url, **engine_options(final_url))
    if final_url.startswith("sqlite") and _read_bool_env(SQLITE_FOREIGN_KEYS_ENV, True):
        _enable_sqlite_foreign_keys(billing_engine)
    LOGGER.debug("Created engine for %s", billing_engine.url.render_as_string())
    return billing_engine


SQLALCHEMY_DATABASE_URL = resolve_database_url(os.getenv(DATABASE_URL_ENV))

engine = create_billing_engine(SQLALCHEMY_DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session; services decide when to commit."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Transactional session for scripts and cron jobs."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
