"""Bring the billing schema to the Alembic head before the API serves traffic.

Several workers may start at once, so the upgrade runs under an exclusive
file lock next to ``alembic.ini``.
"""

from __future__ import annotations

import errno
import logging
import os
import sys
import time
from pathlib import Path
from typing import IO, Optional

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect

from .database import SQLALCHEMY_DATABASE_URL, engine_options

LOGGER = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent.parent

LOCK_FILENAME = ".alembic-migration.lock"
LOCK_TIMEOUT_ENV = "ALEMBIC_MIGRATION_LOCK_TIMEOUT"
DEFAULT_LOCK_TIMEOUT = 30.0
LOCK_POLL_INTERVAL = 0.25

# Tables created by the initial revision; a database holding all of them
# without an alembic_version row was built by ``create_all``.
BILLING_TABLES = (
    "customers",
    "articles",
    "price_lists",
    "price_list_items",
    "contract_billing_batches",
    "contract_billing_items",
    "case_billing_items",
)

if os.name == "posix":  # pragma: no cover - platform specific
    import fcntl
else:  # pragma: no cover - platform specific
    import msvcrt


def lock_timeout() -> float:
    raw = os.getenv(LOCK_TIMEOUT_ENV)
    if not raw:
        return DEFAULT_LOCK_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        LOGGER.warning("Ignoring invalid %s=%s", LOCK_TIMEOUT_ENV, raw)
        return DEFAULT_LOCK_TIMEOUT
    if value <= 0:
        LOGGER.warning("Ignoring non-positive %s=%s", LOCK_TIMEOUT_ENV, raw)
        return DEFAULT_LOCK_TIMEOUT
    return value


class MigrationLock:
    """Exclusive advisory lock on a file, polled until ``timeout`` expires."""

    def __init__(self, path: Path, timeout: float) -> None:
        self.path = path
        self.timeout = timeout
        self._handle: Optional[IO[str]] = None

    @staticmethod
    def _held_elsewhere(error: OSError) -> bool:
        if isinstance(error, BlockingIOError):
            return True
        if error.errno in {errno.EACCES, errno.EAGAIN, errno.EBUSY}:
            return True
        # Windows reports sharing (32) and lock (33) violations via winerror.
        return getattr(error, "winerror", None) in {32, 33}

    def _try_lock(self) -> None:
        fileno = self._handle.fileno()
        if os.name == "posix":  # pragma: no cover - platform specific
            fcntl.flock(fileno, fcntl.LOCK_EX | fcntl.LOCK_NB)
        else:  # pragma: no cover - platform specific
            msvcrt.locking(fileno, msvcrt.LK_NBLCK, 1)

    def _unlock(self) -> None:
        fileno = self._handle.fileno()
        if os.name == "posix":  # pragma: no cover - platform specific
            fcntl.flock(fileno, fcntl.LOCK_UN)
        else:  # pragma: no cover - platform specific
            msvcrt.locking(fileno, msvcrt.LK_UNLCK, 1)

    def __enter__(self) -> "MigrationLock":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self.path.open("a+")
        deadline = time.monotonic() + self.timeout
        LOGGER.debug("Waiting for migration lock %s", self.path)
        while True:
            try:
                self._try_lock()
                return self
            except OSError as error:
                if not self._held_elsewhere(error):
                    self._handle.close()
                    raise
                if time.monotonic() >= deadline:
                    self._handle.close()
                    raise TimeoutError(
                        f"Timed out after {self.timeout:.1f}s waiting for {self.path}"
                    ) from error
                time.sleep(LOCK_POLL_INTERVAL)

    def __exit__(self, *exc_info) -> None:
        try:
            self._unlock()
        except OSError:  # pragma: no cover - the handle is closed either way
            LOGGER.debug("Could not release migration lock %s", self.path)
        finally:
            self._handle.close()
            self._handle = None


def build_alembic_config(database_url: str | None = None) -> Config:
    """Alembic config pointing at the bundled scripts and the active database."""

    config = Config(str(PACKAGE_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(PACKAGE_DIR / "alembic"))

    project_root = str(PACKAGE_DIR.parent)
    if project_root not in sys.path:
        sys.path.insert(0, project_root)

    url = database_url or os.getenv("DATABASE_URL") or SQLALCHEMY_DATABASE_URL
    config.set_main_option("sqlalchemy.url", url)
    return config


def run_database_migrations(database_url: str | None = None) -> None:
    """Upgrade to head, or stamp head when the tables predate Alembic."""

    config = build_alembic_config(database_url)
    url = config.get_main_option("sqlalchemy.url")
    LOGGER.info("Checking billing schema at %s", url)

    with MigrationLock(PACKAGE_DIR / LOCK_FILENAME, lock_timeout()):
        engine = create_engine(url, **engine_options(url))
        try:
            inspector = inspect(engine)
            has_version_table = inspector.has_table("alembic_version")
            existing_tables = set(inspector.get_table_names())
        finally:
            engine.dispose()

        if not has_version_table and existing_tables.issuperset(BILLING_TABLES):
            head = ScriptDirectory.from_config(config).get_current_head()
            LOGGER.info("Billing tables exist without Alembic metadata; stamping %s", head)
            command.stamp(config, "head")
            return

        command.upgrade(config, "head")
        LOGGER.info("Billing schema is at the latest revision")
