from __future__ import annotations

from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect, text

from contract_billing.app.database import Base
from contract_billing.app.migrations import BILLING_TABLES, run_database_migrations

PACKAGE_DIR = Path(__file__).resolve().parents[1]


def _configure_alembic_script() -> ScriptDirectory:
    config = Config(str(PACKAGE_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(PACKAGE_DIR / "alembic"))
    return ScriptDirectory.from_config(config)


def _read_version(url: str) -> str:
    engine = create_engine(url, connect_args={"check_same_thread": False})
    try:
        with engine.connect() as connection:
            return connection.scalar(text("SELECT version_num FROM alembic_version"))
    finally:
        engine.dispose()


def test_run_database_migrations_creates_billing_schema(tmp_path, monkeypatch) -> None:
    db_path = tmp_path / "legacy.db"
    url = f"sqlite:///{db_path}"

    engine = create_engine(url, connect_args={"check_same_thread": False})
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE legacy_table (id INTEGER PRIMARY KEY)"))
    engine.dispose()

    monkeypatch.setenv("DATABASE_URL", url)
    run_database_migrations()

    engine = create_engine(url, connect_args={"check_same_thread": False})
    tables = set(inspect(engine).get_table_names())
    engine.dispose()

    assert "legacy_table" in tables
    assert "alembic_version" in tables
    assert tables.issuperset(BILLING_TABLES)
    assert _read_version(url) == _configure_alembic_script().get_current_head()


def test_run_database_migrations_stamps_head_for_current_schema(tmp_path, monkeypatch) -> None:
    db_path = tmp_path / "current.db"
    url = f"sqlite:///{db_path}"

    engine = create_engine(url, connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    engine.dispose()

    monkeypatch.setenv("DATABASE_URL", url)
    run_database_migrations()

    engine = create_engine(url, connect_args={"check_same_thread": False})
    inspector = inspect(engine)
    assert inspector.has_table("alembic_version")
    assert inspector.has_table("contract_billing_items")
    engine.dispose()

    assert _read_version(url) == _configure_alembic_script().get_current_head()


def test_running_migrations_twice_is_harmless(tmp_path, monkeypatch) -> None:
    url = f"sqlite:///{tmp_path / 'repeat.db'}"
    monkeypatch.setenv("DATABASE_URL", url)

    run_database_migrations()
    run_database_migrations()

    assert _read_version(url) == "20250115_0001"
