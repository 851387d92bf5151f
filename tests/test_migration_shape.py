from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from core.config import get_settings
from core.models import Base

ROOT = Path(__file__).resolve().parents[1]


def _config() -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "alembic"))
    return cfg


def test_required_tables_present_in_migration():
    text = (ROOT / "alembic/versions/20261017_0001_engine_schema.py").read_text()
    for t in Base.metadata.tables:
        assert f'"{t}"' in text


def test_migrations_avoid_postgres_now_function_for_portability():
    for migration_file in (ROOT / "alembic/versions").glob("*.py"):
        text = migration_file.read_text(encoding="utf-8").lower()
        assert "now()" not in text, f"Non-portable now() found in {migration_file.name}"


def test_alembic_upgrade_and_downgrade_on_sqlite(tmp_path, monkeypatch):
    db_path = tmp_path / "migration_smoke.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    get_settings.cache_clear()
    try:
        command.upgrade(_config(), "head")

        engine = create_engine(f"sqlite:///{db_path}")
        tables = set(inspect(engine).get_table_names())
        assert set(Base.metadata.tables) <= tables
        columns = {c["name"] for c in inspect(engine).get_columns("plan_change_proposals")}
        assert {"patch_json", "status", "decided_at", "check_in_id"} <= columns
        engine.dispose()

        command.downgrade(_config(), "base")
        engine = create_engine(f"sqlite:///{db_path}")
        assert set(inspect(engine).get_table_names()) <= {"alembic_version"}
        engine.dispose()
    finally:
        get_settings.cache_clear()
