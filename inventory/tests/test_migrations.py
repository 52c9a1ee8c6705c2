"""Smoke tests for the inventory Alembic migrations."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from inventory.config import settings
from inventory.models import Base


def test_alembic_upgrade_creates_model_tables(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "inventory_migrations.db"
    monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{db_path}")

    cfg = Config(str(settings.alembic_ini_path))
    command.upgrade(cfg, "head")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()

    assert set(Base.metadata.tables) <= tables
    assert "alembic_version" in tables
