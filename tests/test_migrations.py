"""Verify Alembic migration chain integrity."""

import importlib.util
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from damworks.db.base import Base
import damworks.db.models  # noqa: F401

PACKAGE_DIR = Path(__file__).resolve().parent.parent / "damworks"
VERSIONS_DIR = PACKAGE_DIR / "alembic" / "versions"


def _load_migrations():
    """Load all migration modules and return list of (filename, revision, down_revision)."""
    migrations = []
    for path in sorted(VERSIONS_DIR.glob("*.py")):
        if path.name == "__init__.py":
            continue
        spec = importlib.util.spec_from_file_location(path.stem, path)
        mod = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(mod)
        migrations.append((path.name, mod.revision, mod.down_revision))
    return migrations


def test_no_duplicate_revision_ids():
    migrations = _load_migrations()
    revisions = [rev for _, rev, _ in migrations]
    duplicates = [r for r in revisions if revisions.count(r) > 1]
    assert not duplicates, f"Duplicate revision IDs: {set(duplicates)}"


def test_single_head_linear_chain():
    migrations = _load_migrations()
    down_revs = {rev: down for _, rev, down in migrations}

    all_revs = set(down_revs.keys())
    referenced = {d for d in down_revs.values() if d is not None}
    heads = all_revs - referenced
    assert len(heads) == 1, f"Expected 1 head, found {len(heads)}: {heads}"

    roots = [rev for rev, down in down_revs.items() if down is None]
    assert len(roots) == 1, f"Expected 1 root, found {len(roots)}: {roots}"


def test_upgrade_head_matches_models(tmp_path):
    db_path = tmp_path / "migrated.db"
    cfg = Config()
    cfg.set_main_option("script_location", str(PACKAGE_DIR / "alembic"))
    cfg.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{db_path}")

    command.upgrade(cfg, "head")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names()) - {"alembic_version"}
        assert tables == set(Base.metadata.tables)

        for name, table in Base.metadata.tables.items():
            columns = {col["name"] for col in inspector.get_columns(name)}
            assert columns == set(table.columns.keys()), name
    finally:
        engine.dispose()

    command.downgrade(cfg, "base")
    engine = create_engine(f"sqlite:///{db_path}")
    try:
        assert set(inspect(engine).get_table_names()) <= {"alembic_version"}
    finally:
        engine.dispose()
