from __future__ import annotations

import argparse
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from wagerboard.db.engine import make_engine
from wagerboard.models import Base

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to the requested revision."""
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def missing_tables() -> list[str]:
    """Return standings tables declared in the models but absent from the database."""
    insp = inspect(make_engine())
    present = set(insp.get_table_names())
    return sorted(set(Base.metadata.tables) - present)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create or upgrade the standings database.")
    parser.add_argument("revision", nargs="?", default="head", help="Alembic revision (default: head)")
    args = parser.parse_args()

    upgrade_db(args.revision)
    missing = missing_tables()
    if missing:
        print("Missing tables after upgrade:", ", ".join(missing))
        return 1
    print("Standings tables ready:", ", ".join(sorted(Base.metadata.tables)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
