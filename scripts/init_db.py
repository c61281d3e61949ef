from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from vrflottery.db.engine import get_sessionmaker, make_engine
from vrflottery.models import Lottery


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to the requested revision."""
    project_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def report_schema() -> None:
    """Print the table names and, if the lottery exists, its current round."""
    engine = make_engine()
    insp = inspect(engine)
    print("Current tables:", ", ".join(sorted(insp.get_table_names())))

    with get_sessionmaker(engine)() as session:
        lottery = Lottery.get(session)
        if lottery is None:
            print("Lottery not opened yet.")
        else:
            print(
                f"Lottery round {lottery.round_number}: state={lottery.state}, "
                f"pool={lottery.pool_balance}"
            )
    engine.dispose()


def main() -> None:
    """Apply migrations (default to head) and report the resulting schema."""
    upgrade_db()
    report_schema()


if __name__ == "__main__":
    main()
