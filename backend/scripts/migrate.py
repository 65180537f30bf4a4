"""Schema migration helper

Usage:
    python scripts/migrate.py upgrade
    python scripts/migrate.py downgrade -1
    python scripts/migrate.py current

Wraps Alembic's command API so deployments can migrate the issue schema
without the alembic CLI on PATH.
"""

import sys
from pathlib import Path
from typing import List, Optional

from alembic import command
from alembic.config import Config

ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_INI = ROOT / "alembic.ini"


def get_config() -> Config:
    cfg = Config(str(ALEMBIC_INI))
    cfg.set_main_option("script_location", str(ROOT / "alembic"))
    return cfg


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print("Usage: python scripts/migrate.py <upgrade|downgrade|current> [revision]")
        return 2

    op, rev = argv[0], (argv[1] if len(argv) > 1 else None)
    cfg = get_config()

    if op == "upgrade":
        command.upgrade(cfg, rev or "head")
    elif op == "downgrade":
        command.downgrade(cfg, rev or "-1")
    elif op == "current":
        command.current(cfg)
    else:
        print("Unknown operation. Use 'upgrade', 'downgrade' or 'current'")
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
