"""
Release phase: migrate the schema to head, then seed the airport directory.

Usage:
  python scripts/release.py [--skip-seed]

Refuses to run without DATABASE_URL, and refuses sqlite when ENV is production.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL is not set; refusing to migrate an implicit sqlite database.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("ENV is production but DATABASE_URL points at sqlite. Point it at Postgres.")
    return db_url


def migrate(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    print("[release] alembic upgrade head", flush=True)
    command.upgrade(cfg, "head")


def run_release(*, seed: bool = True) -> None:
    db_url = _database_url()
    print(f"[release] ENV={os.environ.get('ENV') or '(unset)'}", flush=True)
    migrate(db_url)

    if seed:
        from scripts.init_db import seed_only

        print("[release] seeding airports", flush=True)
        seed_only(database_url=db_url)
    print("[release] done", flush=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Migrate the database and seed airports.")
    parser.add_argument("--skip-seed", action="store_true", help="run migrations only")
    args = parser.parse_args()
    run_release(seed=not args.skip_seed)


if __name__ == "__main__":
    main()
