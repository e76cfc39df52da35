"""
Import airports from an OpenFlights airports.dat file.

Usage:
  python scripts/import_airports.py path/to/airports.dat [--country India] [--dry-run]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.halfride.modules.airports.service import parse_openflights_rows, upsert_airport
from scripts._db_utils import script_session


def main() -> int:
    parser = argparse.ArgumentParser(description="Import OpenFlights airports into the airports table.")
    parser.add_argument("path", help="Path to airports.dat")
    parser.add_argument("--country", action="append", default=[], help="Only import this country (repeatable)")
    parser.add_argument("--dry-run", action="store_true", help="Parse and count without writing")
    args = parser.parse_args()

    path = Path(args.path)
    if not path.exists():
        print(f"ERROR: {path} not found", flush=True)
        return 1

    countries = {c.strip().lower() for c in args.country if c.strip()}
    with path.open("r", encoding="utf-8") as f:
        rows = [r for r in parse_openflights_rows(f) if not countries or (r["country"] or "").lower() in countries]
    print(f"Parsed {len(rows)} airports with IATA codes from {path}", flush=True)
    if args.dry_run:
        return 0

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///halfride.db").strip()
    created = updated = 0
    with script_session(db_url) as s:
        for row in rows:
            _, is_new = upsert_airport(s, **row)
            if is_new:
                created += 1
            else:
                updated += 1
    print(f"Import complete: {created} created, {updated} updated.", flush=True)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
