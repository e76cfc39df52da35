import sys
from pathlib import Path
import os

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.halfride.models import Base
from app.halfride.modules.airports.service import upsert_airport
from app.halfride.db import make_engine
from scripts._db_utils import script_session

# (iata, icao, name, city, lat, lng, terminals)
DEFAULT_AIRPORTS = [
    ("DEL", "VIDP", "Indira Gandhi International Airport", "New Delhi", 28.5562, 77.1000,
     [("T1", "Terminal 1"), ("T2", "Terminal 2"), ("T3", "Terminal 3")]),
    ("BOM", "VABB", "Chhatrapati Shivaji Maharaj International Airport", "Mumbai", 19.0896, 72.8656,
     [("T1", "Terminal 1"), ("T2", "Terminal 2")]),
    ("BLR", "VOBL", "Kempegowda International Airport", "Bengaluru", 13.1986, 77.7066,
     [("T1", "Terminal 1"), ("T2", "Terminal 2")]),
    ("HYD", "VOHS", "Rajiv Gandhi International Airport", "Hyderabad", 17.2403, 78.4294,
     [("T1", "Terminal 1")]),
    ("MAA", "VOMM", "Chennai International Airport", "Chennai", 12.9941, 80.1709,
     [("T1", "Terminal 1"), ("T4", "Terminal 4")]),
]


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the supported airports and their terminals in an idempotent way.
    Existing airports keep their rows; missing terminals are added.
    """
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///halfride.db").strip()

    # Use a direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        created = 0
        for iata, icao, name, city, lat, lng, terminals in DEFAULT_AIRPORTS:
            _, is_new = upsert_airport(
                s,
                iata_code=iata,
                icao_code=icao,
                name=name,
                city=city,
                country="India",
                latitude=lat,
                longitude=lng,
                terminals=terminals,
            )
            created += int(is_new)
        print(f"Seeded airports: {created} created, {len(DEFAULT_AIRPORTS) - created} already present.", flush=True)


def main() -> None:
    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///halfride.db").strip()
    engine = make_engine(db_url)
    Base.metadata.create_all(engine)
    engine.dispose()
    seed_only(database_url=db_url)


if __name__ == "__main__":
    main()
