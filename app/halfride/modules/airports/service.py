from __future__ import annotations

import csv
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from flask import current_app

from app.halfride.errors import not_found
from app.halfride.maps_client import MapsError, get_maps_client

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.halfride.modules.airports.models import Airport

logger = logging.getLogger(__name__)

_CACHE_KEY = "airport_directory"


@dataclass
class CachedAirport:
    airport_code: str
    airport_name: str
    city: str | None
    latitude: float | None
    longitude: float | None
    terminals: list[dict[str, str]] = field(default_factory=list)

    def summary(self) -> dict:
        return {"airportCode": self.airport_code, "airportName": self.airport_name, "city": self.city}


@dataclass
class AirportDirectory:
    airports: list[CachedAirport]
    by_code: dict[str, CachedAirport]


def load_airport_directory(s: "Session") -> AirportDirectory:
    """
    Airport list is mostly static: load it once per process and serve from memory.
    Call invalidate_airport_directory() after importing airports.
    """
    cached = current_app.extensions.get(_CACHE_KEY)
    if cached is not None:
        return cached

    from app.halfride.modules.airports.models import Airport

    airports: list[CachedAirport] = []
    for a in s.query(Airport).order_by(Airport.iata_code.asc()).all():
        airports.append(
            CachedAirport(
                airport_code=a.iata_code.upper(),
                airport_name=a.name or "Unknown Airport",
                city=a.city,
                latitude=a.latitude,
                longitude=a.longitude,
                terminals=[{"id": t.code, "name": t.name} for t in a.terminals],
            )
        )
    directory = AirportDirectory(airports=airports, by_code={a.airport_code: a for a in airports})
    current_app.extensions[_CACHE_KEY] = directory
    logger.info("Loaded %s airports into directory cache", len(airports))
    return directory


def invalidate_airport_directory(app=None) -> None:
    (app or current_app).extensions.pop(_CACHE_KEY, None)


def list_airports(s: "Session") -> list[dict]:
    return [a.summary() for a in load_airport_directory(s).airports]


def get_terminals(s: "Session", airport_code: str) -> list[dict[str, str]]:
    cached = load_airport_directory(s).by_code.get(airport_code)
    if not cached:
        raise not_found(f"Airport {airport_code} not found")
    return cached.terminals


def is_supported_airport(s: "Session", airport_code: str) -> bool:
    return airport_code.upper() in load_airport_directory(s).by_code


def airport_coordinates(s: "Session", airport_code: str) -> tuple[float, float]:
    """
    (lat, lng) of an airport: stored coordinates first, then a geocoding lookup.
    """
    cached = load_airport_directory(s).by_code.get(airport_code.upper())
    if cached and cached.latitude is not None and cached.longitude is not None:
        return cached.latitude, cached.longitude

    maps = get_maps_client()
    if maps is not None:
        for query in (f"airport {airport_code}", f"{airport_code} airport", f"{airport_code} international airport"):
            try:
                loc = maps.geocode(query)
            except MapsError as e:
                logger.warning("Geocode failed for %s: %s", query, e)
                continue
            if loc:
                return loc
    raise not_found(f"Could not resolve location for airport {airport_code}", code="AIRPORT_LOCATION_UNKNOWN")


def upsert_airport(
    s: "Session",
    *,
    iata_code: str,
    name: str,
    city: str | None = None,
    country: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    icao_code: str | None = None,
    terminals: Iterable[tuple[str, str]] | None = None,
) -> tuple["Airport", bool]:
    """Create or update an airport by IATA code. Returns (airport, created)."""
    from app.halfride.modules.airports.models import Airport, Terminal

    code = iata_code.strip().upper()
    airport = s.query(Airport).filter(Airport.iata_code == code).one_or_none()
    created = airport is None
    if airport is None:
        airport = Airport(iata_code=code, name=name)
        s.add(airport)
    airport.name = name
    airport.city = city or airport.city
    airport.country = country or airport.country
    airport.icao_code = icao_code or airport.icao_code
    if latitude is not None and longitude is not None:
        airport.latitude = latitude
        airport.longitude = longitude
    if terminals is not None:
        existing = {t.code for t in airport.terminals}
        for t_code, t_name in terminals:
            if t_code not in existing:
                airport.terminals.append(Terminal(code=t_code, name=t_name))
    return airport, created


def parse_openflights_rows(lines: Iterable[str]) -> Iterator[dict]:
    """
    Parse OpenFlights airports.dat rows.
    Columns: id, name, city, country, IATA, ICAO, lat, lng, ...; rows without IATA are skipped.
    """
    for row in csv.reader(lines):
        if len(row) < 8:
            continue
        iata = (row[4] or "").strip().upper()
        if len(iata) != 3 or iata == "\\N":
            continue
        try:
            lat = float(row[6])
            lng = float(row[7])
        except ValueError:
            continue
        icao = (row[5] or "").strip().upper()
        yield {
            "iata_code": iata,
            "icao_code": icao if icao and icao != "\\N" else None,
            "name": row[1].strip(),
            "city": row[2].strip() or None,
            "country": row[3].strip() or None,
            "latitude": lat,
            "longitude": lng,
        }
