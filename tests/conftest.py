from datetime import datetime, timedelta

import pytest

from app.halfride import auth, create_app
from app.halfride.db import session_scope
from app.halfride.maps_client import MapsError
from app.halfride.models import Base
from app.halfride.modules.airports.service import upsert_airport
from app.halfride.modules.flights.flightstats_client import FlightNotFoundError, map_flight_data

DEL_LAT, DEL_LNG = 28.5562, 77.1000


def flightstats_payload(arrival="DEL", departure="BOM", *, landed=False, arrival_utc=None):
    arrival_utc = arrival_utc or (datetime.utcnow() + timedelta(hours=3)).strftime("%Y-%m-%dT%H:%M:%S.000Z")
    return {
        "data": {
            "resultHeader": {"carrier": {"name": "Air India"}},
            "schedule": {
                "scheduledDepartureUTC": "2026-10-19T04:00:00.000Z",
                "scheduledArrivalUTC": arrival_utc,
                "estimatedActualArrivalUTC": arrival_utc,
            },
            "status": {"status": "Landed" if landed else "Scheduled", "statusCode": "L" if landed else "S"},
            "departureAirport": {"fs": departure, "terminal": "2"},
            "arrivalAirport": {"fs": arrival, "terminal": "3", "baggage": "7"},
        }
    }


class FakeFlightClient:
    """Serves canned FlightStats payloads keyed by (carrier, flight number)."""

    def __init__(self):
        self.payloads = {}
        self.calls = []

    def add(self, carrier, number, **kwargs):
        self.payloads[(carrier, number)] = flightstats_payload(**kwargs)

    def fetch_flight(self, carrier, flight_number, year, month, day):
        self.calls.append((carrier, flight_number, year, month, day))
        raw = self.payloads.get((carrier, flight_number))
        if raw is None:
            raise FlightNotFoundError("Flight not found in external tracking system")
        return map_flight_data(raw)


class FakeMapsClient:
    """Road distances from a lookup table; unknown pairs are far away."""

    def __init__(self):
        self.airport_distances = {}
        self.place_distances = {}
        self.fail = False

    def airport_to_place(self, iata_code, place_id):
        if self.fail:
            raise MapsError("boom")
        return self.airport_distances.get((iata_code, place_id), 10_000)

    def one_to_many(self, origin_place_id, dest_place_ids):
        if self.fail:
            raise MapsError("boom")
        out = []
        for dest in dest_place_ids:
            if dest == origin_place_id:
                out.append(0)
            else:
                key = tuple(sorted((origin_place_id, dest)))
                out.append(self.place_distances.get(key, 50_000))
        return out

    def set_distance(self, a, b, meters):
        self.place_distances[tuple(sorted((a, b)))] = meters

    def geocode(self, address):
        return None


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_LOCAL_ROOT", str(tmp_path / "storage"))
    for k in ("GOOGLE_MAPS_API_KEY", "CORS_ORIGINS", "SESSION_ACCESS_TTL_SECONDS"):
        monkeypatch.delenv(k, raising=False)
    auth._login_attempts.clear()

    app = create_app()
    app.config["TESTING"] = True
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        upsert_airport(
            s,
            iata_code="DEL",
            name="Indira Gandhi International Airport",
            city="New Delhi",
            country="India",
            latitude=DEL_LAT,
            longitude=DEL_LNG,
            terminals=[("T1", "Terminal 1"), ("T3", "Terminal 3")],
        )
        upsert_airport(s, iata_code="BOM", name="Chhatrapati Shivaji Maharaj International Airport", city="Mumbai")

    app.extensions["flight_client"] = FakeFlightClient()
    app.extensions["maps_client"] = None
    yield app
    auth._login_attempts.clear()


@pytest.fixture()
def flights(app):
    return app.extensions["flight_client"]


@pytest.fixture()
def maps(app):
    fake = FakeMapsClient()
    app.extensions["maps_client"] = fake
    return fake


@pytest.fixture()
def client(app):
    return app.test_client()


def signup(app, username, *, first_name=None, is_female=False, phone="+911234567890", password="password123"):
    """New test client logged in as a freshly created user. Returns (client, uid)."""
    c = app.test_client()
    r = c.post(
        "/api/auth/signup/complete",
        json={
            "username": username,
            "password": password,
            "FirstName": first_name or username.capitalize(),
            "LastName": "Tester",
            "DOB": "1995-04-12",
            "isFemale": is_female,
            "Phone": phone,
        },
    )
    assert r.status_code == 201, r.json
    return c, int(r.json["uid"])


def post_listing(c, carrier="AI", number="2988", *, airport="DEL", terminal="T3", place_id=None, address="Connaught Place"):
    today = datetime.utcnow().date()
    destination = {"address": address}
    if place_id:
        destination["placeId"] = place_id
    return c.post(
        "/api/new-flight-tracker",
        json={
            "carrier": carrier,
            "flightNumber": number,
            "year": today.year,
            "month": today.month,
            "day": today.day,
            "destination": destination,
            "userTerminal": terminal,
            "airportCode": airport,
        },
    )
