from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from app.halfride.audit import record_event
from app.halfride.constants import (
    FLIGHT_DATA_STALE_AFTER,
    MAX_DESTINATION_ROAD_DISTANCE,
    TERMINAL_MAX_LENGTH,
    ListingFlightStatus,
)
from app.halfride.errors import ApiError, bad_request, conflict, internal_server_error, not_found
from app.halfride.maps_client import MapsError, get_maps_client
from app.halfride.modules.airports.service import is_supported_airport
from app.halfride.modules.flights.flightstats_client import FlightNotFoundError, FlightStatsError, get_flight_client
from app.halfride.modules.flights.models import FlightDetail
from app.halfride.utils import clean_str, is_date_today_or_tomorrow, require_iata_code

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.halfride.models import User
    from app.halfride.modules.travellers.models import TravellerListing

logger = logging.getLogger(__name__)


def make_flight_key(carrier: str, flight_number: str, flight_date: date) -> str:
    return f"{carrier}_{flight_number}_{flight_date.isoformat()}"


def parse_flight_ref(body: dict[str, Any]) -> tuple[str, str, date]:
    """Validate carrier/flightNumber/year/month/day; the date must be today or tomorrow (UTC)."""
    carrier = clean_str(body.get("carrier")).upper()
    flight_number = clean_str(body.get("flightNumber"))
    if not carrier or not flight_number:
        raise bad_request("carrier and flightNumber are required")
    try:
        flight_date = date(int(body.get("year")), int(body.get("month")), int(body.get("day")))
    except (TypeError, ValueError, OverflowError):
        raise bad_request("year, month and day must form a valid date")
    if not is_date_today_or_tomorrow(flight_date):
        raise bad_request("Flight date must be today or tomorrow")
    return carrier, flight_number, flight_date


def fetch_flight_data(carrier: str, flight_number: str, flight_date: date) -> dict[str, Any]:
    try:
        return get_flight_client().fetch_flight(
            carrier, flight_number, flight_date.year, flight_date.month, flight_date.day
        )
    except FlightNotFoundError as e:
        raise not_found(str(e), code="FLIGHT_NOT_FOUND")
    except FlightStatsError as e:
        logger.warning("FlightStats fetch failed for %s %s %s: %s", carrier, flight_number, flight_date, e)
        raise ApiError(502, "UPSTREAM_ERROR", str(e))


def is_stale(flight: FlightDetail, *, now: datetime | None = None) -> bool:
    if flight.eta_fetched_at is None:
        return True
    return (now or datetime.utcnow()) - flight.eta_fetched_at > timedelta(seconds=FLIGHT_DATA_STALE_AFTER)


def _apply_flight_data(flight: FlightDetail, data: dict[str, Any]) -> None:
    now = datetime.utcnow()
    flight.flight_data = data
    flight.eta_fetched_at = now
    flight.updated_at = now
    flight.status = (ListingFlightStatus.COMPLETED if data.get("isLanded") else ListingFlightStatus.ACTIVE).value


def _check_destination_distance(airport_code: str, place_id: str) -> None:
    maps = get_maps_client()
    if maps is None:
        logger.info("GOOGLE_MAPS_API_KEY not set; skipping road distance check for %s", airport_code)
        return
    try:
        meters = maps.airport_to_place(airport_code, place_id)
    except MapsError as e:
        logger.error("Error checking road distance (%s -> %s): %s", airport_code, place_id, e)
        raise internal_server_error("Error checking road distance", code="DISTANCE_CHECK_FAILED")
    if meters > MAX_DESTINATION_ROAD_DISTANCE:
        raise bad_request(f"This flight is too far from {airport_code}.")


def _parse_destination(raw: Any) -> tuple[str | None, str | None]:
    if not isinstance(raw, dict):
        raise bad_request("destination must be an object with optional placeId and address")
    place_id = None
    if "placeId" in raw:
        place_id = raw.get("placeId").strip() if isinstance(raw.get("placeId"), str) else ""
        if not place_id:
            raise bad_request("destination.placeId, if provided, must be a non-empty string")
    address = raw.get("address")
    if address is not None and not isinstance(address, str):
        raise bad_request("destination.address, if provided, must be a string")
    return (address.strip() or None) if address else None, place_id


def create_listing(s: "Session", user: "User", body: dict[str, Any]) -> tuple[FlightDetail, "TravellerListing", bool]:
    """
    Register the user's flight and post (or refresh) their listing at its arrival airport.
    Returns (flight, listing, created).
    """
    from app.halfride.modules.travellers.models import TravellerListing

    if body.get("destination") is None or not body.get("userTerminal") or not body.get("airportCode"):
        raise bad_request("Missing required parameters")
    carrier, flight_number, flight_date = parse_flight_ref(body)
    address, place_id = _parse_destination(body.get("destination"))
    airport_code = require_iata_code(body.get("airportCode"), label="airportCode")
    terminal = clean_str(body.get("userTerminal"))
    if len(terminal) > TERMINAL_MAX_LENGTH:
        raise bad_request(f"userTerminal must be at most {TERMINAL_MAX_LENGTH} characters")

    key = make_flight_key(carrier, flight_number, flight_date)
    flight = s.query(FlightDetail).filter(FlightDetail.flight_key == key).one_or_none()
    data = flight.flight_data if flight is not None else None
    if data is None:
        data = fetch_flight_data(carrier, flight_number, flight_date)

    arrival_code = ((data.get("arrival") or {}).get("airportCode") or "").upper()
    if not arrival_code:
        raise bad_request("Flight arrival airport not found")
    if arrival_code != airport_code:
        raise bad_request(f"This flight arrives at {arrival_code}, not {airport_code}.")
    if place_id:
        _check_destination_distance(arrival_code, place_id)
    if not is_supported_airport(s, arrival_code):
        raise bad_request(f"Arrival airport {arrival_code} is not supported")

    if flight is None:
        flight = FlightDetail(
            flight_key=key,
            carrier=carrier,
            flight_number=flight_number,
            flight_date=flight_date,
        )
        _apply_flight_data(flight, data)
        s.add(flight)
        s.flush()

    existing = (
        s.query(TravellerListing)
        .filter(TravellerListing.user_id == user.id, TravellerListing.is_completed.is_(False))
        .all()
    )
    if any(other.flight_id != flight.id for other in existing):
        raise bad_request("You already have an active listing. Complete or remove it before adding another.")

    listing = (
        s.query(TravellerListing)
        .filter(TravellerListing.user_id == user.id, TravellerListing.flight_id == flight.id)
        .one_or_none()
    )
    if listing is not None and listing.group_id is not None and not listing.is_completed:
        raise conflict("This listing is already part of a group.", code="LISTING_IN_GROUP")

    now = datetime.utcnow()
    created = listing is None
    if listing is None:
        listing = TravellerListing(user_id=user.id, flight_id=flight.id, created_at=now)
        s.add(listing)
    listing.date = flight_date
    listing.flight_arrival = arrival_code
    listing.flight_departure = ((data.get("departure") or {}).get("airportCode") or "N/A")[:8]
    listing.terminal = terminal
    listing.destination_address = address
    listing.destination_place_id = place_id
    listing.group_id = None
    listing.is_completed = False
    listing.ready_to_onboard = False
    listing.ready_to_onboard_at = None
    listing.connection_requests.clear()
    listing.updated_at = now
    s.flush()

    record_event(
        s,
        actor=user,
        action="listing.create" if created else "listing.update",
        entity_type="TravellerListing",
        entity_id=str(listing.id),
        metadata={"flight": key, "airport": arrival_code},
    )
    return flight, listing, created


def get_flight_tracker(s: "Session", body: dict[str, Any]) -> dict[str, Any]:
    """Cached flight data, refreshed from upstream when older than FLIGHT_DATA_STALE_AFTER."""
    carrier, flight_number, flight_date = parse_flight_ref(body)
    key = make_flight_key(carrier, flight_number, flight_date)
    flight = s.query(FlightDetail).filter(FlightDetail.flight_key == key).one_or_none()
    if flight is None:
        raise not_found("Flight not registered")

    data = flight.flight_data
    if data is not None and not is_stale(flight):
        return data

    data = fetch_flight_data(carrier, flight_number, flight_date)
    _apply_flight_data(flight, data)
    return data


def public_flight_status(flight_number_raw: str, date_raw: str) -> dict[str, Any]:
    """Look up "AI 2988" on YYYY-MM-DD without registering anything."""
    parts = (flight_number_raw or "").strip().split()
    if len(parts) != 2:
        raise bad_request('flightNumber must look like "AI 2988"')
    try:
        flight_date = date.fromisoformat((date_raw or "").strip())
    except ValueError:
        raise bad_request("date must be YYYY-MM-DD")
    return fetch_flight_data(parts[0].upper(), parts[1], flight_date)
