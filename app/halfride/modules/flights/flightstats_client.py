from __future__ import annotations

import json
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

from flask import current_app

LANDED_STATUS_CODES = ("L", "A")


class FlightStatsError(RuntimeError):
    pass


class FlightStatsRateLimited(FlightStatsError):
    pass


class FlightNotFoundError(FlightStatsError):
    pass


def _first(value: Any) -> dict:
    if isinstance(value, list):
        value = value[0] if value else None
    return value if isinstance(value, dict) else {}


def map_flight_data(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Reduce a FlightStats flight-tracker payload to the fields listings need.
    Raises FlightNotFoundError when the payload has neither status nor schedule.
    """
    f = raw.get("data") if isinstance(raw, dict) else None
    if not isinstance(f, dict) or (not f.get("status") and not f.get("schedule")):
        raise FlightNotFoundError("Flight not found in external tracking system")

    schedule = f.get("schedule") or {}
    status = f.get("status") or {}
    note = f.get("flightNote") or {}
    positional = f.get("positional") or {}
    arrival = _first(f.get("arrivalAirport"))
    departure = _first(f.get("departureAirport"))

    is_landed = status.get("statusCode") in LANDED_STATUS_CODES or bool(note.get("landed"))
    scheduled_arrival = schedule.get("scheduledArrivalUTC") or (schedule.get("scheduledArrival") or {}).get("dateUtc")
    estimated_arrival = schedule.get("estimatedActualArrivalUTC") or (
        schedule.get("estimatedActualArrival") or {}
    ).get("dateUtc")

    return {
        "airlineName": ((f.get("resultHeader") or {}).get("carrier") or {}).get("name")
        or ((f.get("ticketHeader") or {}).get("carrier") or {}).get("name"),
        "departure": {
            "airportCode": departure.get("fs") or positional.get("departureAirportCode"),
            "terminal": departure.get("terminal"),
            "gate": departure.get("gate"),
            "scheduledTime": schedule.get("scheduledDepartureUTC"),
        },
        "arrival": {
            "airportCode": arrival.get("fs") or positional.get("arrivalAirportCode"),
            "terminal": arrival.get("terminal"),
            "gate": arrival.get("gate"),
            "baggage": arrival.get("baggage"),
            "scheduledTime": scheduled_arrival,
            "estimatedActualTime": estimated_arrival,
        },
        "schedule": {
            "scheduledArrival": scheduled_arrival,
            "estimatedActualArrival": estimated_arrival,
        },
        "status": {
            "status": status.get("status"),
            "statusDescription": status.get("statusDescription"),
            "statusCode": status.get("statusCode"),
            "delayMinutes": ((status.get("delay") or {}).get("arrival") or {}).get("minutes") or 0,
        },
        "flightNote": {
            "phase": note.get("phase"),
            "message": note.get("message"),
            "landed": is_landed,
        },
        "isLanded": is_landed,
    }


@dataclass(frozen=True)
class FlightStatsClient:
    base_url: str = "https://www.flightstats.com/v2/api-next"
    timeout_seconds: int = 20
    user_agent: str = "halfride-server/1.0"

    def request_json(self, path: str, *, retries: int = 2) -> dict[str, Any]:
        url = self.base_url.rstrip("/") + path

        last_err: Exception | None = None
        for attempt in range(retries + 1):
            try:
                req = urllib.request.Request(url, method="GET")
                req.add_header("Accept", "application/json")
                req.add_header("User-Agent", self.user_agent)
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
                try:
                    return json.loads(raw.decode("utf-8"))
                except ValueError as e:
                    raise FlightStatsError(f"Invalid JSON from FlightStats ({path})") from e
            except urllib.error.HTTPError as e:
                if e.code == 429:
                    time.sleep(min(2 * (attempt + 1), 10))
                    last_err = FlightStatsRateLimited("Rate limited (429)")
                    continue
                if e.code == 404:
                    raise FlightNotFoundError("Flight not found in external tracking system") from e
                raise FlightStatsError(f"Upstream API returned {e.code}") from e
            except urllib.error.URLError as e:
                last_err = e
                time.sleep(min(1 * (attempt + 1), 5))
                continue
        raise FlightStatsError(f"FlightStats request failed after retries: {last_err}")

    def fetch_flight(self, carrier: str, flight_number: str, year: int, month: int, day: int) -> dict[str, Any]:
        path = "/flight-tracker/{}/{}/{}/{}/{}".format(
            urllib.parse.quote(carrier, safe=""),
            urllib.parse.quote(flight_number, safe=""),
            year,
            month,
            day,
        )
        return map_flight_data(self.request_json(path))


def flight_client_from_config(config: dict) -> FlightStatsClient:
    base_url = (config.get("FLIGHTSTATS_BASE_URL") or "").strip()
    return FlightStatsClient(base_url=base_url) if base_url else FlightStatsClient()


def get_flight_client() -> FlightStatsClient:
    return current_app.extensions["flight_client"]
