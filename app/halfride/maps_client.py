from __future__ import annotations

import json
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

from flask import current_app

DISTANCE_MATRIX_MAX_DESTINATIONS = 25


class MapsError(RuntimeError):
    pass


@dataclass(frozen=True)
class MapsClient:
    """Google Distance Matrix / Geocoding over plain HTTP."""

    api_key: str
    base_url: str = "https://maps.googleapis.com/maps/api"
    timeout_seconds: int = 15

    def request_json(self, path: str, *, params: dict[str, Any], retries: int = 2) -> dict[str, Any]:
        query = dict(params)
        query["key"] = self.api_key
        url = self.base_url.rstrip("/") + path + "?" + urllib.parse.urlencode(query)

        last_err: Exception | None = None
        for attempt in range(retries + 1):
            try:
                req = urllib.request.Request(url, method="GET")
                req.add_header("Accept", "application/json")
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
                try:
                    return json.loads(raw.decode("utf-8"))
                except ValueError as e:
                    raise MapsError(f"Invalid JSON from Maps API ({path})") from e
            except urllib.error.HTTPError as e:
                if e.code == 429 or e.code >= 500:
                    last_err = MapsError(f"HTTP {e.code} from Maps API")
                    time.sleep(min(1 * (attempt + 1), 3))
                    continue
                raise MapsError(f"HTTP {e.code} from Maps API") from e
            except urllib.error.URLError as e:
                last_err = e
                time.sleep(min(1 * (attempt + 1), 3))
                continue
        raise MapsError(f"Maps API request failed after retries: {last_err}")

    def _single_distance(self, origin: str, destination: str) -> float:
        j = self.request_json("/distancematrix/json", params={"origins": origin, "destinations": destination})
        try:
            element = j["rows"][0]["elements"][0]
        except (KeyError, IndexError, TypeError):
            element = {}
        if j.get("status") != "OK" or element.get("status") != "OK":
            raise MapsError("Unable to calculate road distance.")
        return float(element["distance"]["value"])

    def airport_to_place(self, iata_code: str, place_id: str) -> float:
        """Road distance in meters from an airport (by IATA code) to a place id."""
        return self._single_distance(f"airport {iata_code}", f"place_id:{place_id}")

    def one_to_many(self, origin_place_id: str, dest_place_ids: list[str]) -> list[float | None]:
        """
        Road distances (meters) from one place to many, in input order.
        A chunk that fails yields None for each of its destinations.
        """
        results: list[float | None] = []
        for i in range(0, len(dest_place_ids), DISTANCE_MATRIX_MAX_DESTINATIONS):
            chunk = dest_place_ids[i : i + DISTANCE_MATRIX_MAX_DESTINATIONS]
            try:
                j = self.request_json(
                    "/distancematrix/json",
                    params={
                        "origins": f"place_id:{origin_place_id}",
                        "destinations": "|".join(f"place_id:{p}" for p in chunk),
                    },
                )
                elements = j["rows"][0]["elements"] if j.get("status") == "OK" else None
            except (MapsError, KeyError, IndexError, TypeError):
                elements = None
            if not isinstance(elements, list):
                results.extend([None] * len(chunk))
                continue
            for idx in range(len(chunk)):
                el = elements[idx] if idx < len(elements) else {}
                if el.get("status") == "OK" and (el.get("distance") or {}).get("value") is not None:
                    results.append(float(el["distance"]["value"]))
                else:
                    results.append(None)
        return results

    def geocode(self, address: str) -> tuple[float, float] | None:
        j = self.request_json("/geocode/json", params={"address": address})
        if j.get("status") != "OK":
            return None
        try:
            loc = j["results"][0]["geometry"]["location"]
            return float(loc["lat"]), float(loc["lng"])
        except (KeyError, IndexError, TypeError, ValueError):
            return None


def maps_client_from_config(config: dict) -> MapsClient | None:
    api_key = (config.get("GOOGLE_MAPS_API_KEY") or "").strip()
    if not api_key:
        return None
    return MapsClient(api_key=api_key)


def get_maps_client() -> MapsClient | None:
    return current_app.extensions.get("maps_client")
