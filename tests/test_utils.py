from datetime import date, datetime, timezone

import pytest

from app.halfride.constants import ConnectionResponseAction, parse_connection_response_action
from app.halfride.errors import ApiError
from app.halfride.modules.airports.service import parse_openflights_rows
from app.halfride.modules.flights.flightstats_client import FlightNotFoundError, map_flight_data
from app.halfride.modules.flights.service import make_flight_key
from app.halfride.storage import LocalStorage, StorageError, avatar_key
from app.halfride.utils import (
    haversine_distance,
    is_date_today_or_tomorrow,
    is_valid_group_name,
    isoformat,
    parse_limit,
    require_iata_code,
    require_int_id,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("accept", ConnectionResponseAction.ACCEPT),
        ("  Reject ", ConnectionResponseAction.REJECT),
        ("ACCEPT", ConnectionResponseAction.ACCEPT),
        ("approve", None),
        (None, None),
        (1, None),
    ],
)
def test_parse_connection_response_action(raw, expected):
    assert parse_connection_response_action(raw) is expected


def test_haversine_distance():
    assert haversine_distance(28.5562, 77.1, 28.5562, 77.1) == 0
    # Delhi to Mumbai airports, roughly 1150 km
    d = haversine_distance(28.5562, 77.1000, 19.0896, 72.8656)
    assert 1_100_000 < d < 1_200_000


def test_isoformat_marks_naive_times_as_utc():
    assert isoformat(None) is None
    assert isoformat(datetime(2026, 1, 2, 3, 4, 5, 678901)) == "2026-01-02T03:04:05.678Z"
    aware = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert isoformat(aware) == "2026-01-02T03:04:05.000+00:00"


def test_parse_limit():
    assert parse_limit(None, 50, 100) == 50
    assert parse_limit("abc", 50, 100) == 50
    assert parse_limit("0", 50, 100) == 50
    assert parse_limit("7", 50, 100) == 7
    assert parse_limit("500", 50, 100) == 100


def test_date_window():
    today = date(2026, 3, 31)
    assert is_date_today_or_tomorrow(date(2026, 3, 31), today=today)
    assert is_date_today_or_tomorrow(date(2026, 4, 1), today=today)
    assert not is_date_today_or_tomorrow(date(2026, 4, 2), today=today)
    assert not is_date_today_or_tomorrow(date(2026, 3, 30), today=today)


def test_request_parsers_raise_api_errors():
    assert require_iata_code(" del ") == "DEL"
    assert require_int_id("42", "groupId") == 42
    for bad in ("", "D1", "DELHI"):
        with pytest.raises(ApiError) as e:
            require_iata_code(bad)
        assert e.value.status_code == 400
    for bad in ("", "x", "-3", "0", str(2**63)):
        with pytest.raises(ApiError):
            require_int_id(bad, "groupId")


def test_group_name_rules():
    assert is_valid_group_name("Delhi Crew", 50)
    assert not is_valid_group_name("Crew #1", 50)
    assert not is_valid_group_name("", 50)
    assert not is_valid_group_name("a" * 51, 50)


def test_make_flight_key():
    assert make_flight_key("AI", "2988", date(2026, 10, 19)) == "AI_2988_2026-10-19"


def test_map_flight_data_extracts_arrival_and_landing():
    raw = {
        "data": {
            "ticketHeader": {"carrier": {"name": "IndiGo"}},
            "schedule": {"scheduledArrival": {"dateUtc": "2026-10-19T10:00:00.000Z"}},
            "status": {"status": "Arrived", "statusCode": "A", "delay": {"arrival": {"minutes": 12}}},
            "flightNote": {"phase": "Landed", "message": "Arrived at gate"},
            "arrivalAirport": [{"fs": "DEL", "terminal": "1"}],
            "positional": {"departureAirportCode": "GOI"},
        }
    }
    data = map_flight_data(raw)
    assert data["airlineName"] == "IndiGo"
    assert data["arrival"]["airportCode"] == "DEL"
    assert data["arrival"]["terminal"] == "1"
    assert data["arrival"]["scheduledTime"] == "2026-10-19T10:00:00.000Z"
    assert data["departure"]["airportCode"] == "GOI"
    assert data["status"]["delayMinutes"] == 12
    assert data["isLanded"] is True
    assert data["flightNote"]["landed"] is True


def test_map_flight_data_without_status_or_schedule_is_not_found():
    with pytest.raises(FlightNotFoundError):
        map_flight_data({"data": {}})
    with pytest.raises(FlightNotFoundError):
        map_flight_data({})


def test_parse_openflights_rows_skips_rows_without_iata():
    lines = [
        '3093,"Indira Gandhi International Airport","Delhi","India","DEL","VIDP",28.5665,77.1031,777,5.5,"N","Asia/Calcutta","airport","OurAirports"',
        '9999,"Some Strip","Nowhere","India",\\N,"VXXX",10.0,20.0,0,5.5,"N","Asia/Calcutta","airport","OurAirports"',
        "garbage",
    ]
    rows = list(parse_openflights_rows(lines))
    assert len(rows) == 1
    assert rows[0]["iata_code"] == "DEL"
    assert rows[0]["icao_code"] == "VIDP"
    assert rows[0]["city"] == "Delhi"
    assert rows[0]["latitude"] == pytest.approx(28.5665)


def test_local_storage_round_trip_and_key_guard(tmp_path):
    storage = LocalStorage(tmp_path)
    key = avatar_key(7)
    assert key.startswith("avatars/7/") and key.endswith(".jpg")

    storage.write(key, b"jpeg", content_type="image/jpeg")
    assert storage.read(key) == b"jpeg"
    storage.remove(key)
    assert storage.read(key) is None
    storage.remove(key)

    with pytest.raises(StorageError):
        storage.write("../escape.jpg", b"x", content_type="image/jpeg")
