from app.halfride.db import session_scope
from app.halfride.modules.groups.models import Group
from app.halfride.modules.travellers.models import TravellerListing

from conftest import post_listing, signup


def _two_travellers(app, flights):
    flights.add("AI", "2988")
    a, a_uid = signup(app, "asha", is_female=True)
    b, b_uid = signup(app, "ravi")
    assert post_listing(a, place_id="place-a").status_code == 201
    assert post_listing(b, place_id="place-b", address="Saket").status_code == 201
    return (a, a_uid), (b, b_uid)


def test_travellers_by_airport_lists_active_ungrouped(app, flights):
    (a, a_uid), (b, b_uid) = _two_travellers(app, flights)

    r = a.get("/api/travellers-by-airport/del")
    assert r.status_code == 200
    assert r.json["isUserInGroup"] is False
    assert r.json["userGroupId"] is None
    rows = {row["id"]: row for row in r.json["data"]}
    assert set(rows) == {str(a_uid), str(b_uid)}
    assert rows[str(a_uid)]["isOwnListing"] is True
    other = rows[str(b_uid)]
    assert other["name"] == "Ravi Tester"
    assert other["gender"] == "Male"
    assert other["destination"] == "Saket"
    assert other["flightNumber"] == "AI 2988"
    assert other["terminal"] == "T3"
    assert other["bio"] == "No bio available."
    assert other["connectionStatus"] == "SEND_REQUEST"
    assert other["distanceFromUserKm"] is None
    assert other["readyToOnboard"] is False

    r = a.get("/api/travellers-by-airport/BOM")
    assert r.json["data"] == []

    r = a.get("/api/travellers-by-airport/12")
    assert r.status_code == 400


def test_distance_from_user_uses_road_distance(app, flights, maps):
    maps.set_distance("place-a", "place-b", 3_400)
    (a, _), (_, b_uid) = _two_travellers(app, flights)

    r = a.get(f"/api/traveller-by-airport/DEL/{b_uid}")
    assert r.status_code == 200
    assert r.json["data"]["distanceFromUserKm"] == 3.4


def test_traveller_by_airport_unknown_user(app, flights):
    (a, _), _ = _two_travellers(app, flights)
    assert a.get("/api/traveller-by-airport/DEL/99999").status_code == 404
    assert a.get("/api/traveller-by-airport/DEL/not-a-number").status_code == 404


def test_connection_request_status_and_accept_creates_group(app, flights):
    (a, a_uid), (b, b_uid) = _two_travellers(app, flights)

    r = a.post(
        "/api/request-connection",
        json={"travellerUid": str(b_uid), "flightCarrier": "AI", "flightNumber": "2988"},
    )
    assert r.status_code == 200
    assert r.json["message"] == "Connection request sent"

    statuses = {row["id"]: row["connectionStatus"] for row in a.get("/api/travellers-by-airport/DEL").json["data"]}
    assert statuses[str(b_uid)] == "REQUEST_SENT"
    statuses = {row["id"]: row["connectionStatus"] for row in b.get("/api/travellers-by-airport/DEL").json["data"]}
    assert statuses[str(a_uid)] == "REQUEST_RECEIVED"

    r = b.post("/api/respond-to-connection", json={"requesterUserId": str(a_uid), "action": " ACCEPT "})
    assert r.status_code == 200
    assert r.json["message"] == "Connection request accepted"
    group_id = int(r.json["groupId"])

    with session_scope(app) as s:
        group = s.get(Group, group_id)
        assert group.name == "New Group"
        assert group.flight_arrival_airport == "DEL"
        assert group.member_ids == [b_uid, a_uid]
        listings = s.query(TravellerListing).all()
        assert {row.group_id for row in listings} == {group_id}
        assert all(not row.requester_ids for row in listings)

    r = a.get("/api/travellers-by-airport/DEL")
    assert r.json["data"] == []
    assert r.json["isUserInGroup"] is True
    assert r.json["userGroupId"] == str(group_id)


def test_connection_request_validation(app, flights):
    (a, a_uid), (_, b_uid) = _two_travellers(app, flights)

    r = a.post("/api/request-connection", json={"travellerUid": str(a_uid), "flightCarrier": "AI", "flightNumber": "2988"})
    assert r.status_code == 400
    r = a.post("/api/request-connection", json={"travellerUid": str(b_uid), "flightCarrier": "", "flightNumber": "2988"})
    assert r.status_code == 400
    r = a.post("/api/request-connection", json={"travellerUid": str(b_uid), "flightCarrier": "6E", "flightNumber": "1"})
    assert r.status_code == 404
    r = a.post("/api/request-connection", json={"travellerUid": "424242", "flightCarrier": "AI", "flightNumber": "2988"})
    assert r.status_code == 404


def test_reject_connection_and_bad_action(app, flights):
    (a, a_uid), (b, b_uid) = _two_travellers(app, flights)
    a.post("/api/request-connection", json={"travellerUid": str(b_uid), "flightCarrier": "AI", "flightNumber": "2988"})

    r = b.post("/api/respond-to-connection", json={"requesterUserId": str(a_uid), "action": "maybe"})
    assert r.status_code == 400

    r = b.post("/api/respond-to-connection", json={"requesterUserId": str(a_uid), "action": "reject"})
    assert r.status_code == 200
    assert r.json["message"] == "Connection request rejected"
    assert "groupId" not in r.json

    # the request is gone, so responding again fails
    r = b.post("/api/respond-to-connection", json={"requesterUserId": str(a_uid), "action": "accept"})
    assert r.status_code == 400

    with session_scope(app) as s:
        assert s.query(Group).count() == 0


def test_check_listing_and_has_active_listing(app, flights):
    flights.add("AI", "2988")
    c, _ = signup(app, "asha")

    r = c.get("/api/has-active-listing")
    assert r.json["hasActiveListing"] is False
    assert c.get("/api/check-listing?airportCode=DEL").status_code == 404

    post_listing(c, address="India Gate")
    r = c.get("/api/has-active-listing")
    assert r.json["hasActiveListing"] is True
    assert r.json["airportCode"] == "DEL"
    r = c.get("/api/check-listing?airportCode=DEL")
    assert r.status_code == 200
    assert r.json["destinationAddress"] == "India Gate"

    assert c.get("/api/check-listing").status_code == 400


def test_revoke_listing_only_when_ungrouped(app, flights):
    (a, a_uid), (b, b_uid) = _two_travellers(app, flights)

    r = a.post("/api/revoke-listing", json={"airportCode": "DEL"})
    assert r.status_code == 200
    assert r.json["message"] == "Listing revoked successfully"
    assert a.get("/api/has-active-listing").json["hasActiveListing"] is False
    assert a.post("/api/revoke-listing", json={"airportCode": "DEL"}).status_code == 404

    post_listing(a, place_id="place-a")
    a.post("/api/request-connection", json={"travellerUid": str(b_uid), "flightCarrier": "AI", "flightNumber": "2988"})
    b.post("/api/respond-to-connection", json={"requesterUserId": str(a_uid), "action": "accept"})
    assert b.post("/api/revoke-listing", json={"airportCode": "DEL"}).status_code == 404


def test_complete_listing_becomes_past_trip(app, flights):
    flights.add("AI", "2988")
    c, _ = signup(app, "asha")
    assert c.post("/api/complete-listing").status_code == 404

    post_listing(c)
    r = c.post("/api/complete-listing")
    assert r.status_code == 200
    assert r.json["data"]["flightArrival"] == "DEL"
    assert r.json["data"]["completedAt"]
    assert c.get("/api/has-active-listing").json["hasActiveListing"] is False

    # the same flight can be listed again after completion
    assert post_listing(c).status_code == 201
    assert c.get("/api/has-active-listing").json["hasActiveListing"] is True
