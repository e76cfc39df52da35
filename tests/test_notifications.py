from app.halfride.db import session_scope
from app.halfride.modules.notifications.models import Notification

from conftest import post_listing, signup


def _types(c):
    return [n["type"] for n in c.get("/api/notifications").json["data"]]


def test_connection_lifecycle_notifies(app, flights):
    flights.add("AI", "2988")
    a, a_uid = signup(app, "asha")
    b, b_uid = signup(app, "ravi")
    post_listing(a)
    post_listing(b)

    a.post("/api/request-connection", json={"travellerUid": str(b_uid), "flightCarrier": "AI", "flightNumber": "2988"})
    [n] = b.get("/api/notifications").json["data"]
    assert n["type"] == "CONNECTION_REQUEST"
    assert n["isRead"] is False
    assert n["data"]["action"] == {"type": "OPEN_TRAVELLER", "payload": {"airportCode": "DEL", "userId": str(a_uid)}}

    r = b.post("/api/respond-to-connection", json={"requesterUserId": str(a_uid), "action": "accept"})
    gid = r.json["groupId"]
    [n] = a.get("/api/notifications").json["data"]
    assert n["type"] == "CONNECTION_ACCEPTED"
    assert n["data"]["groupId"] == gid
    assert n["data"]["action"]["type"] == "OPEN_GROUP"


def test_nearby_listing_notification(app, flights, maps):
    flights.add("AI", "2988")
    maps.set_distance("place-a", "place-b", 1_500)
    maps.set_distance("place-a", "place-c", 9_000)
    a, _ = signup(app, "asha")
    b, b_uid = signup(app, "ravi")
    c, _ = signup(app, "kiran")
    post_listing(a, place_id="place-a")
    post_listing(c, place_id="place-c")
    post_listing(b, place_id="place-b")

    [n] = a.get("/api/notifications").json["data"]
    assert n["type"] == "NEW_LISTING"
    assert n["body"] == "New traveller nearby: 1.5 km from your destination."
    assert n["data"]["actorUserId"] == str(b_uid)
    # kiran is 9 km from asha and 50 km from ravi
    assert _types(c) == []


def test_group_events_notify_other_members(app, flights):
    flights.add("AI", "2988")
    a, a_uid = signup(app, "asha")
    b, b_uid = signup(app, "ravi")
    k, k_uid = signup(app, "kiran")
    for cl in (a, b, k):
        post_listing(cl)
    a.post("/api/request-connection", json={"travellerUid": str(b_uid), "flightCarrier": "AI", "flightNumber": "2988"})
    gid = b.post("/api/respond-to-connection", json={"requesterUserId": str(a_uid), "action": "accept"}).json["groupId"]
    for cl in (a, b):
        cl.patch("/api/notifications/read-all")

    k.post("/api/request-join-group", json={"groupId": gid})
    assert _types(a)[0] == "GROUP_JOIN_REQUEST"
    assert _types(b)[0] == "GROUP_JOIN_REQUEST"

    b.post("/api/respond-to-join-request", json={"groupId": gid, "requesterUserId": str(k_uid), "action": "accept"})
    assert _types(k)[0] == "GROUP_JOIN_ACCEPTED"
    assert _types(a)[0] == "GROUP_JOIN_REQUEST_DECIDED"
    assert _types(b)[0] == "GROUP_JOIN_REQUEST_DECIDED"

    a.post("/api/update-group-name", json={"groupId": gid, "name": "Delhi Crew"})
    assert _types(b)[0] == "GROUP_RENAMED"
    assert "GROUP_RENAMED" not in _types(a)

    k.post("/api/leave-group", json={"groupId": gid})
    assert _types(a)[0] == "GROUP_MEMBER_LEFT"

    b.post("/api/leave-group", json={"groupId": gid})
    [latest, *_] = a.get("/api/notifications").json["data"]
    assert latest["type"] == "GROUP_DISBANDED"
    assert latest["data"]["groupName"] == "Delhi Crew"


def test_unread_count_and_mark_read(app):
    a, _ = signup(app, "asha")
    b, _ = signup(app, "ravi")

    r = a.post("/api/notifications/seed")
    assert r.status_code == 200
    assert len(r.json["results"]) == 3
    assert a.get("/api/notifications/unread-count").json["count"] == 3

    nid = r.json["results"][0]["id"]
    assert b.patch(f"/api/notifications/{nid}/read").status_code == 403
    assert a.patch("/api/notifications/999999/read").status_code == 404
    assert a.patch(f"/api/notifications/{nid}/read").status_code == 200
    assert a.get("/api/notifications/unread-count").json["count"] == 2

    unread = a.get("/api/notifications?unreadOnly=true").json["data"]
    assert nid not in [n["id"] for n in unread]
    assert len(a.get("/api/notifications?limit=1").json["data"]) == 1

    r = a.patch("/api/notifications/read-all")
    assert r.json["count"] == 2
    assert a.get("/api/notifications/unread-count").json["count"] == 0


def test_seed_hidden_in_production(app):
    a, _ = signup(app, "asha")
    app.config["ENV"] = "production"
    assert a.post("/api/notifications/seed").status_code == 404


def test_notification_failure_does_not_fail_request(app, flights, monkeypatch):
    from sqlalchemy.exc import SQLAlchemyError

    from app.halfride.modules.notifications import service

    flights.add("AI", "2988")
    a, a_uid = signup(app, "asha")
    b, b_uid = signup(app, "ravi")
    post_listing(a)
    post_listing(b)

    def broken(**kwargs):
        raise SQLAlchemyError("insert failed")

    monkeypatch.setattr(service, "Notification", broken)
    r = a.post("/api/request-connection", json={"travellerUid": str(b_uid), "flightCarrier": "AI", "flightNumber": "2988"})
    assert r.status_code == 200

    with session_scope(app) as s:
        assert s.query(Notification).count() == 0
