from datetime import datetime, timedelta

import pytest

from app.halfride.db import session_scope
from app.halfride.models import User
from app.halfride.modules.chat.feed import GroupChatFeed
from app.halfride.modules.chat.models import GroupMessage

from conftest import post_listing, signup


@pytest.fixture()
def chat(app, flights):
    flights.add("AI", "2988")
    a, a_uid = signup(app, "asha")
    b, b_uid = signup(app, "ravi")
    post_listing(a)
    post_listing(b)
    a.post("/api/request-connection", json={"travellerUid": str(b_uid), "flightCarrier": "AI", "flightNumber": "2988"})
    r = b.post("/api/respond-to-connection", json={"requesterUserId": str(a_uid), "action": "accept"})
    return {"gid": int(r.json["groupId"]), "a": a, "a_uid": a_uid, "b": b, "b_uid": b_uid}


def _seed_messages(app, gid, sender_id, count):
    """Insert `count` messages one second apart, oldest first. Returns their ids."""
    start = datetime.utcnow() - timedelta(hours=1)
    with session_scope(app) as s:
        rows = [
            GroupMessage(group_id=gid, type="user", sender_id=sender_id, text=f"m{i}", created_at=start + timedelta(seconds=i))
            for i in range(count)
        ]
        s.add_all(rows)
        s.flush()
        return [m.id for m in rows]


def test_send_and_list_messages(chat):
    gid = chat["gid"]
    r = chat["a"].post(f"/api/groups/{gid}/messages", json={"text": "  hello there  "})
    assert r.status_code == 201
    msg = r.json["data"]
    assert msg["text"] == "hello there"
    assert msg["type"] == "user"
    assert msg["senderUserId"] == str(chat["a_uid"])
    assert msg["senderDisplayName"] == "asha"

    r = chat["b"].get(f"/api/groups/{gid}/messages")
    assert r.status_code == 200
    assert r.json["hasMore"] is False
    assert r.json["data"][0]["id"] == msg["id"]


def test_message_validation_and_membership(app, chat):
    gid = chat["gid"]
    assert chat["a"].post(f"/api/groups/{gid}/messages", json={"text": "   "}).status_code == 400
    assert chat["a"].post(f"/api/groups/{gid}/messages", json={"text": "x" * 4001}).status_code == 400
    assert chat["a"].post(f"/api/groups/{gid}/messages", json={}).status_code == 400
    assert chat["a"].post("/api/groups/999999/messages", json={"text": "hi"}).status_code == 404

    outsider, _ = signup(app, "kiran")
    assert outsider.post(f"/api/groups/{gid}/messages", json={"text": "hi"}).status_code == 403
    assert outsider.get(f"/api/groups/{gid}/messages").status_code == 403


def test_paging_with_before_and_after(app, chat):
    gid = chat["gid"]
    ids = _seed_messages(app, gid, chat["a_uid"], 5)

    r = chat["a"].get(f"/api/groups/{gid}/messages?limit=2")
    assert [m["text"] for m in r.json["data"]] == ["m4", "m3"]
    assert r.json["hasMore"] is True

    r = chat["a"].get(f"/api/groups/{gid}/messages?limit=2&before={ids[3]}")
    assert [m["text"] for m in r.json["data"]] == ["m2", "m1"]

    r = chat["a"].get(f"/api/groups/{gid}/messages?limit=10&after={ids[1]}")
    assert [m["text"] for m in r.json["data"]] == ["m2", "m3", "m4"]
    assert r.json["hasMore"] is False

    assert chat["a"].get(f"/api/groups/{gid}/messages?before=abc").status_code == 400
    assert chat["a"].get(f"/api/groups/{gid}/messages?after=999999").status_code == 400


def test_limit_is_clamped(app, chat):
    gid = chat["gid"]
    _seed_messages(app, gid, chat["a_uid"], 3)
    r = chat["a"].get(f"/api/groups/{gid}/messages?limit=0")
    assert len(r.json["data"]) == 3
    r = chat["a"].get(f"/api/groups/{gid}/messages?limit=5000")
    assert r.status_code == 200


def test_delete_own_message_only(chat):
    gid = chat["gid"]
    mid = chat["a"].post(f"/api/groups/{gid}/messages", json={"text": "oops"}).json["data"]["id"]

    assert chat["b"].delete(f"/api/groups/{gid}/messages/{mid}").status_code == 403
    r = chat["a"].delete(f"/api/groups/{gid}/messages/{mid}")
    assert r.status_code == 200
    assert r.json["data"]["text"] == ""
    assert r.json["data"]["deletedAt"]
    assert chat["a"].delete(f"/api/groups/{gid}/messages/999999").status_code == 404

    listed = chat["b"].get(f"/api/groups/{gid}/messages").json["data"]
    assert listed[0]["id"] == mid
    assert listed[0]["text"] == ""


def test_group_chat_feed_window(app, chat):
    gid = chat["gid"]
    ids = _seed_messages(app, gid, chat["b_uid"], 5)

    with session_scope(app) as s:
        user = s.get(User, chat["a_uid"])
        feed = GroupChatFeed(s, user, gid, page_size=2)

        assert feed.refresh() == 2
        assert [m["text"] for m in feed.messages] == ["m3", "m4"]
        assert feed.has_more is True

        assert feed.load_more() == 2
        assert [m["text"] for m in feed.messages] == ["m1", "m2", "m3", "m4"]
        assert feed.load_more() == 1
        assert feed.oldest_id == ids[0]
        assert feed.has_more is False
        assert feed.load_more() == 0

        sent = feed.send("on my way")
        assert feed.newest_id == int(sent["id"])
        # a poll returns the sent message again; the merge keeps one copy
        assert feed.refresh() == 0
        assert len(feed.messages) == 6


def test_group_chat_feed_poll_picks_up_new_messages(app, chat):
    gid = chat["gid"]
    _seed_messages(app, gid, chat["b_uid"], 2)

    with session_scope(app) as s:
        user = s.get(User, chat["a_uid"])
        feed = GroupChatFeed(s, user, gid, page_size=2)
        feed.refresh()
        for i in range(3):
            s.add(GroupMessage(group_id=gid, type="user", sender_id=chat["b_uid"], text=f"new{i}"))
        s.flush()

        assert feed.poll() == 3
        assert [m["text"] for m in feed.messages][-3:] == ["new0", "new1", "new2"]
        assert feed.poll() == 0
